"""
Product Research - iterative source-tiered research for printer consumables
"""

__version__ = "1.0.0"
__author__ = "Product Research Team"

__all__ = [
    "EnrichedRecord",
    "Orchestrator",
    "RunResult",
    "Settings",
    "run",
    "__version__",
    "__author__",
]

def __getattr__(name: str):
    """Lazy import to avoid import-time side effects."""
    if name == "EnrichedRecord":
        from .models import EnrichedRecord
        return EnrichedRecord
    elif name == "RunResult":
        from .models import RunResult
        return RunResult
    elif name == "Orchestrator":
        from .orchestrator import Orchestrator
        return Orchestrator
    elif name == "run":
        from .orchestrator import run
        return run
    elif name == "Settings":
        from product_research.config.settings import Settings
        return Settings
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
