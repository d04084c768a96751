from .gates import is_validation_satisfied, missing_categories, unresolved_warnings
from .readiness import ReadinessReport, ReadinessScore, evaluate_publication_readiness, summarize_readiness

__all__ = [
    "is_validation_satisfied",
    "missing_categories",
    "unresolved_warnings",
    "ReadinessReport",
    "ReadinessScore",
    "evaluate_publication_readiness",
    "summarize_readiness",
]
