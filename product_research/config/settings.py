"""Unified configuration and settings module.

Single source of truth for run modes, budgets and environment settings.
"""

from __future__ import annotations
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Literal, Optional
import logging

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from product_research.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

RunMode = Literal["fast", "standard", "exhaustive"]


@dataclass(frozen=True)
class ModeConfig:
    """Budgets and sourcing rules for one run mode."""
    name: str
    time_ms: int                    # Wall-clock ceiling for the whole run
    max_calls: int                  # Search calls across all categories/iterations
    max_sources: int                # Unique URLs admitted across the run
    search_limit_per_step: int      # Base per-category URL limit
    queries_per_category: int       # Planner truncation cap
    require_catalog_packaging: bool = False

    def to_dict(self) -> Dict[str, int]:
        """Budget triple for logging/metadata."""
        return {
            "time_ms": self.time_ms,
            "max_calls": self.max_calls,
            "max_sources": self.max_sources,
        }

    def adaptive_limit(self, iteration: int) -> int:
        """Per-category URL limit, widened by one for every iteration after the first."""
        return self.search_limit_per_step + max(0, iteration - 1)


MODES: Dict[str, ModeConfig] = {
    "fast": ModeConfig(
        name="fast",
        time_ms=2 * 60 * 1000,
        max_calls=5,
        max_sources=10,
        search_limit_per_step=3,
        queries_per_category=2,
    ),
    "standard": ModeConfig(
        name="standard",
        time_ms=5 * 60 * 1000,
        max_calls=15,
        max_sources=30,
        search_limit_per_step=5,
        queries_per_category=3,
    ),
    # Exhaustive also demands catalog-sourced packaging evidence
    "exhaustive": ModeConfig(
        name="exhaustive",
        time_ms=12 * 60 * 1000,
        max_calls=40,
        max_sources=100,
        search_limit_per_step=10,
        queries_per_category=5,
        require_catalog_packaging=True,
    ),
}


def mode_config(mode: Optional[str]) -> ModeConfig:
    """Get the budget configuration for a run mode.

    Args:
        mode: One of 'fast', 'standard', 'exhaustive' (None means standard)

    Returns:
        ModeConfig for the mode

    Raises:
        ConfigurationError: for an unknown mode
    """
    key = (mode or "standard").lower()
    if key not in MODES:
        raise ConfigurationError(f"Unknown run mode: {mode!r} (expected one of {sorted(MODES)})")
    return MODES[key]


class Settings(BaseSettings):
    """Environment-driven settings."""
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ==== Provider ====
    FIRECRAWL_API_KEY: Optional[str] = None
    FIRECRAWL_BASE_URL: str = "https://api.firecrawl.dev/v2"
    HTTP_TIMEOUT_SECONDS: float = Field(30.0, gt=0)
    EXTRACT_POLL_SECONDS: float = Field(2.0, ge=0)
    EXTRACT_MAX_POLLS: int = Field(30, ge=1)

    # ==== Collector ====
    RATE_LIMIT_BACKOFF_SECONDS: float = Field(5.0, ge=0, description="Fixed backoff after a 429")

    # ==== Run defaults ====
    DEFAULT_MODE: RunMode = "standard"
    DEFAULT_LOCALE: str = "RU"
    STRICT_SOURCES: bool = True

    # ==== Source lists ====
    DOMAINS_FILE: Optional[str] = Field(None, description="Override for the packaged domains.yaml")

    # ==== Logging ====
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False


@lru_cache()
def get_settings() -> Settings:
    return Settings()
