"""Source allow-lists loaded from YAML."""

from __future__ import annotations
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional, Tuple
import logging

import yaml

from product_research.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_DOMAINS_FILE = Path(__file__).resolve().parents[1] / "resources" / "domains.yaml"


def _norm(domain: str) -> str:
    d = (domain or "").strip().lower()
    if d.startswith("www."):
        d = d[4:]
    return d


@dataclass(frozen=True)
class SourceLists:
    """Configured domain lists. Immutable; shared by the classifier, planner and extractor."""
    catalog: Tuple[str, ...] = ()
    oem: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    retailers: Tuple[str, ...] = ()
    marketplaces: Tuple[str, ...] = ()
    forum_markers: Tuple[str, ...] = ()

    def oem_domains_for(self, brand: Optional[str]) -> Tuple[str, ...]:
        """Official domains for a brand (case-insensitive), empty when unknown."""
        if not brand:
            return ()
        return self.oem.get(brand.strip().lower(), ())

    @property
    def all_oem_domains(self) -> Tuple[str, ...]:
        seen = []
        for domains in self.oem.values():
            for d in domains:
                if d not in seen:
                    seen.append(d)
        return tuple(seen)

    @property
    def compatibility_allow(self) -> Tuple[str, ...]:
        """Domains accepted for compatibility evidence under strict sourcing."""
        return tuple(dict.fromkeys(self.retailers + self.catalog + self.all_oem_domains))

    @property
    def known_brands(self) -> Tuple[str, ...]:
        return tuple(self.oem.keys())


def load_source_lists(path: Optional[Path] = None) -> SourceLists:
    """Load source lists from YAML.

    Args:
        path: YAML file; defaults to the packaged resources/domains.yaml

    Returns:
        SourceLists

    Raises:
        ConfigurationError: if the file is missing or malformed
    """
    p = Path(path) if path else DEFAULT_DOMAINS_FILE
    if not p.exists():
        raise ConfigurationError(f"Domains file not found: {p}")
    try:
        cfg = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid domains file {p}: {e}") from e
    if not isinstance(cfg, dict):
        raise ConfigurationError(f"Domains file {p} must contain a mapping")

    oem_raw = cfg.get("oem") or {}
    oem = {
        str(brand).strip().lower(): tuple(_norm(d) for d in (domains or []))
        for brand, domains in oem_raw.items()
    }
    lists = SourceLists(
        catalog=tuple(_norm(d) for d in cfg.get("catalog") or []),
        oem=oem,
        retailers=tuple(_norm(d) for d in cfg.get("retailers") or []),
        marketplaces=tuple(_norm(d) for d in cfg.get("marketplaces") or []),
        forum_markers=tuple(str(m).lower() for m in cfg.get("forum_markers") or []),
    )
    logger.debug(
        "Loaded source lists from %s: %d catalog, %d brands, %d retailers, %d marketplaces",
        p, len(lists.catalog), len(lists.oem), len(lists.retailers), len(lists.marketplaces),
    )
    return lists


@lru_cache()
def default_source_lists() -> SourceLists:
    """Packaged source lists, parsed once per process."""
    return load_source_lists()
