"""Source tier classification and tier-count consensus."""

from __future__ import annotations
import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from product_research.config.domains import SourceLists
from product_research.models import SourceTier
from product_research.tools.url_norm import _EXTRACT, domain_of, host_matches, host_of

logger = logging.getLogger(__name__)

# Trusted iff >=1 OEM URL or this many distinct retailer domains
MIN_RETAILER_DOMAINS = 2


def brand_tokens(brand: Optional[str]) -> List[str]:
    """Alphanumeric brand tokens usable for domain matching.

    'Konica Minolta' -> ['konica', 'minolta', 'konicaminolta']
    """
    if not brand:
        return []
    parts = [p for p in re.split(r"[^a-z0-9]+", brand.lower()) if len(p) >= 2]
    joined = "".join(parts)
    if len(parts) > 1 and joined not in parts:
        parts.append(joined)
    return parts


@dataclass(frozen=True)
class TrustAssessment:
    trusted: bool
    tier_a_urls: Tuple[str, ...] = ()
    tier_b_domains: Tuple[str, ...] = ()
    tier_counts: Dict[str, int] = field(default_factory=dict)

    def reason(self) -> str:
        """Human-readable explanation used for exclusion notes."""
        if self.tier_a_urls:
            return f"trusted: {len(self.tier_a_urls)} OEM source(s)"
        if len(self.tier_b_domains) >= MIN_RETAILER_DOMAINS:
            return f"trusted: {len(self.tier_b_domains)} retailer domains ({', '.join(self.tier_b_domains)})"
        return (
            f"untrusted: no OEM source and {len(self.tier_b_domains)} retailer domain(s); "
            f"need 1 OEM or {MIN_RETAILER_DOMAINS} distinct retailers"
        )


class SourceTierClassifier:
    """Maps a URL plus brand hint to a SourceTier.

    Holds only the configured lists; classification is pure and never
    touches the network.
    """

    def __init__(self, lists: SourceLists):
        self.lists = lists
        self._retailers = tuple(lists.retailers) + tuple(lists.catalog)

    def classify(self, url: str, brand: Optional[str] = None) -> SourceTier:
        host = host_of(url)
        if not host:
            return SourceTier.UNKNOWN

        # Brand token anywhere in the host name (public suffix excluded)
        ext = _EXTRACT(url)
        name_part = ".".join(p for p in (ext.subdomain, ext.domain) if p).lower()
        for token in brand_tokens(brand):
            if token in name_part:
                return SourceTier.TIER_A_OEM

        if any(host_matches(host, d) for d in self.lists.all_oem_domains):
            return SourceTier.TIER_A_OEM

        if any(host_matches(host, d) for d in self._retailers):
            return SourceTier.TIER_B_RETAILER

        if any(host_matches(host, d) for d in self.lists.marketplaces):
            return SourceTier.TIER_C_MARKETPLACE

        if any(marker in host for marker in self.lists.forum_markers):
            return SourceTier.TIER_C_MARKETPLACE

        return SourceTier.UNKNOWN

    def assess_trust(self, urls: Iterable[str], brand: Optional[str] = None) -> TrustAssessment:
        """Apply the tier-count consensus rule over an evidence URL set."""
        tier_a: List[str] = []
        tier_b: List[str] = []
        counts: Counter = Counter()
        for url in urls:
            tier = self.classify(url, brand)
            counts[tier.value] += 1
            if tier is SourceTier.TIER_A_OEM:
                tier_a.append(url)
            elif tier is SourceTier.TIER_B_RETAILER:
                d = domain_of(url)
                if d not in tier_b:
                    tier_b.append(d)
        trusted = bool(tier_a) or len(tier_b) >= MIN_RETAILER_DOMAINS
        return TrustAssessment(
            trusted=trusted,
            tier_a_urls=tuple(tier_a),
            tier_b_domains=tuple(tier_b),
            tier_counts=dict(counts),
        )

    def is_catalog(self, url: str) -> bool:
        host = host_of(url)
        return any(host_matches(host, d) for d in self.lists.catalog)

    def is_compatibility_source(self, url: str, brand: Optional[str] = None) -> bool:
        """Allow-listed compatibility domain, or an OEM domain of the current brand."""
        host = host_of(url)
        if any(host_matches(host, d) for d in self.lists.compatibility_allow):
            return True
        return any(host_matches(host, d) for d in self.lists.oem_domains_for(brand))


def classify_tier(url: str, brand: Optional[str] = None, lists: Optional[SourceLists] = None) -> SourceTier:
    """Convenience wrapper using the packaged source lists."""
    if lists is None:
        from product_research.config.domains import default_source_lists
        lists = default_source_lists()
    return SourceTierClassifier(lists).classify(url, brand)
