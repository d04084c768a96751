from .search_models import SearchHit, ResultKind
from .url_norm import canonicalize_url, domain_of, host_of, dedupe_urls
from .domain_tiers import SourceTierClassifier, TrustAssessment, classify_tier

__all__ = [
    "SearchHit",
    "ResultKind",
    "canonicalize_url",
    "domain_of",
    "host_of",
    "dedupe_urls",
    "SourceTierClassifier",
    "TrustAssessment",
    "classify_tier",
]
