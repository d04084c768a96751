"""Loop-termination gate and unresolved-category warnings."""

import logging
from typing import List

from product_research.models import EnrichedRecord, ResearchCategory

logger = logging.getLogger(__name__)

# Warning codes attached to meta.warnings
NIX_NOT_FOUND = "NIX_NOT_FOUND"
NIX_SOURCE_REQUIRED = "NIX_SOURCE_REQUIRED"
PACKAGING_UNVERIFIED_SOURCE = "PACKAGING_UNVERIFIED_SOURCE"
COMPATIBILITY_UNCERTAIN = "COMPATIBILITY_UNCERTAIN"
FAQ_NOT_FOUND = "FAQ_NOT_FOUND"
RELATED_NOT_FOUND = "RELATED_NOT_FOUND"
IMAGES_NOT_FOUND = "IMAGES_NOT_FOUND"
BUDGET_EXHAUSTED = "BUDGET_EXHAUSTED"
NO_PROGRESS = "NO_PROGRESS"
CRITICAL_PROVIDER_ERROR = "CRITICAL_PROVIDER_ERROR"

# Categories is_validation_satisfied depends on; images only feed readiness
GATING_CATEGORIES = frozenset({
    ResearchCategory.LOGISTICS,
    ResearchCategory.COMPATIBILITY,
    ResearchCategory.RELATED,
    ResearchCategory.FAQ,
})


def has_catalog_packaging(record: EnrichedRecord) -> bool:
    pkg = record.packaging
    return bool(pkg and pkg.evidence_urls and not pkg.not_found_on_nix)


def has_valid_image(record: EnrichedRecord) -> bool:
    return any(img.passes_rules for img in record.images)


def is_validation_satisfied(record: EnrichedRecord, require_catalog_packaging: bool = False) -> bool:
    """
    Check whether the record is complete enough to stop researching.

    Requires packaging, at least one compatible printer, at least one FAQ
    entry and at least one related item. With require_catalog_packaging the
    packaging must also carry catalog evidence.
    """
    if record.packaging is None:
        return False
    if require_catalog_packaging and not has_catalog_packaging(record):
        return False
    return bool(record.printers) and bool(record.faq) and bool(record.related)


def missing_categories(record: EnrichedRecord, require_catalog_packaging: bool = False) -> List[ResearchCategory]:
    """Categories the planner should still work on, in canonical order.

    Compatibility stays open while its evidence is untrusted so the planner
    can escalate; images stay open until one candidate passes the rules.
    """
    missing = []
    if record.packaging is None or (require_catalog_packaging and not has_catalog_packaging(record)):
        missing.append(ResearchCategory.LOGISTICS)
    compat = record.compatibility
    if compat is None or not compat.printers or not compat.trusted:
        missing.append(ResearchCategory.COMPATIBILITY)
    if not record.related:
        missing.append(ResearchCategory.RELATED)
    if not has_valid_image(record):
        missing.append(ResearchCategory.IMAGES)
    if not record.faq:
        missing.append(ResearchCategory.FAQ)
    return missing


def unresolved_warnings(record: EnrichedRecord, require_catalog_packaging: bool = False) -> List[str]:
    """Warning codes explaining which categories remain unresolved."""
    warnings = []
    if record.packaging is None:
        warnings.append(NIX_NOT_FOUND)
        if record.packaging_candidate is not None:
            warnings.append(PACKAGING_UNVERIFIED_SOURCE)
        if require_catalog_packaging:
            warnings.append(NIX_SOURCE_REQUIRED)
    elif require_catalog_packaging and not has_catalog_packaging(record):
        warnings.append(NIX_SOURCE_REQUIRED)
    compat = record.compatibility
    if compat is None or not compat.printers or not compat.trusted:
        warnings.append(COMPATIBILITY_UNCERTAIN)
    if not record.faq:
        warnings.append(FAQ_NOT_FOUND)
    if not record.related:
        warnings.append(RELATED_NOT_FOUND)
    if not has_valid_image(record):
        warnings.append(IMAGES_NOT_FOUND)
    return warnings
