"""
Consensus merge of partial records into the accumulated EnrichedRecord.

Every field is merged by its own rule: packaging is written once, the
compatibility printer set is a growing union gated by tier consensus,
related/FAQ are written once, images accumulate. Evidence URL lists are
append-only and duplicate-free, so merging the same partial twice is a no-op.
"""

import logging
from dataclasses import dataclass
from typing import List

from product_research.models import (
    Compatibility,
    CompatibilityPartial,
    EnrichedRecord,
    FaqPartial,
    ImagesPartial,
    Packaging,
    PackagingPartial,
    PartialRecord,
    RelatedPartial,
    append_unique,
)
from product_research.tools.domain_tiers import SourceTierClassifier

logger = logging.getLogger(__name__)

UNTRUSTED_NOTE = "compatibility not confirmed by an OEM source or two independent retailers"

TRUSTED_CONFIDENCE = 0.9
UNTRUSTED_CONFIDENCE = 0.4


@dataclass(frozen=True)
class MergeOutcome:
    kind: str
    changed: bool
    detail: str = ""


def _printer_key(name: str) -> str:
    return " ".join(name.split()).lower()


def union_printers(existing: List[str], new: List[str]) -> int:
    """Add printers not already present (case-insensitive), keeping first spelling."""
    keys = {_printer_key(p) for p in existing}
    added = 0
    for p in new:
        name = " ".join((p or "").split())
        if not name:
            continue
        k = _printer_key(name)
        if k in keys:
            continue
        existing.append(name)
        keys.add(k)
        added += 1
    return added


class ConsensusMerger:
    """Single-writer merge step; holds only the tier classifier."""

    def __init__(self, classifier: SourceTierClassifier):
        self.classifier = classifier

    def merge(self, record: EnrichedRecord, partial: PartialRecord) -> MergeOutcome:
        if isinstance(partial, PackagingPartial):
            outcome = self._merge_packaging(record, partial)
        elif isinstance(partial, CompatibilityPartial):
            outcome = self._merge_compatibility(record, partial)
        elif isinstance(partial, RelatedPartial):
            outcome = self._merge_related(record, partial)
        elif isinstance(partial, FaqPartial):
            outcome = self._merge_faq(record, partial)
        elif isinstance(partial, ImagesPartial):
            outcome = self._merge_images(record, partial)
        else:
            raise TypeError(f"Unsupported partial record: {type(partial).__name__}")
        logger.debug("Merged %s partial (changed=%s) %s", outcome.kind, outcome.changed, outcome.detail)
        return outcome

    def merge_all(self, record: EnrichedRecord, partials: List[PartialRecord]) -> List[MergeOutcome]:
        return [self.merge(record, p) for p in partials]

    # ---- packaging ----

    def _merge_packaging(self, record: EnrichedRecord, partial: PackagingPartial) -> MergeOutcome:
        dims = {
            "length_mm": partial.length_mm,
            "width_mm": partial.width_mm,
            "height_mm": partial.height_mm,
            "weight_g": partial.weight_g,
        }
        if not partial.catalog_verified:
            return self._merge_packaging_candidate(record, partial, dims)

        if record.packaging is None:
            record.packaging = Packaging(
                **dims,
                evidence_urls=list(dict.fromkeys(partial.evidence_urls)),
                not_found_on_nix=False,
                confidence=partial.confidence,
            )
            record.add_evidence("packaging", dims, partial.evidence_urls, partial.confidence, "extract:catalog")
            return MergeOutcome("packaging", True, "packaging recorded")

        # Written once: later confirmations only add evidence
        added = append_unique(record.packaging.evidence_urls, partial.evidence_urls)
        record.add_evidence("packaging", record.packaging.model_dump(include=set(dims)), partial.evidence_urls,
                            record.packaging.confidence, "extract:catalog")
        return MergeOutcome("packaging", added > 0, f"{added} confirming URL(s)")

    def _merge_packaging_candidate(self, record: EnrichedRecord, partial: PackagingPartial, dims) -> MergeOutcome:
        if record.packaging_candidate is None:
            record.packaging_candidate = Packaging(
                **dims,
                evidence_urls=list(dict.fromkeys(partial.evidence_urls)),
                not_found_on_nix=True,
                confidence=partial.confidence,
            )
            record.add_evidence("packaging_candidate", dims, partial.evidence_urls, partial.confidence,
                                "extract:non_catalog")
            return MergeOutcome("packaging", True, "non-catalog packaging kept as candidate")
        added = append_unique(record.packaging_candidate.evidence_urls, partial.evidence_urls)
        record.add_evidence("packaging_candidate", record.packaging_candidate.model_dump(include=set(dims)),
                            partial.evidence_urls, record.packaging_candidate.confidence, "extract:non_catalog")
        return MergeOutcome("packaging", added > 0, f"{added} candidate URL(s)")

    # ---- compatibility ----

    def _merge_compatibility(self, record: EnrichedRecord, partial: CompatibilityPartial) -> MergeOutcome:
        compat = record.compatibility
        if compat is None:
            compat = Compatibility()
            record.compatibility = compat
        was_trusted = compat.trusted

        added_printers = union_printers(compat.printers, partial.printers)
        added_urls = append_unique(compat.evidence_urls, partial.evidence_urls)
        append_unique(compat.exclusion_notes, partial.exclusion_notes)

        # Trust is recomputed over the whole evidence union
        assessment = self.classifier.assess_trust(compat.evidence_urls, record.brand)
        compat.trusted = assessment.trusted
        compat.needs_review = not assessment.trusted
        if assessment.trusted:
            if UNTRUSTED_NOTE in compat.exclusion_notes:
                compat.exclusion_notes.remove(UNTRUSTED_NOTE)
        else:
            append_unique(compat.exclusion_notes, [UNTRUSTED_NOTE])

        ev = record.add_evidence(
            "compatibility", list(compat.printers), partial.evidence_urls,
            TRUSTED_CONFIDENCE if assessment.trusted else UNTRUSTED_CONFIDENCE, "extract:consensus",
        )
        ev.value = list(compat.printers)
        ev.confidence = TRUSTED_CONFIDENCE if assessment.trusted else UNTRUSTED_CONFIDENCE

        if assessment.trusted and not was_trusted:
            detail = f"upgraded to trusted ({assessment.reason()})"
        else:
            detail = assessment.reason()
        return MergeOutcome(
            "compatibility",
            added_printers > 0 or added_urls > 0 or was_trusted != assessment.trusted,
            f"+{added_printers} printer(s), +{added_urls} URL(s); {detail}",
        )

    # ---- related / faq / images ----

    def _merge_related(self, record: EnrichedRecord, partial: RelatedPartial) -> MergeOutcome:
        if record.related or not partial.items:
            return MergeOutcome("related", False, "already recorded")
        record.related = [item.model_copy() for item in partial.items]
        record.add_evidence("related", [i.name for i in partial.items], partial.evidence_urls, 0.7, "extract:related")
        return MergeOutcome("related", True, f"{len(partial.items)} item(s)")

    def _merge_faq(self, record: EnrichedRecord, partial: FaqPartial) -> MergeOutcome:
        if record.faq or not partial.items:
            return MergeOutcome("faq", False, "already recorded")
        record.faq = [item.model_copy() for item in partial.items]
        record.add_evidence("faq", len(partial.items), partial.evidence_urls, 0.7, "extract:faq")
        return MergeOutcome("faq", True, f"{len(partial.items)} item(s)")

    def _merge_images(self, record: EnrichedRecord, partial: ImagesPartial) -> MergeOutcome:
        known = {img.url for img in record.images}
        added = 0
        for img in partial.items:
            if img.url in known:
                continue
            record.images.append(img.model_copy())
            known.add(img.url)
            added += 1
        if added:
            record.add_evidence("images", len(record.images), partial.evidence_urls, 0.6, "extract:images")
            record.evidence["images"].value = len(record.images)
        return MergeOutcome("images", added > 0, f"{added} new image(s)")


