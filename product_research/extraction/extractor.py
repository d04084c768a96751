"""Schema-driven extraction over bounded, category-filtered URL sets.

Each category turns its Finding into at most one partial record. Provider
failures and malformed payloads never raise out of here: the category is
simply left without an update for this iteration.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Type

from pydantic import BaseModel, ValidationError

from product_research.exceptions import CriticalProviderError, ProviderError
from product_research.extraction.schemas import (
    COMPATIBILITY_SCHEMA,
    FAQ_SCHEMA,
    IMAGES_SCHEMA,
    PACKAGING_SCHEMA,
    RELATED_SCHEMA,
    CompatibilityPayload,
    FaqPayload,
    ImagesPayload,
    PackagingPayload,
    RelatedPayload,
)
from product_research.models import (
    CompatibilityPartial,
    EnrichedRecord,
    ErrorDetail,
    FaqPartial,
    FAQItem,
    Finding,
    ImageCandidate,
    ImagesPartial,
    PackagingPartial,
    PartialRecord,
    RelatedItem,
    RelatedPartial,
    ResearchCategory,
)
from product_research.monitoring_metrics import EXTRACT_ERRORS, EXTRACT_REQUESTS
from product_research.providers.base import ExtractProvider
from product_research.tools.domain_tiers import SourceTierClassifier

logger = logging.getLogger(__name__)

MAX_LOGISTICS_URLS = 3
MAX_COMPATIBILITY_URLS = 5
MAX_AUX_URLS = 3

CATALOG_CONFIDENCE = 0.9
CANDIDATE_CONFIDENCE = 0.5


@dataclass
class ExtractionResult:
    partials: List[PartialRecord] = field(default_factory=list)
    extract_calls: int = 0
    errors: List[ErrorDetail] = field(default_factory=list)
    critical: Optional[CriticalProviderError] = None


class Extractor:
    def __init__(self, extract: ExtractProvider, classifier: SourceTierClassifier):
        self.extract_provider = extract
        self.classifier = classifier

    def extract(self, findings: Dict[ResearchCategory, Finding], record: EnrichedRecord,
                strict: bool = True) -> ExtractionResult:
        """Run bounded extraction for every category that has URLs.

        Args:
            findings: Per-category URLs from the last Collect pass
            record: Current record (read only)
            strict: Restrict compatibility sources to the allow-list / brand OEM domains

        Returns:
            ExtractionResult; `critical` is set when the provider rejected credentials or billing
        """
        result = ExtractionResult()
        handlers = {
            ResearchCategory.LOGISTICS: self._logistics,
            ResearchCategory.COMPATIBILITY: lambda urls, rec, res: self._compatibility(urls, rec, res, strict),
            ResearchCategory.RELATED: self._related,
            ResearchCategory.FAQ: self._faq,
            ResearchCategory.IMAGES: self._images,
        }
        for category, finding in findings.items():
            if not finding.urls:
                continue
            handler = handlers.get(category)
            if handler is None:
                continue
            partial = handler(finding.urls, record, result)
            if result.critical is not None:
                break
            if partial is not None:
                result.partials.append(partial)
        return result

    # ---- per-category ----

    def _logistics(self, urls: List[str], record: EnrichedRecord, result: ExtractionResult) -> Optional[PartialRecord]:
        if record.packaging is not None:
            return None
        catalog_urls = [u for u in urls if self.classifier.is_catalog(u)][:MAX_LOGISTICS_URLS]
        if catalog_urls:
            payload = self._call(ResearchCategory.LOGISTICS, catalog_urls,
                                 _logistics_instruction(record), PACKAGING_SCHEMA, PackagingPayload, result)
            if payload is None or not payload.has_any_field():
                return None
            return PackagingPartial(
                **payload.model_dump(),
                evidence_urls=catalog_urls,
                confidence=CATALOG_CONFIDENCE,
                catalog_verified=True,
            )

        # No catalog URL: keep whatever other sites report, flagged as unverified
        if record.packaging_candidate is not None:
            return None
        other_urls = urls[:MAX_LOGISTICS_URLS]
        payload = self._call(ResearchCategory.LOGISTICS, other_urls,
                             _logistics_instruction(record), PACKAGING_SCHEMA, PackagingPayload, result)
        if payload is None or not payload.has_any_field():
            return None
        return PackagingPartial(
            **payload.model_dump(),
            evidence_urls=other_urls,
            confidence=CANDIDATE_CONFIDENCE,
            catalog_verified=False,
        )

    def _compatibility(self, urls: List[str], record: EnrichedRecord, result: ExtractionResult,
                       strict: bool) -> Optional[PartialRecord]:
        if strict:
            urls = [u for u in urls if self.classifier.is_compatibility_source(u, record.brand)]
        urls = urls[:MAX_COMPATIBILITY_URLS]
        if not urls:
            logger.info("No compatibility URLs passed the source filter")
            return None
        payload = self._call(ResearchCategory.COMPATIBILITY, urls, _compatibility_instruction(record),
                             COMPATIBILITY_SCHEMA, CompatibilityPayload, result)
        if payload is None or not payload.printers:
            return None
        notes = [f"excluded by source: {m}" for m in payload.excluded]
        return CompatibilityPartial(printers=payload.printers, evidence_urls=urls, exclusion_notes=notes)

    def _related(self, urls: List[str], record: EnrichedRecord, result: ExtractionResult) -> Optional[PartialRecord]:
        if record.related:
            return None
        urls = urls[:MAX_AUX_URLS]
        payload = self._call(ResearchCategory.RELATED, urls,
                             f"List consumables related to {_label(record)}: analogs, drums, sets, other yields.",
                             RELATED_SCHEMA, RelatedPayload, result)
        if payload is None:
            return None
        own_model = (record.model or "").lower()
        items = [
            RelatedItem(name=i.name.strip(), relation=i.relation, url=i.url)
            for i in payload.items
            if i.name.strip() and i.name.strip().lower() != own_model
        ]
        if not items:
            return None
        return RelatedPartial(items=items, evidence_urls=urls)

    def _faq(self, urls: List[str], record: EnrichedRecord, result: ExtractionResult) -> Optional[PartialRecord]:
        if record.faq:
            return None
        urls = urls[:MAX_AUX_URLS]
        payload = self._call(ResearchCategory.FAQ, urls,
                             f"Extract frequently asked questions and answers about {_label(record)}.",
                             FAQ_SCHEMA, FaqPayload, result)
        if payload is None:
            return None
        items = [
            FAQItem(question=i.question.strip(), answer=i.answer.strip(), source_url=urls[0])
            for i in payload.items
            if i.question.strip() and i.answer.strip()
        ]
        if not items:
            return None
        return FaqPartial(items=items, evidence_urls=urls)

    def _images(self, urls: List[str], record: EnrichedRecord, result: ExtractionResult) -> Optional[PartialRecord]:
        urls = urls[:MAX_AUX_URLS]
        payload = self._call(ResearchCategory.IMAGES, urls,
                             f"Find product photos of {_label(record)} with pixel size and background whiteness.",
                             IMAGES_SCHEMA, ImagesPayload, result)
        if payload is None or not payload.images:
            return None
        items = [ImageCandidate(**img.model_dump(), source=urls[0]) for img in payload.images]
        return ImagesPartial(items=items, evidence_urls=urls)

    # ---- provider call ----

    def _call(self, category: ResearchCategory, urls: Sequence[str], instruction: str,
              schema: Dict[str, Any], payload_model: Type[BaseModel], result: ExtractionResult):
        EXTRACT_REQUESTS.labels(category=category.value).inc()
        result.extract_calls += 1
        try:
            raw = self.extract_provider.extract(list(urls), instruction, schema)
        except CriticalProviderError as e:
            EXTRACT_ERRORS.labels(category=category.value).inc()
            logger.critical("Critical %s failure during %s extraction: %s", e.reason, category.value, e)
            result.critical = e
            return None
        except ProviderError as e:
            EXTRACT_ERRORS.labels(category=category.value).inc()
            logger.warning("Extraction failed for %s: %s", category.value, e)
            result.errors.append(ErrorDetail(category=category.value, reason=f"extract_failed: {e}", severity="medium"))
            return None
        try:
            return payload_model.model_validate(raw or {})
        except ValidationError as e:
            EXTRACT_ERRORS.labels(category=category.value).inc()
            logger.warning("Malformed %s extraction payload: %s", category.value, e.error_count())
            result.errors.append(ErrorDetail(category=category.value, reason="malformed_payload", severity="low"))
            return None


def _label(record: EnrichedRecord) -> str:
    return " ".join(p for p in (record.brand, record.search_model) if p)


def _logistics_instruction(record: EnrichedRecord) -> str:
    return (
        f"Extract the package dimensions (mm) and gross package weight (g) of {_label(record)}. "
        "Return null for any value the page does not state."
    )


def _compatibility_instruction(record: EnrichedRecord) -> str:
    return (
        f"List every printer model that {_label(record)} is compatible with. "
        "Put models explicitly marked as not compatible into 'excluded'."
    )
