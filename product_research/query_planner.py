"""
Query Planning Module

Builds the per-category search plan for one iteration from fixed templates
parameterised by brand and model. Pure and deterministic: the same record,
missing set and mode always produce the same plan.
"""

from __future__ import annotations
import logging
from typing import Iterable, List

from product_research.config.domains import SourceLists
from product_research.config.settings import ModeConfig
from product_research.models import (
    CATEGORY_ORDER,
    CategoryPlan,
    EnrichedRecord,
    ResearchCategory,
    ResearchPlan,
)

logger = logging.getLogger(__name__)

LOGISTICS_TERMS = ("weight dimensions", "вес габариты упаковки", "package specifications")
RELATED_TEMPLATES = ("{bm} аналоги", "{bm} related cartridges", "{bm} drum toner set")
IMAGES_TEMPLATES = ("{bm} cartridge photo", "{bm} картридж фото")
FAQ_TEMPLATES = ("{bm} FAQ", "{bm} how to install", "{bm} вопросы и ответы")


def _brand_model(record: EnrichedRecord) -> str:
    parts = [p for p in (record.brand, record.search_model) if p]
    # Model fallback is the raw query, which may already carry the brand
    if record.brand and record.model is None and record.brand.lower() in record.search_model.lower():
        parts = [record.search_model]
    return " ".join(parts).strip()


def needs_escalation(record: EnrichedRecord) -> bool:
    """Compatibility was found before but failed the tier consensus."""
    compat = record.compatibility
    return bool(compat and compat.printers and not compat.trusted)


class Planner:
    """Template-based planner. Holds only the configured source lists."""

    def __init__(self, lists: SourceLists):
        self.lists = lists

    def plan(self, record: EnrichedRecord, missing: Iterable[ResearchCategory], mode: ModeConfig) -> ResearchPlan:
        missing_set = set(missing)
        categories = {}
        for category in CATEGORY_ORDER:
            if category not in missing_set:
                categories[category] = CategoryPlan(category=category, needed=False)
                continue
            escalated = category is ResearchCategory.COMPATIBILITY and needs_escalation(record)
            queries = self._queries_for(category, record, escalated)
            categories[category] = CategoryPlan(
                category=category,
                queries=_unique(queries)[: mode.queries_per_category],
                needed=True,
                escalated=escalated,
            )
        plan = ResearchPlan(categories=categories)
        logger.debug("Planned %d queries across %d categories", plan.total_queries(), len(plan.active()))
        return plan

    def _queries_for(self, category: ResearchCategory, record: EnrichedRecord, escalated: bool) -> List[str]:
        bm = _brand_model(record)
        if category is ResearchCategory.LOGISTICS:
            return self._logistics_queries(bm)
        if category is ResearchCategory.COMPATIBILITY:
            return self._compatibility_queries(record, bm, escalated)
        if category is ResearchCategory.RELATED:
            return [t.format(bm=bm) for t in RELATED_TEMPLATES]
        if category is ResearchCategory.IMAGES:
            return [t.format(bm=bm) for t in IMAGES_TEMPLATES]
        if category is ResearchCategory.FAQ:
            return [t.format(bm=bm) for t in FAQ_TEMPLATES]
        return []

    def _logistics_queries(self, bm: str) -> List[str]:
        catalog = self.lists.catalog[0] if self.lists.catalog else None
        if catalog is None:
            return [f"{bm} {terms}" for terms in LOGISTICS_TERMS]
        return [f"site:{catalog} {bm} {terms}" for terms in LOGISTICS_TERMS]

    def _compatibility_queries(self, record: EnrichedRecord, bm: str, escalated: bool) -> List[str]:
        model = record.search_model
        oem = self.lists.oem_domains_for(record.brand)
        retailers = self.lists.retailers

        oem_query: List[str] = [f"site:{oem[0]} {model} compatible printers"] if oem else []
        retailer_queries = [f"site:{r} {bm} совместимые принтеры" for r in retailers[:2]]
        generic = [f"{bm} compatible printers list"]

        if not escalated:
            return oem_query + retailer_queries + generic

        # Escalation looks for sources not tried in the base plan
        extra: List[str] = []
        for d in oem[1:2]:
            extra.append(f"site:{d} {model} supplies compatibility")
        if oem:
            extra.append(f"site:{oem[0]} {model} support printers")
        for r in retailers[2:4]:
            extra.append(f"site:{r} {bm} совместимость")
        return oem_query + extra + retailer_queries + generic


def _unique(queries: List[str]) -> List[str]:
    seen = set()
    out = []
    for q in queries:
        q = " ".join(q.split())
        if q and q not in seen:
            seen.add(q)
            out.append(q)
    return out
