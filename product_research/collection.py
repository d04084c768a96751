import asyncio
import logging
import math
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from product_research.config.settings import ModeConfig
from product_research.exceptions import CriticalProviderError, ProviderError, RateLimitError
from product_research.models import CategoryPlan, ErrorDetail, Finding, ResearchCategory, ResearchPlan, RunStats
from product_research.monitoring_metrics import SEARCH_ERRORS, SEARCH_LATENCY, SEARCH_REQUESTS
from product_research.providers.base import SearchProvider
from product_research.quality.gates import GATING_CATEGORIES
from product_research.tools.url_norm import canonicalize_url

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CriticalSignal:
    """Abort request raised by an auth/billing failure; threaded back to the loop."""
    reason: str
    message: str
    category: Optional[str] = None
    provider: Optional[str] = None
    status_code: Optional[int] = None


@dataclass
class CollectionResult:
    findings: Dict[ResearchCategory, Finding] = field(default_factory=dict)
    calls_made: int = 0
    new_urls: int = 0
    rate_limited: int = 0
    errors: List[ErrorDetail] = field(default_factory=list)
    abort: Optional[CriticalSignal] = None

    @property
    def aborted(self) -> bool:
        return self.abort is not None

    def urls_for(self, category: ResearchCategory) -> List[str]:
        f = self.findings.get(category)
        return list(f.urls) if f else []


def allocate_quotas(categories: List[CategoryPlan], calls: int) -> Dict[ResearchCategory, int]:
    """Spread a call allowance across categories round-robin, in plan order.

    No category receives more calls than it has queries.
    """
    quotas = {cp.category: 0 for cp in categories}
    remaining = calls
    while remaining > 0:
        progressed = False
        for cp in categories:
            if remaining <= 0:
                break
            if quotas[cp.category] < len(cp.queries):
                quotas[cp.category] += 1
                remaining -= 1
                progressed = True
        if not progressed:
            break
    return quotas


def funding_order(categories: List[CategoryPlan]) -> List[CategoryPlan]:
    """Categories the termination check needs first, then the rest; plan order within each group."""
    return sorted(categories, key=lambda cp: cp.category not in GATING_CATEGORIES)


def _run_coroutine(coro):
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    # Called from inside an event loop: run on a fresh loop in a worker thread
    with ThreadPoolExecutor(max_workers=1) as executor:
        return executor.submit(asyncio.run, coro).result()


class Collector:
    """Executes search plans under run-wide call/source ceilings.

    Provider exceptions are converted at this boundary: critical errors become
    a CriticalSignal on the result, rate limits cost one fixed backoff, every
    other failure skips the query.
    """

    def __init__(
        self,
        search: SearchProvider,
        mode: ModeConfig,
        backoff_seconds: float = 5.0,
        sleeper: Callable[[float], None] = time.sleep,
        parallel_categories: bool = False,
        pass_share: float = 0.5,
    ):
        self.search = search
        self.mode = mode
        self.backoff_seconds = backoff_seconds
        self.sleeper = sleeper
        self.parallel_categories = parallel_categories
        # Fraction of the remaining calls one pass may spend; the rest is kept for later passes
        self.pass_share = pass_share
        self.provider_name = getattr(search, "name", type(search).__name__)
        self._lock = threading.Lock()

    def pass_allowance(self, stats: RunStats) -> int:
        remaining = max(0, self.mode.max_calls - stats.calls_made)
        if remaining <= 1:
            return remaining
        return max(1, min(remaining, math.ceil(remaining * self.pass_share)))

    def collect(self, plan: ResearchPlan, stats: RunStats, iteration: int, locale: Optional[str] = None) -> CollectionResult:
        """Run one Collect pass.

        Args:
            plan: Queries per category
            stats: Run stats; call and source counters, seen_urls and queries_sent are updated in place
            iteration: 1-based iteration number (drives the adaptive URL limit)
            locale: Passed through to the search provider untouched

        Returns:
            CollectionResult with per-category findings and budget counters
        """
        # Queries sent in earlier passes are dropped; the planner re-emits them every iteration
        active = [
            cp.model_copy(update={"queries": [q for q in cp.queries if q not in stats.queries_sent]})
            for cp in funding_order(plan.active())
        ]
        limit = self.mode.adaptive_limit(iteration)
        quotas = allocate_quotas(active, self.pass_allowance(stats))
        result = CollectionResult()
        calls_before = stats.calls_made
        sources_before = stats.sources_collected

        if self.parallel_categories and getattr(self.search, "independent_limits", False) and len(active) > 1:
            outcomes = _run_coroutine(self._collect_parallel(active, quotas, limit, stats, locale))
        else:
            outcomes = []
            for cp in active:
                outcome = self._collect_category(cp, quotas[cp.category], limit, stats, locale)
                outcomes.append(outcome)
                if outcome.abort:
                    break

        for outcome in outcomes:
            result.findings[outcome.category] = Finding(
                category=outcome.category, urls=outcome.urls, new_urls=outcome.new_urls
            )
            result.errors.extend(outcome.errors)
            result.rate_limited += outcome.rate_limited
            if outcome.abort and result.abort is None:
                result.abort = outcome.abort

        result.calls_made = stats.calls_made - calls_before
        result.new_urls = stats.sources_collected - sources_before
        logger.info(
            "Collect pass %d: %d calls, %d new URLs (limit %d/category)%s",
            iteration, result.calls_made, result.new_urls, limit,
            " ABORTED" if result.aborted else "",
        )
        return result

    async def _collect_parallel(self, active: List[CategoryPlan], quotas: Dict[ResearchCategory, int],
                                limit: int, stats: RunStats, locale: Optional[str]) -> List["_CategoryOutcome"]:
        tasks = [
            asyncio.to_thread(self._collect_category, cp, quotas[cp.category], limit, stats, locale)
            for cp in active
        ]
        return list(await asyncio.gather(*tasks))

    def _collect_category(self, cp: CategoryPlan, quota: int, limit: int, stats: RunStats,
                          locale: Optional[str]) -> "_CategoryOutcome":
        outcome = _CategoryOutcome(category=cp.category)
        result_kind = "images" if cp.category is ResearchCategory.IMAGES else "web"

        for query in cp.queries[:quota]:
            if len(outcome.urls) >= limit:
                break
            with self._lock:
                if stats.calls_made >= self.mode.max_calls or stats.sources_collected >= self.mode.max_sources:
                    break
                if query in stats.queries_sent:
                    continue
                stats.queries_sent.add(query)
                stats.calls_made += 1

            SEARCH_REQUESTS.labels(provider=self.provider_name).inc()
            start = time.perf_counter()
            try:
                hits = self.search.search(query, limit=limit, locale=locale, result_kind=result_kind)
            except CriticalProviderError as e:
                SEARCH_ERRORS.labels(provider=self.provider_name, kind=e.reason).inc()
                logger.critical("Critical %s failure during %s search: %s", e.reason, cp.category.value, e)
                outcome.abort = CriticalSignal(
                    reason=e.reason,
                    message=str(e),
                    category=cp.category.value,
                    provider=e.provider or self.provider_name,
                    status_code=e.status_code,
                )
                break
            except RateLimitError as e:
                SEARCH_ERRORS.labels(provider=self.provider_name, kind="rate_limit").inc()
                logger.warning("Rate limited on %r; backing off %.1fs", query, self.backoff_seconds)
                outcome.rate_limited += 1
                outcome.errors.append(ErrorDetail(category=cp.category.value, reason=f"rate_limited: {e}", severity="low"))
                self.sleeper(self.backoff_seconds)
                continue
            except ProviderError as e:
                SEARCH_ERRORS.labels(provider=self.provider_name, kind="failure").inc()
                logger.warning("Search failed for %r: %s", query, e)
                outcome.errors.append(ErrorDetail(category=cp.category.value, reason=f"search_failed: {e}", severity="medium"))
                continue
            except Exception as e:
                SEARCH_ERRORS.labels(provider=self.provider_name, kind="unexpected").inc()
                logger.error("Unexpected search error for %r: %s", query, e, exc_info=True)
                outcome.errors.append(ErrorDetail(category=cp.category.value, reason=f"search_error: {e}", severity="medium"))
                continue
            finally:
                SEARCH_LATENCY.labels(provider=self.provider_name).observe(time.perf_counter() - start)

            for hit in hits:
                if len(outcome.urls) >= limit:
                    break
                url = canonicalize_url(hit.url)
                if not url or url in outcome.urls:
                    continue
                with self._lock:
                    if url not in stats.seen_urls:
                        if stats.sources_collected >= self.mode.max_sources:
                            continue
                        stats.seen_urls.add(url)
                        stats.sources_collected += 1
                        outcome.new_urls.append(url)
                outcome.urls.append(url)

        return outcome


@dataclass
class _CategoryOutcome:
    category: ResearchCategory
    urls: List[str] = field(default_factory=list)
    new_urls: List[str] = field(default_factory=list)
    errors: List[ErrorDetail] = field(default_factory=list)
    rate_limited: int = 0
    abort: Optional[CriticalSignal] = None
