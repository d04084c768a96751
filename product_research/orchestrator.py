"""Iterative research loop: Plan -> Collect -> Extract -> Merge -> Gate."""

from enum import Enum
from typing import Callable, List, Optional, Tuple
import logging
import time

from product_research.collection import CollectionResult, Collector
from product_research.config import (
    ModeConfig,
    Settings,
    SourceLists,
    default_source_lists,
    get_settings,
    load_source_lists,
    mode_config,
)
from product_research.exceptions import BudgetExhausted, NoProgress
from product_research.extraction.extractor import Extractor
from product_research.models import EnrichedRecord, ErrorDetail, RunBudgets, RunResult
from product_research.monitoring_metrics import RUNS_TOTAL
from product_research.providers.base import ExtractProvider, IdentityParser, SearchProvider, make_identity_parser
from product_research.quality import gates
from product_research.quality.readiness import evaluate_publication_readiness
from product_research.query_planner import Planner
from product_research.time_budget import Budget
from product_research.tools.domain_tiers import SourceTierClassifier
from product_research.triangulation.consensus import ConsensusMerger

logger = logging.getLogger(__name__)

# Consecutive zero-new-URL passes that end the loop
NO_PROGRESS_PASSES = 2


class ResearchState(str, Enum):
    PLANNING = "Planning"
    COLLECTING = "Collecting"
    EXTRACTING = "Extracting"
    MERGING = "Merging"
    DONE = "Done"
    NEEDS_REVIEW = "NeedsReview"
    FAILED = "Failed"


TERMINAL_STATUS = {
    ResearchState.DONE: "done",
    ResearchState.NEEDS_REVIEW: "needs_review",
    ResearchState.FAILED: "failed",
}


class RunLog:
    """Append-only human-readable trace of one run. Never read for control flow."""

    def __init__(self):
        self._lines: List[str] = []

    def add(self, message: str) -> None:
        line = f"[Agent] {message}"
        self._lines.append(line)
        logger.info(line)

    @property
    def lines(self) -> List[str]:
        return list(self._lines)


class Orchestrator:
    """Drives one research run per call to run().

    All collaborators are injected; the orchestrator itself holds only
    configuration, so one instance can serve many sequential runs.
    """

    def __init__(
        self,
        search: SearchProvider,
        extract: ExtractProvider,
        lists: Optional[SourceLists] = None,
        identity_parser: Optional[IdentityParser] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], int]] = None,
        sleeper: Callable[[float], None] = time.sleep,
        parallel_categories: bool = False,
    ):
        self.settings = settings or get_settings()
        if lists is None:
            lists = load_source_lists(self.settings.DOMAINS_FILE) if self.settings.DOMAINS_FILE else default_source_lists()
        self.lists = lists
        self.search = search
        self.classifier = SourceTierClassifier(self.lists)
        self.planner = Planner(self.lists)
        self.extractor = Extractor(extract, self.classifier)
        self.merger = ConsensusMerger(self.classifier)
        self.identity_parser = identity_parser or make_identity_parser(self.lists.known_brands)
        self.clock = clock
        self.sleeper = sleeper
        self.parallel_categories = parallel_categories

    def run(self, query: str, mode: Optional[str] = None, locale: Optional[str] = None,
            strict_sources: Optional[bool] = None) -> RunResult:
        """Research one product query to termination.

        Args:
            query: Raw supplier title, e.g. "HP W1331X"
            mode: 'fast' | 'standard' | 'exhaustive' (defaults from settings)
            locale: Passed through to Search (defaults from settings)
            strict_sources: Restrict compatibility sources to allow-listed / OEM domains

        Returns:
            RunResult with a frozen copy of the record, the run log and final status
        """
        cfg = mode_config(mode or self.settings.DEFAULT_MODE)
        locale = locale or self.settings.DEFAULT_LOCALE
        strict = self.settings.STRICT_SOURCES if strict_sources is None else strict_sources

        log = RunLog()
        budget = Budget(cfg, self.clock)
        record = EnrichedRecord.empty(
            query, mode=cfg.name, locale=locale, strict_sources=strict, budgets=RunBudgets(**cfg.to_dict()),
        )
        record.seed(self.identity_parser(query))
        log.add(
            f"Starting {cfg.name} research for \"{query}\" "
            f"(brand={record.brand or '?'}, model={record.model or '?'}; "
            f"budget {cfg.time_ms // 1000}s / {cfg.max_calls} calls / {cfg.max_sources} sources)"
        )

        collector = Collector(
            self.search, cfg,
            backoff_seconds=self.settings.RATE_LIMIT_BACKOFF_SECONDS,
            sleeper=self.sleeper,
            parallel_categories=self.parallel_categories,
        )
        final_state, reason = self._loop(record, cfg, budget, collector, log, locale, strict)
        self._finalize(record, cfg, budget, log, final_state, reason)
        return RunResult(record=record.model_copy(deep=True), logs=log.lines, status=record.automation_status)

    # ---- loop ----

    def _enter(self, record: EnrichedRecord, state: ResearchState) -> None:
        record.meta.states.append(state.value)

    def _loop(self, record: EnrichedRecord, cfg: ModeConfig, budget: Budget, collector: Collector,
              log: RunLog, locale: str, strict: bool) -> Tuple[ResearchState, str]:
        stats = record.meta.stats
        iteration = 0

        while True:
            resource = budget.exhausted_resource(stats)
            if resource is not None:
                stop = BudgetExhausted(f"{resource} budget exhausted after {iteration} iteration(s)", resource)
                log.add(f"Stopping: {stop}")
                record.add_warning(gates.BUDGET_EXHAUSTED)
                return ResearchState.NEEDS_REVIEW, f"budget_exhausted:{stop.resource}"

            self._enter(record, ResearchState.PLANNING)
            missing = gates.missing_categories(record, cfg.require_catalog_packaging)
            plan = self.planner.plan(record, missing, cfg)
            if plan.is_empty:
                log.add("Plan is empty; nothing left to research")
                if gates.is_validation_satisfied(record, cfg.require_catalog_packaging):
                    return ResearchState.DONE, "validated"
                return ResearchState.NEEDS_REVIEW, "empty_plan"

            iteration += 1
            stats.iterations = iteration
            log.add(
                f"Pass {iteration}: planning {plan.total_queries()} queries for "
                f"{', '.join(cp.category.value for cp in plan.active())}"
                + (" (compatibility escalated)" if any(cp.escalated for cp in plan.active()) else "")
            )

            self._enter(record, ResearchState.COLLECTING)
            collected = collector.collect(plan, stats, iteration, locale)
            record.meta.errors.extend(collected.errors)
            self._log_collection(log, iteration, collected)
            if collected.abort is not None:
                signal = collected.abort
                log.add(f"CRITICAL: {signal.reason} failure from {signal.provider}: {signal.message}")
                record.meta.errors.append(
                    ErrorDetail(category=signal.category or "search", reason=f"{signal.reason}: {signal.message}",
                                severity="critical")
                )
                record.add_warning(gates.CRITICAL_PROVIDER_ERROR)
                return ResearchState.FAILED, f"critical:{signal.reason}"

            stats.empty_passes = stats.empty_passes + 1 if collected.new_urls == 0 else 0
            if stats.empty_passes >= NO_PROGRESS_PASSES:
                stop = NoProgress(f"{stats.empty_passes} consecutive passes found no new URLs", stats.empty_passes)
                log.add(f"Stopping: {stop}")
                record.add_warning(gates.NO_PROGRESS)
                return ResearchState.NEEDS_REVIEW, "no_progress"

            findings = {c: f for c, f in collected.findings.items() if f.urls}
            if not findings:
                continue

            self._enter(record, ResearchState.EXTRACTING)
            extracted = self.extractor.extract(findings, record, strict)
            stats.extract_calls += extracted.extract_calls
            record.meta.errors.extend(extracted.errors)
            if extracted.critical is not None:
                err = extracted.critical
                log.add(f"CRITICAL: {err.reason} failure during extraction: {err}")
                record.meta.errors.append(
                    ErrorDetail(category="extract", reason=f"{err.reason}: {err}", severity="critical")
                )
                record.add_warning(gates.CRITICAL_PROVIDER_ERROR)
                return ResearchState.FAILED, f"critical:{err.reason}"

            self._enter(record, ResearchState.MERGING)
            for outcome in self.merger.merge_all(record, extracted.partials):
                if outcome.changed:
                    log.add(f"Merged {outcome.kind}: {outcome.detail}")

            if gates.is_validation_satisfied(record, cfg.require_catalog_packaging):
                log.add(f"Validation satisfied after pass {iteration}")
                return ResearchState.DONE, "validated"

    def _log_collection(self, log: RunLog, iteration: int, collected: CollectionResult) -> None:
        for category, finding in collected.findings.items():
            log.add(
                f"Pass {iteration}: Found {len(finding.urls)} sources for {category.value} "
                f"({len(finding.new_urls)} new)"
            )
        if collected.rate_limited:
            log.add(f"Pass {iteration}: rate limited {collected.rate_limited} time(s); backed off")

    # ---- finalize ----

    def _finalize(self, record: EnrichedRecord, cfg: ModeConfig, budget: Budget, log: RunLog,
                  state: ResearchState, reason: str) -> None:
        self._enter(record, state)
        record.meta.stats.duration_ms = budget.elapsed_ms()
        record.meta.termination_reason = reason
        record.set_status(TERMINAL_STATUS[state])

        for code in gates.unresolved_warnings(record, cfg.require_catalog_packaging):
            record.add_warning(code)

        readiness = evaluate_publication_readiness(record, self.classifier)
        record.readiness = readiness.model_dump()
        record.publish_ready = readiness.is_ready

        RUNS_TOTAL.labels(mode=cfg.name, status=record.automation_status).inc()
        stats = record.meta.stats
        log.add(
            f"Finished with status {record.automation_status} ({reason}) after {stats.iterations} pass(es), "
            f"{stats.calls_made} calls, {stats.sources_collected} sources, "
            f"{budget.percentage_used():.0f}% of time budget; "
            f"readiness {readiness.overall_score:.2f}"
            + (f"; warnings: {', '.join(record.meta.warnings)}" if record.meta.warnings else "")
        )


def run(query: str, search: SearchProvider, extract: ExtractProvider, mode: Optional[str] = None,
        locale: Optional[str] = None, strict_sources: Optional[bool] = None, **kwargs) -> RunResult:
    """One-shot convenience wrapper around Orchestrator.run."""
    return Orchestrator(search, extract, **kwargs).run(query, mode=mode, locale=locale, strict_sources=strict_sources)
