"""Tests for publication readiness scoring and the batch report."""

import pytest

from product_research.models import (
    Compatibility,
    EnrichedRecord,
    ErrorDetail,
    FAQItem,
    ImageCandidate,
    Packaging,
    RelatedItem,
)
from product_research.quality.readiness import (
    MISSING_PACKAGING,
    NO_VERIFIED_PRINTERS,
    ReadinessScore,
    confidence_level,
    estimate_manual_effort,
    evaluate_publication_readiness,
    image_score,
    score_data_quality,
    score_images,
    score_required_fields,
    score_target_market,
    summarize_readiness,
)

COMPAT_URLS = ["https://cartridge.ru/a", "https://www.citilink.ru/b"]


def _ready_record():
    record = EnrichedRecord.empty("HP W1331X")
    record.brand, record.model, record.consumable_type = "HP", "W1331X", "toner_cartridge"
    record.add_evidence("model", "W1331X", [], 0.8, "offline_parse")
    record.packaging = Packaging(length_mm=380, width_mm=120, height_mm=110, weight_g=1250,
                                 evidence_urls=["https://nix.ru/1"], confidence=0.9)
    record.add_evidence("packaging", {}, ["https://nix.ru/1"], 0.9, "extract:catalog")
    record.compatibility = Compatibility(printers=["HP LaserJet M211dw"], evidence_urls=COMPAT_URLS,
                                         trusted=True, needs_review=False)
    record.add_evidence("compatibility", ["HP LaserJet M211dw"], COMPAT_URLS, 0.9, "extract:consensus")
    record.images = [ImageCandidate(url="https://img/1.jpg", width=1000, height=1000, white_bg_score=0.95)]
    record.faq = [FAQItem(question="q", answer="a")]
    record.related = [RelatedItem(name="W1330X")]
    record.set_status("done")
    return record


def _stamped(brand, score, ready, issues=()):
    record = EnrichedRecord.empty("x")
    record.brand = brand
    record.readiness = ReadinessScore(
        overall_score=score, component_scores={}, is_ready=ready, blocking_issues=list(issues),
        confidence_level="low", estimated_manual_effort=0,
    ).model_dump()
    return record


class TestComponentScores:

    def test_required_fields(self):
        assert score_required_fields(_ready_record()) == 1.0
        assert score_required_fields(EnrichedRecord.empty("x")) == 0.0

    def test_data_quality_defaults_without_evidence(self):
        assert score_data_quality(EnrichedRecord.empty("x")) == 0.3

    def test_data_quality_penalises_errors(self):
        record = _ready_record()
        clean = score_data_quality(record)
        record.meta.errors = [ErrorDetail(category="faq", reason="x")] * 2
        assert score_data_quality(record) == pytest.approx(clean - 0.2)

    def test_target_market(self, classifier):
        assert score_target_market(_ready_record(), classifier) == 1.0
        record = _ready_record()
        record.compatibility.trusted = False
        record.compatibility.evidence_urls = ["https://cartridge.ru/a"]
        assert score_target_market(record, classifier) == pytest.approx(0.5)

    def test_image_score(self):
        assert image_score(ImageCandidate(url="u", width=1000, height=1000, white_bg_score=1.0)) == pytest.approx(1.0)
        assert image_score(ImageCandidate(url="u", width=600, height=600, white_bg_score=0.5)) == pytest.approx(0.75)

    def test_score_images(self):
        record = EnrichedRecord.empty("x")
        assert score_images(record) == 0.0
        record.images = [ImageCandidate(url="u", width=100, height=100)]
        assert score_images(record) == 0.2


class TestEvaluation:

    def test_ready_record(self, classifier):
        score = evaluate_publication_readiness(_ready_record(), classifier)
        assert score.is_ready
        assert score.blocking_issues == []
        assert score.overall_score >= 0.9
        assert score.confidence_level == "high"

    def test_empty_record_blocked(self, classifier):
        score = evaluate_publication_readiness(EnrichedRecord.empty("x"), classifier)
        assert not score.is_ready
        assert "Missing brand information" in score.blocking_issues
        assert MISSING_PACKAGING in score.blocking_issues
        assert NO_VERIFIED_PRINTERS in score.blocking_issues
        assert score.confidence_level == "low"

    def test_candidate_packaging_recommendation(self, classifier):
        record = EnrichedRecord.empty("HP W1331X")
        record.packaging_candidate = Packaging(length_mm=380, not_found_on_nix=True, confidence=0.5)
        score = evaluate_publication_readiness(record, classifier)
        assert any("outside NIX.ru" in r for r in score.recommendations)

    def test_critical_errors_block(self, classifier):
        record = _ready_record()
        record.meta.errors = [ErrorDetail(category="collect", reason="auth: bad key", severity="critical")]
        score = evaluate_publication_readiness(record, classifier)
        assert "Critical errors: auth: bad key" in score.blocking_issues
        assert not score.is_ready


class TestHelpers:

    def test_effort_capped(self):
        assert estimate_manual_effort(["x"] * 10, []) == 120
        assert estimate_manual_effort([MISSING_PACKAGING], ["r"]) == 40
        assert estimate_manual_effort([NO_VERIFIED_PRINTERS], []) == 45

    def test_confidence_level(self):
        assert confidence_level(0.9, 0.8) == "high"
        assert confidence_level(0.6, 0.6) == "medium"
        assert confidence_level(0.2, 0.3) == "low"


class TestSummary:

    def test_buckets(self):
        report = summarize_readiness([
            _stamped("HP", 0.85, True),
            _stamped("HP", 0.65, False, [MISSING_PACKAGING]),
            _stamped("Canon", 0.45, False, [MISSING_PACKAGING, NO_VERIFIED_PRINTERS]),
            _stamped(None, 0.1, False, ["Missing brand information"]),
        ])
        assert report.total_items == 4
        assert report.ready_for_publication == 1
        assert report.needs_minor_fixes == 1
        assert report.needs_major_work == 1
        assert report.blocked_items == 1
        assert report.average_readiness_score == pytest.approx(0.5125)
        assert report.readiness_by_brand["HP"].total == 2
        assert report.readiness_by_brand["HP"].avg_score == pytest.approx(0.75)
        assert report.readiness_by_brand["Unknown"].total == 1
        top = report.top_blocking_issues[0]
        assert (top.issue, top.count, top.severity) == (MISSING_PACKAGING, 2, "medium")

    def test_empty_batch(self):
        report = summarize_readiness([])
        assert report.total_items == 0
        assert report.average_readiness_score == 0.0

    def test_unstamped_records_evaluated(self, classifier):
        report = summarize_readiness([_ready_record()], classifier)
        assert report.ready_for_publication == 1
