"""Tests for bounded, category-filtered extraction."""

from product_research.exceptions import AuthenticationError, ExtractFailure
from product_research.extraction import Extractor
from product_research.models import (
    EnrichedRecord,
    Finding,
    FAQItem,
    Packaging,
    QueryIdentity,
    ResearchCategory,
)


PACKAGE = {"length_mm": 380, "width_mm": 120, "height_mm": 110, "weight_g": 1250}


def _record():
    record = EnrichedRecord.empty("HP W1331X")
    record.seed(QueryIdentity(raw="HP W1331X", brand="HP", model="W1331X", confidence=0.8))
    return record


def _findings(**urls):
    return {ResearchCategory(k): Finding(category=ResearchCategory(k), urls=v) for k, v in urls.items()}


class TestLogistics:

    def test_only_catalog_urls_sent(self, fake_extract, classifier):
        provider = fake_extract({"logistics": PACKAGE})
        urls = [
            "https://cartridge.ru/a",
            "https://max.nix.ru/1",
            "https://www.nix.ru/2",
            "https://elets.nix.ru/3",
            "https://nix.ru/4",
        ]
        result = Extractor(provider, classifier).extract(_findings(logistics=urls), _record())
        assert provider.calls[0].urls == urls[1:4]
        partial = result.partials[0]
        assert partial.kind == "packaging"
        assert partial.catalog_verified
        assert partial.confidence == 0.9
        assert partial.length_mm == 380
        assert result.extract_calls == 1

    def test_non_catalog_becomes_candidate(self, fake_extract, classifier):
        provider = fake_extract({"logistics": {"depth_mm": 380, "package_weight_g": 1250}})
        result = Extractor(provider, classifier).extract(
            _findings(logistics=["https://cartridge.ru/a", "https://www.citilink.ru/b"]), _record()
        )
        partial = result.partials[0]
        assert not partial.catalog_verified
        assert partial.confidence == 0.5
        assert partial.length_mm == 380
        assert partial.weight_g == 1250

    def test_existing_packaging_skips_call(self, fake_extract, classifier):
        record = _record()
        record.packaging = Packaging(length_mm=1, evidence_urls=["https://nix.ru/1"])
        provider = fake_extract({"logistics": PACKAGE})
        result = Extractor(provider, classifier).extract(_findings(logistics=["https://nix.ru/1"]), record)
        assert provider.calls == []
        assert result.partials == []

    def test_non_positive_values_mean_missing(self, fake_extract, classifier):
        provider = fake_extract({"logistics": {"length_mm": 0, "width_mm": -1}})
        result = Extractor(provider, classifier).extract(_findings(logistics=["https://nix.ru/1"]), _record())
        assert result.partials == []


class TestCompatibility:

    def test_strict_filter_and_exclusions(self, fake_extract, classifier):
        provider = fake_extract({"compatibility": {
            "printers": ["HP LaserJet M211dw", {"model": "HP LaserJet M236sdw"}],
            "excluded": ["HP LaserJet M111"],
        }})
        urls = ["https://www.ozon.ru/x", "https://cartridge.ru/a", "https://www.hp.com/b", "https://example.com/c"]
        result = Extractor(provider, classifier).extract(_findings(compatibility=urls), _record())
        assert provider.calls[0].urls == ["https://cartridge.ru/a", "https://www.hp.com/b"]
        partial = result.partials[0]
        assert partial.printers == ["HP LaserJet M211dw", "HP LaserJet M236sdw"]
        assert partial.exclusion_notes == ["excluded by source: HP LaserJet M111"]
        assert partial.evidence_urls == ["https://cartridge.ru/a", "https://www.hp.com/b"]

    def test_non_strict_keeps_any_domain_capped(self, fake_extract, classifier):
        provider = fake_extract({"compatibility": {"printers": ["HP LaserJet M211dw"]}})
        urls = [f"https://site{i}.example/x" for i in range(8)]
        Extractor(provider, classifier).extract(_findings(compatibility=urls), _record(), strict=False)
        assert provider.calls[0].urls == urls[:5]

    def test_nothing_allowed_no_call(self, fake_extract, classifier):
        provider = fake_extract({"compatibility": {"printers": ["X"]}})
        result = Extractor(provider, classifier).extract(
            _findings(compatibility=["https://www.ozon.ru/x", "https://forum.ixbt.com/y"]), _record()
        )
        assert provider.calls == []
        assert result.partials == []


class TestAuxiliaryCategories:

    def test_related_drops_own_model(self, fake_extract, classifier):
        provider = fake_extract({"related": {"items": ["W1331X", "W1330X", {"name": "W1332A", "relation": "drum"}]}})
        result = Extractor(provider, classifier).extract(_findings(related=["https://cartridge.ru/r"]), _record())
        names = [i.name for i in result.partials[0].items]
        assert names == ["W1330X", "W1332A"]
        assert result.partials[0].items[1].relation == "drum"

    def test_faq_source_url(self, fake_extract, classifier):
        provider = fake_extract({"faq": {"items": [{"question": "Ресурс?", "answer": "15000 страниц"}]}})
        urls = ["https://cartridge.ru/f1", "https://cartridge.ru/f2", "https://cartridge.ru/f3", "https://cartridge.ru/f4"]
        result = Extractor(provider, classifier).extract(_findings(faq=urls), _record())
        assert provider.calls[0].urls == urls[:3]
        assert result.partials[0].items[0].source_url == urls[0]

    def test_existing_faq_skips_call(self, fake_extract, classifier):
        record = _record()
        record.faq = [FAQItem(question="q", answer="a")]
        provider = fake_extract({"faq": {"items": [{"question": "q2", "answer": "a2"}]}})
        Extractor(provider, classifier).extract(_findings(faq=["https://cartridge.ru/f"]), record)
        assert provider.calls == []

    def test_images_rules_applied(self, fake_extract, classifier):
        provider = fake_extract({"images": {"images": [
            {"url": "https://img/1.jpg", "width": 1200, "height": 1200, "white_bg_score": 0.95},
            {"url": "https://img/2.jpg", "width": 400, "height": 400, "white_bg_score": 0.95},
        ]}})
        result = Extractor(provider, classifier).extract(_findings(images=["https://cartridge.ru/i"]), _record())
        first, second = result.partials[0].items
        assert first.passes_rules
        assert second.reject_reasons == ["resolution_below_800x800"]
        assert first.source == "https://cartridge.ru/i"


class TestFailures:

    def test_extract_failure_degrades(self, fake_extract, classifier):
        provider = fake_extract({
            "logistics": ExtractFailure("timeout"),
            "faq": {"items": [{"question": "q", "answer": "a"}]},
        })
        result = Extractor(provider, classifier).extract(
            _findings(logistics=["https://nix.ru/1"], faq=["https://cartridge.ru/f"]), _record()
        )
        assert [p.kind for p in result.partials] == ["faq"]
        assert result.errors[0].category == "logistics"
        assert result.critical is None

    def test_malformed_payload_degrades(self, fake_extract, classifier):
        provider = fake_extract({"faq": {"items": [{"question": "no answer"}]}})
        result = Extractor(provider, classifier).extract(_findings(faq=["https://cartridge.ru/f"]), _record())
        assert result.partials == []
        assert result.errors[0].reason == "malformed_payload"

    def test_critical_error_stops_extraction(self, fake_extract, classifier):
        provider = fake_extract({"logistics": AuthenticationError("bad key", status_code=401)})
        result = Extractor(provider, classifier).extract(
            _findings(logistics=["https://nix.ru/1"], faq=["https://cartridge.ru/f"]), _record()
        )
        assert isinstance(result.critical, AuthenticationError)
        assert len(provider.calls) == 1
        assert result.partials == []

    def test_empty_findings_skipped(self, fake_extract, classifier):
        provider = fake_extract()
        result = Extractor(provider, classifier).extract(_findings(logistics=[], faq=[]), _record())
        assert provider.calls == []
        assert result.extract_calls == 0
