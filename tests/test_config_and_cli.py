"""Tests for run modes, source list loading and the command line entry point."""

import json
from unittest.mock import MagicMock, patch

import pytest

from product_research.config import MODES, default_source_lists, load_source_lists, mode_config
from product_research.config import domains
from product_research.exceptions import ConfigurationError
from product_research.main import main
from product_research.models import EnrichedRecord, SourceTier
from product_research.quality.readiness import evaluate_publication_readiness
from product_research.tools.domain_tiers import classify_tier


class TestModes:

    def test_mode_budgets(self):
        assert [(m.max_calls, m.max_sources, m.queries_per_category) for m in MODES.values()] == [
            (5, 10, 2), (15, 30, 3), (40, 100, 5),
        ]
        assert mode_config("exhaustive").require_catalog_packaging
        assert not mode_config("fast").require_catalog_packaging

    def test_lookup(self):
        assert mode_config("FAST").name == "fast"
        assert mode_config(None).name == "standard"
        with pytest.raises(ConfigurationError):
            mode_config("turbo")

    def test_adaptive_limit(self):
        fast = mode_config("fast")
        assert [fast.adaptive_limit(i) for i in (1, 2, 3)] == [3, 4, 5]


class TestSourceLists:

    def test_packaged_lists(self, source_lists):
        assert source_lists.catalog == ("nix.ru",)
        assert "cartridge.ru" in source_lists.retailers
        assert source_lists.oem_domains_for("HP") == ("hp.com",)
        assert source_lists.oem_domains_for("Konica Minolta")[0] == "konicaminolta.ru"
        assert source_lists.oem_domains_for(None) == ()
        assert "hp.com" in source_lists.compatibility_allow

    def test_custom_file_normalised(self, tmp_path):
        path = tmp_path / "domains.yaml"
        path.write_text(
            "catalog: [WWW.Nix.ru]\noem:\n  HP: [www.hp.com]\nretailers: [Cartridge.ru]\n",
            encoding="utf-8",
        )
        lists = load_source_lists(path)
        assert lists.catalog == ("nix.ru",)
        assert lists.oem == {"hp": ("hp.com",)}
        assert lists.retailers == ("cartridge.ru",)
        assert lists.marketplaces == ()

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_source_lists(tmp_path / "nope.yaml")

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("catalog: [nix.ru\n", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            load_source_lists(path)

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- nix.ru\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_source_lists(path)

    def test_default_lists_parsed_once(self, monkeypatch):
        real = domains.load_source_lists
        loads = []

        def counting_load(path=None):
            loads.append(path)
            return real(path)

        default_source_lists.cache_clear()
        monkeypatch.setattr(domains, "load_source_lists", counting_load)
        try:
            assert classify_tier("https://hp.com/x", "HP") is SourceTier.TIER_A_OEM
            classify_tier("https://cartridge.ru/x")
            evaluate_publication_readiness(EnrichedRecord.empty("HP W1331X"))
            assert default_source_lists() is default_source_lists()
        finally:
            default_source_lists.cache_clear()
        assert loads == [None]


@pytest.fixture
def patched_client(fake_search, fake_extract):
    """Patch the HTTP client with in-memory providers; yields a configurator."""
    def _patch(search=None, extract=None):
        search = search or fake_search()
        extract = extract or fake_extract()
        client = MagicMock()
        client.name = "fake"
        client.independent_limits = False
        client.search.side_effect = search.search
        client.extract.side_effect = extract.extract
        client.__enter__.return_value = client
        return patch("product_research.main.FirecrawlClient.from_settings", return_value=client)
    return _patch


class TestMain:

    def test_missing_api_key(self, monkeypatch, tmp_path, capsys):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("FIRECRAWL_API_KEY", raising=False)
        assert main(["--query", "HP W1331X"]) == 2
        assert "FIRECRAWL_API_KEY" in capsys.readouterr().err

    def test_single_query_needs_review(self, patched_client, capsys):
        with patched_client():
            code = main(["--query", "HP W1331X", "--mode", "fast"])
        assert code == 1
        payload = json.loads(capsys.readouterr().out)
        assert payload["status"] == "needs_review"
        assert payload["record"]["brand"] == "HP"
        assert all(line.startswith("[Agent] ") for line in payload["logs"])

    def test_done_exit_code(self, patched_client, fake_search, fake_extract, tmp_path):
        search = fake_search({
            "site:nix.ru": ["https://max.nix.ru/autocatalog/hp/1.html"],
            "compatible printers": ["https://cartridge.ru/a", "https://www.citilink.ru/b"],
            "аналоги": ["https://cartridge.ru/analogs"],
            "FAQ": ["https://cartridge.ru/faq"],
        })
        extract = fake_extract({
            "logistics": {"length_mm": 380, "width_mm": 120, "height_mm": 110, "weight_g": 1250},
            "compatibility": {"printers": ["HP LaserJet Pro 4003dn"]},
            "related": {"items": ["W1330X"]},
            "faq": {"items": [{"question": "q", "answer": "a"}]},
        })
        out = tmp_path / "result.json"
        with patched_client(search, extract):
            code = main(["--query", "HP W1331X", "--mode", "standard", "--output", str(out)])
        assert code == 0
        assert json.loads(out.read_text(encoding="utf-8"))["status"] == "done"

    def test_batch_with_summary(self, patched_client, tmp_path, capsys):
        queries = tmp_path / "queries.txt"
        queries.write_text("HP W1331X\n# skipped\n\nCanon 052H\n", encoding="utf-8")
        with patched_client():
            code = main(["--queries-file", str(queries), "--mode", "fast", "--log-json"])
        assert code == 1
        payload = json.loads(capsys.readouterr().out)
        assert [r["record"]["supplier_title_raw"] for r in payload["results"]] == ["HP W1331X", "Canon 052H"]
        assert payload["summary"]["total_items"] == 2
        assert payload["summary"]["ready_for_publication"] == 0

    def test_query_and_file_are_exclusive(self, tmp_path):
        with pytest.raises(SystemExit):
            main(["--query", "HP W1331X", "--queries-file", str(tmp_path / "q.txt")])
