"""Tests for templates, rule books and YAML loading."""

import pytest
from pathlib import Path
import tempfile

from briefdesk.entities import (
    RuleBook,
    SectorTemplate,
    SignalRule,
    TemplateStore,
    load_earnings_config,
    load_ramp_config,
    load_variant_config,
)


class TestTemplateStore:
    """Test TemplateStore lookup."""

    @pytest.fixture
    def store(self):
        """Create a small store."""
        return TemplateStore(
            [
                SectorTemplate(name="Alpha", kpis=("a1", "a2")),
                SectorTemplate(name="Beta", kpis=("b1",)),
            ],
            default="Alpha",
        )

    def test_lookup_exact_label(self, store):
        """Test that a known label returns its template."""
        assert store.lookup("Beta").kpis == ("b1",)

    def test_lookup_unknown_falls_back(self, store):
        """Test that an unknown label returns the default without raising."""
        assert store.lookup("Gamma").name == "Alpha"

    def test_lookup_is_case_sensitive(self, store):
        """Test that only exact matches count."""
        assert store.lookup("beta").name == "Alpha"

    def test_lookup_non_string(self, store):
        """Test that None and non-strings fall back too."""
        assert store.lookup(None).name == "Alpha"
        assert store.lookup(42).name == "Alpha"
        assert store.lookup("").name == "Alpha"

    def test_labels_in_declared_order(self, store):
        """Test label ordering."""
        assert store.labels() == ["Alpha", "Beta"]

    def test_invalid_default_raises(self):
        """Test that the default must be one of the templates."""
        with pytest.raises(ValueError):
            TemplateStore([SectorTemplate(name="Alpha")], default="Beta")

    def test_empty_store_raises(self):
        """Test that a store needs templates."""
        with pytest.raises(ValueError):
            TemplateStore([], default="Alpha")


class TestRuleBook:
    """Test RuleBook validation."""

    def test_duplicate_keys_rejected(self):
        """Test that rule keys must be unique."""
        rules = (
            SignalRule("cash", "Cash", ("cash",)),
            SignalRule("cash", "Cash again", ("cash flow",)),
        )
        with pytest.raises(ValueError):
            RuleBook(rules=rules)

    def test_unknown_suggestion_key_rejected(self):
        """Test that suggestions must reference a rule."""
        rules = (SignalRule("cash", "Cash", ("cash",)),)
        with pytest.raises(ValueError):
            RuleBook(rules=rules, suggestions=(("margin", "Margin KPI"),))

    def test_rule_needs_words(self):
        """Test that a rule without triggers is rejected."""
        with pytest.raises(ValueError):
            SignalRule("cash", "Cash", ())


class TestBundledConfigs:
    """Test the shipped YAML tables."""

    def test_ramp_tables(self):
        """Test the Company Ramp table shape."""
        config = load_ramp_config()

        assert config.templates.labels() == [
            "Fintech",
            "SaaS",
            "Consumer/D2C",
            "Industrials/Manufacturing",
            "Healthcare",
            "Telecom/Internet",
            "Energy/Materials",
        ]
        assert config.templates.default == "Fintech"
        assert config.rulebook.keys() == [
            "guidance", "pricing", "margin", "cash", "demand",
            "risk", "competition", "capex", "dilution",
        ]
        assert len(config.doc_types) == 4
        assert config.tabs == ("Ramp Brief", "Signals", "Checklist")

        for label in config.templates.labels():
            template = config.templates.lookup(label)
            assert len(template.kpis) == 7
            assert len(template.checklist) == 7
            assert len(template.red_flags) == 5
            assert len(template.failure_modes) == 4
            assert template.questions == ()

    def test_ramp_fintech_first_kpi(self):
        """Test that strings survive YAML unchanged."""
        fintech = load_ramp_config().templates.lookup("Fintech")
        assert fintech.kpis[0] == "Take rate / net revenue yield"
        assert fintech.checklist[4] == "Risk: credit/fraud/regulatory — what is the single point of failure?"
        assert fintech.red_flags[4] == "‘Adjusted’ profits while cash burn worsens"

    def test_earnings_tables(self):
        """Test the Earnings Brief table shape."""
        config = load_earnings_config()

        assert len(config.templates.labels()) == 4
        assert config.templates.default == "Growth / Tech"
        assert len(config.rulebook.rules) == 7
        assert "regulatory" in config.rulebook.keys()
        assert "risk" not in config.rulebook.keys()

        for label in config.templates.labels():
            template = config.templates.lookup(label)
            assert template.questions
            assert template.checklist
            assert template.kpis == ()
            assert template.failure_modes == ()

    def test_every_suggestion_has_text(self):
        """Test the signal -> suggestion mappings."""
        for config in (load_ramp_config(), load_earnings_config()):
            for key, text in config.rulebook.suggestions:
                assert key in config.rulebook.keys()
                assert text.strip()


class TestLoadVariantConfig:
    """Test YAML loading errors."""

    @pytest.fixture
    def tmpdir(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir)

    def test_missing_file_raises(self, tmpdir):
        """Test that a missing config raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_variant_config(tmpdir / "missing.yaml")

    def test_missing_rules_raises(self, tmpdir):
        """Test that a config without rules is rejected."""
        path = tmpdir / "bad.yaml"
        path.write_text("templates:\n  A:\n    kpis: [x]\n", encoding="utf-8")
        with pytest.raises(ValueError):
            load_variant_config(path)

    def test_minimal_config(self, tmpdir):
        """Test loading a minimal valid config."""
        path = tmpdir / "ok.yaml"
        path.write_text(
            "default: A\n"
            "templates:\n"
            "  A:\n"
            "    kpis: [x, y]\n"
            "rules:\n"
            "  - key: cash\n"
            "    words: [Cash Flow]\n",
            encoding="utf-8",
        )
        config = load_variant_config(path)

        assert config.templates.lookup("A").kpis == ("x", "y")
        # Trigger words are stored lower-cased; label defaults to the key
        assert config.rulebook.rules[0].words == ("cash flow",)
        assert config.rulebook.rules[0].label == "cash"
