"""
Tests for governance configuration loading.
"""

from decimal import Decimal

import pytest
import yaml

from bid_config import DEFAULT_CONFIG_PATH, get_active_config
from bid_config.bridges import build_advisor, build_classifier
from bid_config.loader import compute_checksum, load_yaml_file, parse_config
from bid_kernel.domain.variance import VarianceSignificance


def _document(**overrides):
    data = {
        "config_id": "test-config",
        "version": 2,
        "variance": {
            "breakpoints": {"minor": 2, "moderate": 5, "major": 15, "critical": 30},
            "inclusive_lower_bounds": False,
        },
        "strategy": {"actionable_tiers": ["major", "critical"]},
        "retry": {"max_conflict_retries": 3},
    }
    data.update(overrides)
    return data


class TestDefaults:

    def test_packaged_defaults(self):
        config = get_active_config()

        assert config.config_id == "bid-governance-defaults"
        assert config.variance.breakpoints == (
            Decimal("2"), Decimal("5"), Decimal("15"), Decimal("30"),
        )
        assert config.variance.inclusive_lower_bounds is False
        assert set(config.strategy.actionable_tiers) == {"major", "critical"}
        assert config.retry.max_conflict_retries == 3

    def test_checksum_is_deterministic(self):
        first = get_active_config()
        second = get_active_config()

        assert first.checksum == second.checksum
        assert first.checksum == compute_checksum(load_yaml_file(DEFAULT_CONFIG_PATH))

    def test_emits_config_trace(self, captured_logs):
        config = get_active_config()

        traces = [r for r in captured_logs() if r["message"] == "BID_CONFIG_TRACE"]
        assert traces
        assert traces[-1]["checksum"] == config.checksum


class TestOverrides:

    def test_custom_file(self, tmp_path):
        path = tmp_path / "governance.yaml"
        doc = _document(variance={
            "breakpoints": {"minor": 1, "moderate": 2.5, "major": 10, "critical": 25},
            "inclusive_lower_bounds": True,
        })
        path.write_text(yaml.safe_dump(doc))

        config = get_active_config(path)

        assert config.variance.moderate_pct == Decimal("2.5")
        assert config.variance.inclusive_lower_bounds is True

    def test_bridges_apply_config(self):
        config = parse_config(_document(
            variance={
                "breakpoints": {"minor": 1, "moderate": 3, "major": 8, "critical": 20},
            },
            strategy={"actionable_tiers": ["moderate", "major", "critical"]},
        ))

        classifier = build_classifier(config)
        advisor = build_advisor(config)
        result = classifier.classify(
            governing_quantity=Decimal("106"), reference_quantity=Decimal("100"),
        )

        assert result.significance == VarianceSignificance.MODERATE
        assert advisor.recommend(variance=result).strategy is not None

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "missing.yaml")


class TestValidation:

    def test_unordered_breakpoints_rejected(self):
        doc = _document(variance={
            "breakpoints": {"minor": 2, "moderate": 20, "major": 15, "critical": 30},
        })

        with pytest.raises(ValueError, match="strictly increasing"):
            parse_config(doc)

    def test_missing_breakpoint_rejected(self):
        doc = _document(variance={"breakpoints": {"minor": 2, "moderate": 5}})

        with pytest.raises(KeyError):
            parse_config(doc)

    def test_unknown_tier_rejected(self):
        doc = _document(strategy={"actionable_tiers": ["severe"]})

        with pytest.raises(ValueError, match="unknown tiers"):
            parse_config(doc)

    def test_match_tier_rejected(self):
        doc = _document(strategy={"actionable_tiers": ["match", "major"]})

        with pytest.raises(ValueError, match="match"):
            parse_config(doc)

    @pytest.mark.parametrize("retries", [0, -1, "three", True])
    def test_bad_retry_budget_rejected(self, retries):
        doc = _document(retry={"max_conflict_retries": retries})

        with pytest.raises(ValueError, match="max_conflict_retries"):
            parse_config(doc)

    def test_non_numeric_breakpoint_rejected(self):
        doc = _document(variance={
            "breakpoints": {"minor": "two", "moderate": 5, "major": 15, "critical": 30},
        })

        with pytest.raises(ValueError, match="minor"):
            parse_config(doc)
