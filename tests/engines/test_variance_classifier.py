"""
Tests for the variance classifier.

Covers:
- Direction and significance against a 100-unit reference
- Breakpoint boundaries, strict and inclusive
- Missing or zero reference
- Reference selection precedence
- Classification from quantity records
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from bid_engines.variance import SignificanceThresholds, VarianceClassifier
from bid_kernel.domain.quantity import QuantityRecordInfo, QuantitySource
from bid_kernel.domain.variance import VarianceDirection, VarianceSignificance

_ENTERED_AT = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _record(source, quantity, is_governing=False, line_item_id=None):
    return QuantityRecordInfo(
        id=uuid4(),
        line_item_id=line_item_id or uuid4(),
        source=source,
        quantity=Decimal(quantity),
        unit="CY",
        is_governing=is_governing,
        entered_at=_ENTERED_AT,
    )


class TestClassify:
    """Classification against a reference of 100."""

    def setup_method(self):
        self.classifier = VarianceClassifier()

    @pytest.mark.parametrize(
        "governing, direction, significance",
        [
            ("100", VarianceDirection.MATCH, VarianceSignificance.MATCH),
            ("103", VarianceDirection.OVER, VarianceSignificance.MINOR),
            ("110", VarianceDirection.OVER, VarianceSignificance.MODERATE),
            ("120", VarianceDirection.OVER, VarianceSignificance.MAJOR),
            ("135", VarianceDirection.OVER, VarianceSignificance.CRITICAL),
            ("85", VarianceDirection.UNDER, VarianceSignificance.MODERATE),
        ],
    )
    def test_reference_examples(self, governing, direction, significance):
        result = self.classifier.classify(
            governing_quantity=Decimal(governing),
            reference_quantity=Decimal("100"),
        )

        assert result.direction == direction
        assert result.significance == significance

    def test_pct_is_signed(self):
        over = self.classifier.classify(
            governing_quantity=Decimal("140"), reference_quantity=Decimal("100"),
        )
        under = self.classifier.classify(
            governing_quantity=Decimal("60"), reference_quantity=Decimal("100"),
        )

        assert over.variance_pct == Decimal("40.0000")
        assert under.variance_pct == Decimal("-40.0000")
        assert under.abs_pct == Decimal("40.0000")

    def test_pct_rounds_half_up_to_four_places(self):
        result = self.classifier.classify(
            governing_quantity=Decimal("1"), reference_quantity=Decimal("3"),
        )

        # (1 - 3) / 3 * 100 = -66.6666...
        assert result.variance_pct == Decimal("-66.6667")

    def test_small_difference_is_match_tier(self):
        result = self.classifier.classify(
            governing_quantity=Decimal("101"), reference_quantity=Decimal("100"),
        )

        assert result.direction == VarianceDirection.OVER
        assert result.significance == VarianceSignificance.MATCH

    def test_missing_reference_is_insufficient_data(self):
        result = self.classifier.classify(
            governing_quantity=Decimal("50"), reference_quantity=None,
        )

        assert result.variance_pct is None
        assert result.direction == VarianceDirection.MATCH
        assert result.significance == VarianceSignificance.MATCH
        assert result.has_reference is False

    def test_zero_reference_is_insufficient_data(self):
        result = self.classifier.classify(
            governing_quantity=Decimal("50"), reference_quantity=Decimal("0"),
        )

        assert result.variance_pct is None
        assert result.significance == VarianceSignificance.MATCH

    def test_zero_governing_is_full_under(self):
        result = self.classifier.classify(
            governing_quantity=Decimal("0"), reference_quantity=Decimal("100"),
        )

        assert result.variance_pct == Decimal("-100.0000")
        assert result.direction == VarianceDirection.UNDER
        assert result.significance == VarianceSignificance.CRITICAL

    def test_huge_governing_keeps_four_places(self):
        result = self.classifier.classify(
            governing_quantity=Decimal("1E+25"), reference_quantity=Decimal("1"),
        )

        assert result.variance_pct == Decimal("999999999999999999999999900.0000")
        assert result.direction == VarianceDirection.OVER
        assert result.significance == VarianceSignificance.CRITICAL

    def test_column_extremes(self):
        result = self.classifier.classify(
            governing_quantity=Decimal("99999999999999999999999999999.999999999"),
            reference_quantity=Decimal("0.000000001"),
        )

        assert result.variance_pct > 0
        assert result.variance_pct.as_tuple().exponent == -4


class TestBreakpointBoundaries:
    """A breakpoint value stays in the lower tier unless bounds are inclusive."""

    @pytest.mark.parametrize(
        "governing, expected",
        [
            ("102", VarianceSignificance.MATCH),
            ("105", VarianceSignificance.MINOR),
            ("115", VarianceSignificance.MODERATE),
            ("85", VarianceSignificance.MODERATE),
            ("130", VarianceSignificance.MAJOR),
        ],
    )
    def test_strict_boundaries(self, governing, expected):
        classifier = VarianceClassifier()

        result = classifier.classify(
            governing_quantity=Decimal(governing), reference_quantity=Decimal("100"),
        )

        assert result.significance == expected

    @pytest.mark.parametrize(
        "governing, expected",
        [
            ("102", VarianceSignificance.MINOR),
            ("105", VarianceSignificance.MODERATE),
            ("85", VarianceSignificance.MAJOR),
            ("130", VarianceSignificance.CRITICAL),
        ],
    )
    def test_inclusive_boundaries(self, governing, expected):
        classifier = VarianceClassifier(
            SignificanceThresholds(inclusive_lower_bounds=True)
        )

        result = classifier.classify(
            governing_quantity=Decimal(governing), reference_quantity=Decimal("100"),
        )

        assert result.significance == expected

    def test_custom_breakpoints(self):
        classifier = VarianceClassifier(SignificanceThresholds(
            minor=Decimal("1"),
            moderate=Decimal("3"),
            major=Decimal("8"),
            critical=Decimal("20"),
        ))

        result = classifier.classify(
            governing_quantity=Decimal("110"), reference_quantity=Decimal("100"),
        )

        assert result.significance == VarianceSignificance.MAJOR

    def test_breakpoints_must_increase(self):
        with pytest.raises(ValueError, match="strictly increasing"):
            SignificanceThresholds(major=Decimal("40"))

    def test_breakpoints_must_be_non_negative(self):
        with pytest.raises(ValueError, match="non-negative"):
            SignificanceThresholds(minor=Decimal("-1"))


class TestReferenceSelection:

    def test_plan_summary_preferred(self):
        records = [
            _record(QuantitySource.EBSX_IMPORT, "100", is_governing=True),
            _record(QuantitySource.PLAN_SUMMARY, "110"),
        ]

        reference = VarianceClassifier.select_reference(records)

        assert reference.source == QuantitySource.PLAN_SUMMARY

    def test_falls_back_to_ebsx(self):
        records = [
            _record(QuantitySource.EBSX_IMPORT, "100"),
            _record(QuantitySource.CONTRACTOR_TAKEOFF, "140", is_governing=True),
        ]

        reference = VarianceClassifier.select_reference(records)

        assert reference.source == QuantitySource.EBSX_IMPORT

    def test_independent_of_governing(self):
        records = [
            _record(QuantitySource.EBSX_IMPORT, "100"),
            _record(QuantitySource.PLAN_SUMMARY, "100", is_governing=True),
        ]

        reference = VarianceClassifier.select_reference(records)

        assert reference.source == QuantitySource.PLAN_SUMMARY

    def test_no_candidate(self):
        records = [_record(QuantitySource.ADDENDUM, "5", is_governing=True)]

        assert VarianceClassifier.select_reference(records) is None


class TestClassifyRecords:

    def setup_method(self):
        self.classifier = VarianceClassifier()

    def test_takeoff_governing_against_plan(self):
        records = [
            _record(QuantitySource.EBSX_IMPORT, "100"),
            _record(QuantitySource.PLAN_SUMMARY, "100"),
            _record(QuantitySource.CONTRACTOR_TAKEOFF, "140", is_governing=True),
        ]

        result = self.classifier.classify_records(records=records)

        assert result.variance_pct == Decimal("40.0000")
        assert result.direction == VarianceDirection.OVER
        assert result.significance == VarianceSignificance.CRITICAL
        assert result.governing_source == QuantitySource.CONTRACTOR_TAKEOFF
        assert result.reference_source == QuantitySource.PLAN_SUMMARY

    def test_baseline_only_is_match(self):
        records = [_record(QuantitySource.EBSX_IMPORT, "100", is_governing=True)]

        result = self.classifier.classify_records(records=records)

        assert result.variance_pct == Decimal("0.0000")
        assert result.direction == VarianceDirection.MATCH
        assert result.governing_quantity == Decimal("100")

    def test_no_records(self):
        result = self.classifier.classify_records(records=[])

        assert result.governing_quantity is None
        assert result.variance_pct is None


class TestTracing:

    def test_emits_engine_trace(self, captured_logs):
        VarianceClassifier().classify(
            governing_quantity=Decimal("120"), reference_quantity=Decimal("100"),
        )

        traces = [r for r in captured_logs() if r["message"] == "BID_ENGINE_TRACE"]
        assert traces
        assert traces[-1]["engine_name"] == "variance"
        assert len(traces[-1]["input_fingerprint"]) == 16
