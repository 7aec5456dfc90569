"""
Property-based tests for quantity governance and variance classification.

Random operation sequences must never leave a line item without exactly
one governing record, and the classifier must agree with plain arithmetic
on direction and ordering of tiers.
"""

from decimal import Decimal
from uuid import uuid4

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from bid_engines.variance import SignificanceThresholds, VarianceClassifier
from bid_kernel.domain.quantity import QuantitySource
from bid_kernel.domain.variance import VarianceDirection, VarianceSignificance
from bid_kernel.exceptions import GovernanceError

EDITABLE_SOURCES = [s for s in QuantitySource if s != QuantitySource.EBSX_IMPORT]

quantities = st.integers(min_value=0, max_value=100_000).map(Decimal)
positive_quantities = st.integers(min_value=1, max_value=100_000).map(Decimal)
percentages = st.decimals(
    min_value=Decimal("0"), max_value=Decimal("500"), places=4,
    allow_nan=False, allow_infinity=False,
)

operations = st.lists(
    st.one_of(
        st.tuples(st.just("write"), st.sampled_from(EDITABLE_SOURCES), quantities),
        st.tuples(st.just("govern"), st.sampled_from(list(QuantitySource))),
        st.tuples(st.just("delete"), st.sampled_from(list(QuantitySource))),
    ),
    min_size=1,
    max_size=12,
)


def _record_id(governance, line_item_id, source):
    for record in governance.list_records(line_item_id):
        if record.source == source:
            return record.id
    return None


def _apply(governance, line_item_id, op):
    kind, source = op[0], op[1]
    if kind == "write":
        governance.add_or_update_record(line_item_id, source, op[2], "CY")
        return

    record_id = _record_id(governance, line_item_id, source)
    if record_id is None:
        return
    if kind == "govern":
        governance.set_governing(line_item_id, record_id)
    else:
        governance.delete_record(line_item_id, record_id)


class TestGoverningInvariant:

    @settings(
        max_examples=40,
        deadline=None,
        suppress_health_check=[HealthCheck.function_scoped_fixture],
    )
    @given(ops=operations)
    def test_exactly_one_governing_record(self, governance, project_id, ops):
        item = governance.import_line_item(
            project_id=project_id,
            item_number=f"P-{uuid4().hex[:8]}",
            description="Property item",
            unit="CY",
            base_quantity=Decimal("100"),
        )

        for op in ops:
            try:
                _apply(governance, item.id, op)
            except GovernanceError:
                # Deleting the governing record or the baseline is refused.
                pass

            records = governance.list_records(item.id)
            governing = [r for r in records if r.is_governing]
            assert len(governing) == 1
            assert any(r.source == QuantitySource.EBSX_IMPORT for r in records)

            variance = governance.get_variance(item.id)
            assert variance.governing_source == governing[0].source
            assert variance.governing_quantity == governing[0].quantity


class TestClassifierProperties:

    @given(governing=quantities, reference=positive_quantities)
    def test_direction_follows_sign(self, governing, reference):
        result = VarianceClassifier().classify(
            governing_quantity=governing, reference_quantity=reference,
        )

        if result.variance_pct > 0:
            assert result.direction == VarianceDirection.OVER
        elif result.variance_pct < 0:
            assert result.direction == VarianceDirection.UNDER
        else:
            assert result.direction == VarianceDirection.MATCH
            assert result.significance == VarianceSignificance.MATCH

        if governing > reference:
            assert result.direction != VarianceDirection.UNDER
        if governing < reference:
            assert result.direction != VarianceDirection.OVER

    @given(governing=quantities)
    def test_zero_reference_is_insufficient(self, governing):
        result = VarianceClassifier().classify(
            governing_quantity=governing, reference_quantity=Decimal("0"),
        )

        assert result.variance_pct is None
        assert result.significance == VarianceSignificance.MATCH

    @given(a=percentages, b=percentages, inclusive=st.booleans())
    def test_tier_is_monotone_in_magnitude(self, a, b, inclusive):
        thresholds = SignificanceThresholds(inclusive_lower_bounds=inclusive)
        low, high = sorted((a, b))

        assert thresholds.tier_for(low).rank <= thresholds.tier_for(high).rank

    @given(governing=quantities, reference=positive_quantities)
    def test_sign_symmetric_significance(self, governing, reference):
        """Tier depends on magnitude only, never on direction."""
        classifier = VarianceClassifier()
        result = classifier.classify(
            governing_quantity=governing, reference_quantity=reference,
        )

        assert result.significance == classifier.thresholds.tier_for(abs(result.variance_pct))
