"""
Tests for fee projection and the fee estimator.
"""

import pytest

from rescuer.core.execution import (
    BASE_FEE_MAX_CHANGE_DENOMINATOR,
    GWEI,
    FeeEstimator,
    project_base_fee,
)


# =============================================================================
# Base fee projection
# =============================================================================

class TestProjectBaseFee:
    """Tests for compounding the per-block base fee bound."""

    def test_two_blocks_from_100(self):
        """100 -> 112 -> 126 under the 1/8 bound."""
        assert project_base_fee(100, 2) == 126

    def test_zero_blocks_is_identity(self):
        assert project_base_fee(123_456, 0) == 123_456

    def test_small_base_fee_still_grows(self):
        """Integer division would stall below 8 wei; growth is at least one wei."""
        assert project_base_fee(1, 3) == 4
        assert project_base_fee(0, 2) == 2

    def test_monotonic_in_base_fee(self):
        results = [project_base_fee(base, 2) for base in range(0, 2_000, 37)]
        assert results == sorted(results)

    def test_monotonic_in_distance(self):
        results = [project_base_fee(30 * GWEI, n) for n in range(6)]
        assert results == sorted(results)
        assert len(set(results)) == len(results)

    def test_never_below_current(self):
        for base in (0, 1, 7, 8, 100, 15 * GWEI):
            assert project_base_fee(base, 1) > base

    def test_default_denominator(self):
        assert BASE_FEE_MAX_CHANGE_DENOMINATOR == 8

    def test_negative_inputs_rejected(self):
        with pytest.raises(ValueError):
            project_base_fee(-1, 2)
        with pytest.raises(ValueError):
            project_base_fee(100, -1)


# =============================================================================
# Fee estimator
# =============================================================================

class TestFeeEstimator:
    """Tests for FeeEstimator.estimate."""

    def test_max_fee_is_projected_plus_priority(self):
        """Base fee 100, priority 20, two blocks ahead gives a max fee of 146."""
        fees = FeeEstimator(priority_fee_per_gas=20, blocks_in_future=2).estimate(100)

        assert fees.base_fee_per_gas == 100
        assert fees.projected_base_fee == 126
        assert fees.max_priority_fee_per_gas == 20
        assert fees.max_fee_per_gas == 146
        assert fees.blocks_in_future == 2

    def test_max_fee_covers_priority_fee(self):
        fees = FeeEstimator(priority_fee_per_gas=2 * GWEI).estimate(40 * GWEI)
        assert fees.max_fee_per_gas >= fees.max_priority_fee_per_gas
        assert fees.max_fee_per_gas - fees.max_priority_fee_per_gas == fees.projected_base_fee

    def test_same_input_same_output(self):
        estimator = FeeEstimator(priority_fee_per_gas=3 * GWEI, blocks_in_future=3)
        assert estimator.estimate(17 * GWEI) == estimator.estimate(17 * GWEI)

    def test_override_blocks_in_future(self):
        estimator = FeeEstimator(priority_fee_per_gas=0, blocks_in_future=2)
        fees = estimator.estimate(100, blocks_in_future=1)
        assert fees.projected_base_fee == 112
        assert fees.blocks_in_future == 1

    def test_zero_priority_fee(self):
        fees = FeeEstimator(priority_fee_per_gas=0).estimate(100)
        assert fees.max_fee_per_gas == 126
