"""
Fee estimation for bundles targeting a future block.

EIP-1559 lets the base fee rise by at most 1/8 per block when the parent
block is full. Compounding that bound over the blocks between the
observed head and the target block gives a max fee that stays valid even
under sustained congestion.
"""

from dataclasses import dataclass
from typing import Optional

from .models import FeeBounds


BASE_FEE_MAX_CHANGE_DENOMINATOR = 8
GWEI = 10**9


def project_base_fee(
    base_fee_per_gas: int,
    blocks_in_future: int,
    denominator: int = BASE_FEE_MAX_CHANGE_DENOMINATOR,
) -> int:
    """Worst-case base fee ``blocks_in_future`` blocks after the observed one.

    Each step applies the protocol's full-block increase: the parent base
    fee plus ``parent // denominator``, never less than one wei.
    """
    if base_fee_per_gas < 0:
        raise ValueError("base fee cannot be negative")
    if blocks_in_future < 0:
        raise ValueError("blocks_in_future cannot be negative")

    projected = base_fee_per_gas
    for _ in range(blocks_in_future):
        projected += max(projected // denominator, 1)
    return projected


@dataclass(frozen=True)
class FeeEstimator:
    """Derives EIP-1559 fee bounds for a target block from the head base fee."""

    priority_fee_per_gas: int
    blocks_in_future: int = 2
    denominator: int = BASE_FEE_MAX_CHANGE_DENOMINATOR

    def estimate(self, base_fee_per_gas: int, blocks_in_future: Optional[int] = None) -> FeeBounds:
        offset = self.blocks_in_future if blocks_in_future is None else blocks_in_future
        projected = project_base_fee(base_fee_per_gas, offset, self.denominator)
        return FeeBounds(
            base_fee_per_gas=base_fee_per_gas,
            projected_base_fee=projected,
            max_priority_fee_per_gas=self.priority_fee_per_gas,
            max_fee_per_gas=projected + self.priority_fee_per_gas,
            blocks_in_future=offset,
        )
