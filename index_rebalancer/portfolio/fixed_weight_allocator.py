"""Fixed-weight allocator.

Used by indices whose strategy lists a literal target weight per asset
instead of a circulating supply. Each asset receives
``fund_value * weight`` worth of token per share; there is no cap.
"""

from typing import List, Mapping

from index_rebalancer.portfolio.base import (
    AllocationCalculator,
    StrategyAsset,
    TargetAllocation,
)
from index_rebalancer.portfolio.valuation import (
    PRECISE_UNIT,
    precise_mul,
    summarize_allocation,
    truncating_div,
)
from index_rebalancer.utils.exceptions import DegenerateAllocationError
from index_rebalancer.utils.logging import get_logger

logger = get_logger(__name__)


class FixedWeightAllocator(AllocationCalculator):
    """Allocate fund value by fixed target weights.

    ``weight_input`` of every asset is an 18-decimal fixed-point weight
    (``ether("0.05")`` for 5%).
    """

    def calculate_allocations(
        self,
        strategy_constants: Mapping[str, StrategyAsset],
        fund_value: int,
        total_supply: int,
    ) -> List[TargetAllocation]:
        if fund_value <= 0:
            raise DegenerateAllocationError(f"Fund value must be positive, got {fund_value}")

        total_weight = sum(asset.weight_input for asset in strategy_constants.values())
        if total_weight != PRECISE_UNIT:
            logger.warning(
                "Fixed weights sum to %s, not 1.0", total_weight / PRECISE_UNIT
            )

        allocations: List[TargetAllocation] = []
        for asset in strategy_constants.values():
            component_value = precise_mul(fund_value, asset.weight_input)
            new_unit = truncating_div(10**asset.decimals * component_value, asset.price)

            allocations.append(
                summarize_allocation(
                    asset,
                    new_unit,
                    total_supply,
                    allocation=asset.weight_input,
                )
            )

        logger.info("Calculated fixed-weight allocation for %d assets", len(allocations))
        return allocations
