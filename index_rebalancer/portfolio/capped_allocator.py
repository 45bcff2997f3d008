"""Supply-weighted allocator with a per-asset concentration cap.

Each asset's uncapped weight is proportional to ``supply * price``. Any
asset above the maximum weight is clamped, and the weight removed from
clamped assets is handed to the remaining assets in proportion to their
original weights.

Algorithm:
1. divisor = sum(supply * price) / fund_value
2. new_unit = supply * PRECISE_UNIT / divisor, allocation = price * new_unit / fund_value
3. Clamp assets whose allocation exceeds max_weight
4. Sum allocations after clamping, and the clamped mass (max_weight * n_capped)
5. Scale each uncapped allocation into the slack left by clamped assets
6. Clamped assets keep the unit from step 3

This is a single pass. An asset pushed above max_weight by step 5 is not
clamped again; changing that would change the target units the fund
contract is checked against, so it is logged and left alone.
"""

from typing import Dict, List, Mapping, Optional

from index_rebalancer.portfolio.base import (
    AllocationCalculator,
    StrategyAsset,
    TargetAllocation,
)
from index_rebalancer.portfolio.valuation import (
    PRECISE_UNIT,
    ether,
    precise_div,
    precise_mul,
    summarize_allocation,
    truncating_div,
)
from index_rebalancer.utils.exceptions import DegenerateAllocationError
from index_rebalancer.utils.logging import get_logger, log_with_context

logger = get_logger(__name__)


class CappedSupplyAllocator(AllocationCalculator):
    """Supply-weighted allocation with cap and proportional redistribution.

    Configuration Parameters:
        max_weight: Maximum share of fund value for one asset (default 0.25).
            Accepts a decimal ("0.25", 0.25) or an 18-decimal integer.

    Example:
        >>> allocator = CappedSupplyAllocator({"max_weight": "0.25"})
        >>> allocations = allocator.calculate_allocations(
        ...     constants, fund_value, total_supply
        ... )
        >>> [a.asset for a in allocations if a.capped]
        ['UNI']
    """

    def __init__(self, config: Optional[Dict] = None):
        """Initialize allocator with configuration.

        Args:
            config: Configuration dictionary. Uses a 25% cap if not provided.
        """
        config = config or {}

        max_weight = config.get("max_weight", "0.25")
        if isinstance(max_weight, int) and max_weight > 1:
            self.max_weight = max_weight
        else:
            self.max_weight = ether(max_weight)

        self._validate_config()

    def _validate_config(self) -> None:
        """Validate configuration parameters."""
        if not 0 < self.max_weight <= PRECISE_UNIT:
            raise ValueError(
                f"max_weight must be in (0, 1], got {self.max_weight / PRECISE_UNIT}"
            )

    def calculate_allocations(
        self,
        strategy_constants: Mapping[str, StrategyAsset],
        fund_value: int,
        total_supply: int,
    ) -> List[TargetAllocation]:
        """Calculate capped target units.

        Args:
            strategy_constants: Merged per-asset map, weight_input = supply
            fund_value: Fund value per share, 18-decimal fixed point
            total_supply: Fund token total supply

        Returns:
            One TargetAllocation per asset, in registry order

        Raises:
            DegenerateAllocationError: If the fund has no value, the weighting
                divisor truncates to zero, or no uncapped weight is left to
                absorb the clamped mass
        """
        if fund_value <= 0:
            raise DegenerateAllocationError(f"Fund value must be positive, got {fund_value}")

        # Step 1: Weighting divisor
        divisor = truncating_div(
            sum(asset.weight_input * asset.price for asset in strategy_constants.values()),
            fund_value,
        )
        if divisor == 0:
            raise DegenerateAllocationError(
                "Weighting divisor is zero; supply * price is smaller than fund value"
            )

        # Steps 2-3: Uncapped units, clamped where above max_weight
        new_units: Dict[str, int] = {}
        uncapped_allocations: Dict[str, int] = {}
        capped_assets: List[str] = []
        sum_of_capped_allocations = 0

        for symbol, asset in strategy_constants.items():
            new_unit = truncating_div(asset.weight_input * PRECISE_UNIT, divisor)
            allocation = truncating_div(asset.price * new_unit, fund_value)

            if allocation > self.max_weight:
                log_with_context(
                    logger, "info", "Asset capped",
                    asset=symbol, allocation=allocation, max_weight=self.max_weight,
                )
                capped_assets.append(symbol)
                new_unit = truncating_div(self.max_weight * fund_value, asset.price)
                allocation = self.max_weight
            else:
                uncapped_allocations[symbol] = allocation

            sum_of_capped_allocations += allocation
            new_units[symbol] = new_unit

        # Step 4: Mass held by clamped assets
        capped_allocation_sum = self.max_weight * len(capped_assets)
        uncapped_mass = sum_of_capped_allocations - capped_allocation_sum

        if uncapped_mass <= 0:
            raise DegenerateAllocationError(
                f"No uncapped weight to redistribute into "
                f"({len(capped_assets)} of {len(strategy_constants)} assets capped)"
            )

        # Steps 5-6: Redistribute into uncapped assets
        allocations: List[TargetAllocation] = []
        for symbol, asset in strategy_constants.items():
            if symbol in uncapped_allocations:
                allocation = uncapped_allocations[symbol]
                allocation_sans_capped = precise_div(allocation, uncapped_mass)
                additional_allocation = precise_mul(
                    allocation_sans_capped, PRECISE_UNIT - sum_of_capped_allocations
                )
                final_allocation = allocation + additional_allocation
                new_unit = truncating_div(final_allocation * fund_value, asset.price)

                if final_allocation > self.max_weight:
                    log_with_context(
                        logger, "warning", "Redistribution pushed asset above max weight",
                        asset=symbol, allocation=final_allocation, max_weight=self.max_weight,
                    )
                capped = False
            else:
                final_allocation = self.max_weight
                new_unit = new_units[symbol]
                capped = True

            allocations.append(
                summarize_allocation(
                    asset,
                    new_unit,
                    total_supply,
                    allocation=final_allocation,
                    capped=capped,
                )
            )

        logger.info(
            "Calculated capped allocation for %d assets (%d capped)",
            len(allocations),
            len(capped_assets),
        )
        return allocations
