"""Unit tests for CappedSupplyAllocator."""

import logging
from typing import Dict, List

import pytest

from index_rebalancer.portfolio.base import StrategyAsset
from index_rebalancer.portfolio.capped_allocator import CappedSupplyAllocator
from index_rebalancer.portfolio.valuation import PRECISE_UNIT, ether
from index_rebalancer.utils.exceptions import DegenerateAllocationError


def make_constants(
    supplies: List[int],
    current_units: List[int],
    prices: List[int] | None = None,
) -> Dict[str, StrategyAsset]:
    """Build a strategy map with assets A0, A1, ... in order."""
    prices = prices or [ether(1)] * len(supplies)
    constants = {}
    for i, (supply, unit, price) in enumerate(zip(supplies, current_units, prices)):
        symbol = f"A{i}"
        constants[symbol] = StrategyAsset(
            symbol=symbol,
            address=f"0x{i:040x}",
            price=price,
            decimals=18,
            asset_id=symbol.lower(),
            weight_input=supply,
            max_trade_size=ether(4000),
            exchange="SushiswapIndexExchangeAdapter",
            cool_off_period=600,
            current_unit=unit,
        )
    return constants


class TestCappedSupplyAllocatorConfig:
    """Test cases for allocator configuration."""

    def test_default_config(self) -> None:
        """Test the default cap is 25%."""
        allocator = CappedSupplyAllocator()

        assert allocator.max_weight == ether("0.25")

    def test_custom_decimal_max_weight(self) -> None:
        """Test a decimal max weight is converted to fixed point."""
        allocator = CappedSupplyAllocator({"max_weight": "0.3"})

        assert allocator.max_weight == ether("0.3")

    def test_fixed_point_max_weight(self) -> None:
        """Test an already fixed-point max weight is used as is."""
        allocator = CappedSupplyAllocator({"max_weight": ether("0.4")})

        assert allocator.max_weight == ether("0.4")

    def test_invalid_max_weight_zero(self) -> None:
        """Test config validation for max_weight = 0."""
        with pytest.raises(ValueError, match="max_weight must be in"):
            CappedSupplyAllocator({"max_weight": 0})

    def test_invalid_max_weight_above_one(self) -> None:
        """Test config validation for max_weight > 1."""
        with pytest.raises(ValueError, match="max_weight must be in"):
            CappedSupplyAllocator({"max_weight": "1.5"})


class TestNoCapping:
    """Two assets weighted 40/60, equal prices, fund value 100."""

    @pytest.fixture
    def allocations(self):
        allocator = CappedSupplyAllocator({"max_weight": "0.75"})
        constants = make_constants([40, 60], [ether(50), ether(50)])
        return allocator.calculate_allocations(constants, ether(100), ether(1000))

    def test_final_allocations(self, allocations) -> None:
        """Test allocations are 0.4 and 0.6 with nothing capped."""
        assert [a.allocation for a in allocations] == [ether("0.4"), ether("0.6")]
        assert not any(a.capped for a in allocations)

    def test_redistribution_is_no_op(self, allocations) -> None:
        """Test units equal the uncapped supply-weighted units."""
        assert [a.new_unit for a in allocations] == [ether(40), ether(60)]

    def test_notionals_and_trade_counts(self, allocations) -> None:
        """Test notional, side and trade budget per asset."""
        assert allocations[0].notional_in_token == -ether(10000)
        assert allocations[0].is_buy is False
        assert allocations[0].trade_count == 3
        assert allocations[1].notional_in_token == ether(10000)
        assert allocations[1].is_buy is True
        assert allocations[1].notional_in_usd == 10000


class TestOneAssetCapped:
    """Three assets with uncapped allocations 0.10 / 0.30 / 0.60, cap 0.25."""

    @pytest.fixture
    def allocations(self):
        allocator = CappedSupplyAllocator({"max_weight": "0.25"})
        constants = make_constants([10, 30, 60], [ether(50), ether(30), ether(20)])
        return allocator.calculate_allocations(constants, ether(100), ether(1000))

    def test_largest_asset_capped(self, allocations) -> None:
        """Test only the 60% asset is capped, at exactly max weight."""
        assert [a.capped for a in allocations] == [False, False, True]
        assert allocations[2].allocation == ether("0.25")
        assert allocations[2].new_unit == ether(25)

    def test_freed_weight_redistributed_proportionally(self, allocations) -> None:
        """Test the freed 0.35 goes to the others in a 1:3 ratio."""
        # 0.10 + 0.35 * 0.25 and 0.30 + 0.35 * 0.75
        assert allocations[0].allocation == ether("0.1875")
        assert allocations[1].allocation == ether("0.5625")
        assert allocations[0].new_unit == ether("18.75")
        assert allocations[1].new_unit == ether("56.25")

    def test_allocations_sum_to_one(self, allocations) -> None:
        """Test mass conservation after redistribution."""
        assert sum(a.allocation for a in allocations) == PRECISE_UNIT

    def test_redistributed_asset_not_recapped(self, allocations) -> None:
        """Test an asset pushed over the cap by redistribution stays uncapped."""
        assert allocations[1].allocation > ether("0.25")
        assert allocations[1].capped is False

    def test_over_cap_warning_logged(self, caplog) -> None:
        """Test redistribution above the cap is reported."""
        allocator = CappedSupplyAllocator({"max_weight": "0.25"})
        constants = make_constants([10, 30, 60], [ether(50), ether(30), ether(20)])

        with caplog.at_level(logging.WARNING):
            allocator.calculate_allocations(constants, ether(100), ether(1000))

        assert "Redistribution pushed asset above max weight" in caplog.text
        assert "asset=A1" in caplog.text

    def test_sell_of_capped_asset(self, allocations) -> None:
        """Test notional of the capped asset from its clamped unit."""
        # (25 - 20) * 1000
        assert allocations[2].notional_in_token == ether(5000)


class TestDegenerateCases:
    """Test cases for arithmetic with no valid result."""

    def test_all_assets_capped_raises(self) -> None:
        """Test three equal assets under a 25% cap cannot be allocated."""
        allocator = CappedSupplyAllocator({"max_weight": "0.25"})
        constants = make_constants([30, 30, 30], [ether(30)] * 3)

        with pytest.raises(DegenerateAllocationError, match="No uncapped weight"):
            allocator.calculate_allocations(constants, ether(90), ether(1000))

    def test_zero_fund_value_raises(self) -> None:
        """Test an empty fund cannot be allocated."""
        allocator = CappedSupplyAllocator()
        constants = make_constants([10, 20], [0, 0])

        with pytest.raises(DegenerateAllocationError, match="Fund value must be positive"):
            allocator.calculate_allocations(constants, 0, ether(1000))

    def test_zero_divisor_raises(self) -> None:
        """Test supply * price smaller than fund value."""
        allocator = CappedSupplyAllocator()
        constants = make_constants([1, 1, 1], [ether(30)] * 3)

        with pytest.raises(DegenerateAllocationError, match="divisor is zero"):
            allocator.calculate_allocations(constants, ether(90), ether(1000))


class TestAllocationProperties:
    """Property checks on an uneven four-asset index."""

    @pytest.fixture
    def constants(self) -> Dict[str, StrategyAsset]:
        return make_constants(
            supplies=[1000, 333, 7777, 5000],
            current_units=[ether(5), ether(3), ether(20), ether(7)],
            prices=[ether(2), ether(5), ether("0.3"), ether(7)],
        )

    @pytest.fixture
    def allocator(self) -> CappedSupplyAllocator:
        return CappedSupplyAllocator({"max_weight": "0.25"})

    def test_capped_assets_at_max_weight(self, allocator, constants) -> None:
        """Test clamped assets hold exactly max weight of fund value."""
        fund_value = ether(100)
        allocations = allocator.calculate_allocations(constants, fund_value, ether(1000))

        capped = [a for a in allocations if a.capped]
        assert [a.asset for a in capped] == ["A3"]
        for a in capped:
            assert a.allocation == allocator.max_weight
            price = constants[a.asset].price
            assert price * a.new_unit // fund_value <= allocator.max_weight

    def test_mass_conservation(self, allocator, constants) -> None:
        """Test allocations sum to one within rounding."""
        allocations = allocator.calculate_allocations(constants, ether(100), ether(1000))

        total = sum(a.allocation for a in allocations)
        assert abs(total - PRECISE_UNIT) <= 2 * len(allocations)

    def test_registry_order_preserved(self, allocator, constants) -> None:
        """Test output order follows the strategy map."""
        allocations = allocator.calculate_allocations(constants, ether(100), ether(1000))

        assert [a.asset for a in allocations] == ["A0", "A1", "A2", "A3"]

    def test_deterministic(self, allocator, constants) -> None:
        """Test identical inputs give identical results."""
        first = allocator.calculate_allocations(constants, ether(100), ether(1000))
        second = allocator.calculate_allocations(constants, ether(100), ether(1000))

        assert first == second
