"""Unit tests for portfolio data structures and the strategy merge."""

import pytest

from index_rebalancer.portfolio.base import (
    AllocationCalculator,
    AssetPosition,
    AssetQuote,
    AssetStrategy,
    ExecutionInfo,
    FundSnapshot,
    build_strategy_constants,
)
from index_rebalancer.portfolio.valuation import ether
from index_rebalancer.utils.exceptions import ConfigurationError

YFI = "0x0bc529c00C6401aEF6D220BE8C6Ea1667F6Ad93e"
COMP = "0xc00e94Cb662C3520282E6f5717214004A7f26888"


@pytest.fixture
def registry() -> dict:
    return {
        "YFI": AssetQuote(symbol="YFI", address=YFI, price=ether(8000), asset_id="yearn-finance"),
        "COMP": AssetQuote(symbol="COMP", address=COMP, price=ether(60), asset_id="compound"),
    }


@pytest.fixture
def strategy() -> dict:
    return {
        "COMP": AssetStrategy(
            symbol="COMP",
            weight_input=7_000_000,
            max_trade_size=ether(150),
            exchange="SushiswapIndexExchangeAdapter",
            cool_off_period=600,
        ),
        "YFI": AssetStrategy(
            symbol="YFI",
            weight_input=36_000,
            max_trade_size=ether(5),
            exchange="UniswapV3IndexExchangeAdapter",
            cool_off_period=900,
            current_unit=ether("0.001"),
        ),
    }


class TestDataValidation:
    """Test cases for dataclass field validation."""

    def test_quote_non_positive_price(self) -> None:
        """Test a quote must have a positive price."""
        with pytest.raises(ValueError, match="price must be positive"):
            AssetQuote(symbol="YFI", address=YFI, price=0)

    def test_quote_negative_decimals(self) -> None:
        """Test decimals cannot be negative."""
        with pytest.raises(ValueError, match="decimals must be non-negative"):
            AssetQuote(symbol="YFI", address=YFI, price=1, decimals=-1)

    def test_position_negative_unit(self) -> None:
        """Test a held unit cannot be negative."""
        with pytest.raises(ValueError, match="current_unit must be non-negative"):
            AssetPosition(address=YFI, current_unit=-1)

    def test_strategy_zero_max_trade_size(self) -> None:
        """Test max trade size must be positive."""
        with pytest.raises(ValueError, match="max_trade_size must be positive"):
            AssetStrategy(symbol="YFI", weight_input=1, max_trade_size=0)

    def test_strategy_negative_weight_input(self) -> None:
        """Test weight input cannot be negative."""
        with pytest.raises(ValueError, match="weight_input must be non-negative"):
            AssetStrategy(symbol="YFI", weight_input=-5, max_trade_size=1)

    def test_strategy_negative_cool_off(self) -> None:
        """Test cool-off period cannot be negative."""
        with pytest.raises(ValueError, match="cool_off_period must be non-negative"):
            AssetStrategy(symbol="YFI", weight_input=1, max_trade_size=1, cool_off_period=-1)

    def test_snapshot_negative_supply(self) -> None:
        """Test total supply cannot be negative."""
        with pytest.raises(ValueError, match="total_supply must be non-negative"):
            FundSnapshot(total_supply=-1, position_multiplier=ether(1))


class TestFundSnapshot:
    """Test cases for FundSnapshot lookups."""

    def test_execution_info_lookup_is_case_insensitive(self) -> None:
        """Test execution info is found regardless of address case."""
        info = ExecutionInfo(max_size=ether(5), exchange_name="UniswapV3IndexExchangeAdapter", cool_off_period=900)
        snapshot = FundSnapshot(
            total_supply=ether(1000),
            position_multiplier=ether(1),
            execution_info={YFI: info},
        )

        assert snapshot.get_execution_info(YFI.lower()) == info
        assert snapshot.get_execution_info(YFI.upper().replace("0X", "0x")) == info

    def test_missing_execution_info(self) -> None:
        """Test unknown addresses return None."""
        snapshot = FundSnapshot(total_supply=ether(1000), position_multiplier=ether(1))

        assert snapshot.get_execution_info(COMP) is None


class TestBuildStrategyConstants:
    """Test cases for the registry / strategy / position merge."""

    def test_strategy_order_preserved(self, registry, strategy) -> None:
        """Test the merged map follows strategy declaration order."""
        constants = build_strategy_constants(registry, strategy, [])

        assert list(constants) == ["COMP", "YFI"]

    def test_registry_fields_copied(self, registry, strategy) -> None:
        """Test registry data lands on the merged asset."""
        constants = build_strategy_constants(registry, strategy, [])

        comp = constants["COMP"]
        assert comp.address == COMP
        assert comp.price == ether(60)
        assert comp.asset_id == "compound"
        assert comp.weight_input == 7_000_000
        assert comp.exchange == "SushiswapIndexExchangeAdapter"

    def test_live_position_overrides_default_unit(self, registry, strategy) -> None:
        """Test a live position wins over the strategy default."""
        positions = [AssetPosition(address=YFI.lower(), current_unit=ether("0.002"))]

        constants = build_strategy_constants(registry, strategy, positions)

        assert constants["YFI"].current_unit == ether("0.002")

    def test_default_unit_without_position(self, registry, strategy) -> None:
        """Test the strategy default applies when nothing is held."""
        constants = build_strategy_constants(registry, strategy, [])

        assert constants["YFI"].current_unit == ether("0.001")
        assert constants["COMP"].current_unit == 0

    def test_missing_registry_entry(self, registry, strategy) -> None:
        """Test a strategy asset must be in the registry."""
        del registry["COMP"]

        with pytest.raises(ConfigurationError, match="Strategy asset COMP has no registry entry"):
            build_strategy_constants(registry, strategy, [])

    def test_quote_property(self, registry, strategy) -> None:
        """Test the merged asset exposes its market data."""
        constants = build_strategy_constants(registry, strategy, [])

        assert constants["YFI"].quote == registry["YFI"]


class TestAllocationCalculator:
    """Test cases for the abstract interface."""

    def test_cannot_instantiate(self) -> None:
        """Test the base class is abstract."""
        with pytest.raises(TypeError):
            AllocationCalculator()
