"""Core data structures and the allocation contract.

This module defines the typed records that flow through a rebalance
calculation and the abstract interface every allocation method implements.

Flow:
- AssetQuote / AssetStrategy / AssetPosition: inputs from the registry,
  the index strategy and the fund contract
- StrategyAsset: the merged per-asset view built by build_strategy_constants
- TargetAllocation: per-asset result of an AllocationCalculator
- FundSnapshot / ExecutionInfo: contract state used for reporting
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping

from index_rebalancer.utils.exceptions import ConfigurationError
from index_rebalancer.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class AssetQuote:
    """Market data for one asset.

    Attributes:
        symbol: Registry key (e.g. "YFI")
        address: Token contract address
        price: 18-decimal fixed-point USD price
        decimals: Native decimal count of the token
        asset_id: External id used in the exported trade order
    """

    symbol: str
    address: str
    price: int
    decimals: int = 18
    asset_id: str = ""

    def __post_init__(self):
        """Validate quote fields."""
        if self.price <= 0:
            raise ValueError(f"price must be positive, got {self.price} for {self.symbol}")
        if self.decimals < 0:
            raise ValueError(
                f"decimals must be non-negative, got {self.decimals} for {self.symbol}"
            )


@dataclass(frozen=True)
class AssetPosition:
    """Current per-share holding of one asset, read from the fund contract."""

    address: str
    current_unit: int

    def __post_init__(self):
        if self.current_unit < 0:
            raise ValueError(
                f"current_unit must be non-negative, got {self.current_unit}"
            )


@dataclass(frozen=True)
class AssetStrategy:
    """Static per-index strategy parameters for one asset.

    Attributes:
        symbol: Registry key of the asset
        weight_input: Circulating supply (supply-weighted index) or
            fixed-point target weight (fixed-weight index)
        max_trade_size: Largest single trade, 18-decimal fixed point
        exchange: Name of the exchange adapter used for this asset
        cool_off_period: Seconds between trades of this asset
        current_unit: Default unit when the fund holds no position
    """

    symbol: str
    weight_input: int
    max_trade_size: int
    exchange: str = ""
    cool_off_period: int = 0
    current_unit: int = 0

    def __post_init__(self):
        """Validate strategy fields."""
        if self.weight_input < 0:
            raise ValueError(
                f"weight_input must be non-negative, got {self.weight_input} for {self.symbol}"
            )
        if self.max_trade_size <= 0:
            raise ValueError(
                f"max_trade_size must be positive, got {self.max_trade_size} for {self.symbol}"
            )
        if self.cool_off_period < 0:
            raise ValueError(
                f"cool_off_period must be non-negative, got {self.cool_off_period} for {self.symbol}"
            )


@dataclass(frozen=True)
class StrategyAsset:
    """Registry data, strategy parameters and live position for one asset."""

    symbol: str
    address: str
    price: int
    decimals: int
    asset_id: str
    weight_input: int
    max_trade_size: int
    exchange: str
    cool_off_period: int
    current_unit: int

    @property
    def quote(self) -> AssetQuote:
        return AssetQuote(
            symbol=self.symbol,
            address=self.address,
            price=self.price,
            decimals=self.decimals,
            asset_id=self.asset_id,
        )


@dataclass
class TargetAllocation:
    """Per-asset result of an allocation calculation.

    Attributes:
        asset: Asset symbol
        current_unit: Unit currently held per fund share
        new_unit: Target unit per fund share
        notional_in_token: Token amount to trade across the whole fund
            (negative = sell)
        notional_in_usd: USD value of notional_in_token
        trade_count: Number of trades budgeted for this asset
        is_buy: True when notional_in_token >= 0
        exchange: Exchange adapter name
        max_trade_size: Largest single trade, in native token units
        cool_off_period: Seconds between trades
        allocation: Final share of fund value, 18-decimal fixed point
        capped: Whether the asset was clamped to the maximum weight
    """

    asset: str
    current_unit: int
    new_unit: int
    notional_in_token: int
    notional_in_usd: int
    trade_count: int
    is_buy: bool
    exchange: str
    max_trade_size: int
    cool_off_period: int
    allocation: int = 0
    capped: bool = False


@dataclass(frozen=True)
class ExecutionInfo:
    """On-chain execution settings of one fund component."""

    max_size: int
    exchange_name: str
    cool_off_period: int
    target_unit: int = 0


@dataclass
class FundSnapshot:
    """Fund contract state supplied by an external reader.

    Attributes:
        total_supply: Fund token total supply
        position_multiplier: Fund position multiplier
        positions: Current per-share holdings
        components: Component addresses in contract order
        execution_info: Execution settings keyed by lower-cased address
    """

    total_supply: int
    position_multiplier: int
    positions: List[AssetPosition] = field(default_factory=list)
    components: List[str] = field(default_factory=list)
    execution_info: Dict[str, ExecutionInfo] = field(default_factory=dict)

    def __post_init__(self):
        if self.total_supply < 0:
            raise ValueError(f"total_supply must be non-negative, got {self.total_supply}")
        self.execution_info = {
            address.lower(): info for address, info in self.execution_info.items()
        }

    def get_execution_info(self, address: str) -> ExecutionInfo | None:
        return self.execution_info.get(address.lower())


def build_strategy_constants(
    registry: Mapping[str, AssetQuote],
    strategy: Mapping[str, AssetStrategy],
    positions: Iterable[AssetPosition],
) -> Dict[str, StrategyAsset]:
    """Merge registry, strategy parameters and live positions.

    The result keeps the strategy's declaration order, which drives the
    order of every later calculation. A live position overrides the
    strategy's default ``current_unit``; addresses match case-insensitively.

    Args:
        registry: Market data keyed by symbol
        strategy: Strategy parameters keyed by symbol
        positions: Live fund positions

    Returns:
        Merged per-asset map keyed by symbol

    Raises:
        ConfigurationError: If a strategy asset is missing from the registry
    """
    live_units = {position.address.lower(): position.current_unit for position in positions}

    constants: Dict[str, StrategyAsset] = {}
    for symbol, params in strategy.items():
        quote = registry.get(symbol)
        if quote is None:
            raise ConfigurationError(f"Strategy asset {symbol} has no registry entry")

        constants[symbol] = StrategyAsset(
            symbol=symbol,
            address=quote.address,
            price=quote.price,
            decimals=quote.decimals,
            asset_id=quote.asset_id,
            weight_input=params.weight_input,
            max_trade_size=params.max_trade_size,
            exchange=params.exchange,
            cool_off_period=params.cool_off_period,
            current_unit=live_units.get(quote.address.lower(), params.current_unit),
        )

    logger.debug("Merged %d strategy assets with %d live positions", len(constants), len(live_units))
    return constants


class AllocationCalculator(ABC):
    """Abstract interface for target allocation methods.

    An allocation calculator turns the merged strategy map and the current
    fund value into a target unit per asset, then derives the notional to
    trade and the trade budget for each asset.

    Example:
        >>> allocator = CappedSupplyAllocator({"max_weight": "0.25"})
        >>> constants = build_strategy_constants(registry, strategy, positions)
        >>> fund_value = calculate_fund_value(constants)
        >>> allocations = allocator.calculate_allocations(
        ...     constants, fund_value, total_supply
        ... )
    """

    @abstractmethod
    def calculate_allocations(
        self,
        strategy_constants: Mapping[str, StrategyAsset],
        fund_value: int,
        total_supply: int,
    ) -> List[TargetAllocation]:
        """Calculate target units and trade notionals.

        Args:
            strategy_constants: Merged per-asset map, in registry order
            fund_value: Fund value per share, 18-decimal fixed point
            total_supply: Fund token total supply

        Returns:
            One TargetAllocation per asset, in the same order as the input
        """
        pass
