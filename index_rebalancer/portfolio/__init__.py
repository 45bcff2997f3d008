"""Portfolio Calculation Layer.

This layer turns registry prices, strategy parameters and live fund
positions into target units and an ordered, self-funding trade list.

Components:
- AllocationCalculator: Abstract interface for allocation methods
- CappedSupplyAllocator: Supply weighting with a per-asset cap
- FixedWeightAllocator: Literal target weights
- TradeScheduler: Round-based, liquidity-constrained trade ordering
- build_strategy_constants: Typed merge of registry, strategy and positions
"""

from index_rebalancer.portfolio.base import (
    AllocationCalculator,
    AssetPosition,
    AssetQuote,
    AssetStrategy,
    ExecutionInfo,
    FundSnapshot,
    StrategyAsset,
    TargetAllocation,
    build_strategy_constants,
)
from index_rebalancer.portfolio.capped_allocator import CappedSupplyAllocator
from index_rebalancer.portfolio.fixed_weight_allocator import FixedWeightAllocator
from index_rebalancer.portfolio.schedule import (
    ScheduleResult,
    SchedulingOutcome,
    TradeScheduleEntry,
    TradeScheduler,
)

__all__ = [
    "AllocationCalculator",
    "CappedSupplyAllocator",
    "FixedWeightAllocator",
    "TradeScheduler",
    "ScheduleResult",
    "SchedulingOutcome",
    "TradeScheduleEntry",
    "AssetPosition",
    "AssetQuote",
    "AssetStrategy",
    "StrategyAsset",
    "TargetAllocation",
    "ExecutionInfo",
    "FundSnapshot",
    "build_strategy_constants",
]
