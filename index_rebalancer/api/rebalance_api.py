"""User-friendly Rebalance API.

This module provides a single high-level entry point that runs a whole
rebalance calculation: merge inputs, value the fund, allocate, schedule
trades and assemble the report.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

import pandas as pd

from index_rebalancer.portfolio.base import (
    AllocationCalculator,
    FundSnapshot,
    StrategyAsset,
    TargetAllocation,
    build_strategy_constants,
)
from index_rebalancer.portfolio.capped_allocator import CappedSupplyAllocator
from index_rebalancer.portfolio.fixed_weight_allocator import FixedWeightAllocator
from index_rebalancer.portfolio.schedule import ScheduleResult, TradeScheduler
from index_rebalancer.portfolio.valuation import calculate_fund_value
from index_rebalancer.reporting.report import RebalanceReport, build_report, summary_frame
from index_rebalancer.reporting.validation import validate_report
from index_rebalancer.utils.config import IndexConfig
from index_rebalancer.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class RebalancePlan:
    """Everything produced by one rebalance calculation."""

    index: str
    strategy_constants: Dict[str, StrategyAsset]
    fund_value: int
    allocations: List[TargetAllocation]
    schedule: ScheduleResult
    report: RebalanceReport


class RebalanceAPI:
    """High-level API for index rebalance calculations.

    Example:
        >>> from index_rebalancer.api.rebalance_api import RebalanceAPI
        >>> from index_rebalancer.utils.config import load_index_config, load_fund_snapshot
        >>>
        >>> index_config = load_index_config("config/example_index.yaml")
        >>> snapshot = load_fund_snapshot("snapshots/dpi.yaml")
        >>> plan = RebalanceAPI().create_plan(index_config, snapshot)
        >>> print(RebalanceAPI.format_summary(plan.allocations))
    """

    def __init__(
        self,
        allocator: Optional[AllocationCalculator] = None,
        scheduler: Optional[TradeScheduler] = None,
    ):
        """Initialize RebalanceAPI.

        Args:
            allocator: Allocation method (defaults to the index config's method)
            scheduler: TradeScheduler (defaults to the index config's quote asset)
        """
        self.allocator = allocator
        self.scheduler = scheduler

    def _allocator_for(self, index_config: IndexConfig) -> AllocationCalculator:
        if self.allocator is not None:
            return self.allocator
        if index_config.method == "fixed_weight":
            return FixedWeightAllocator()
        return CappedSupplyAllocator(index_config.allocator_config())

    def _scheduler_for(self, index_config: IndexConfig) -> TradeScheduler:
        if self.scheduler is not None:
            return self.scheduler
        return TradeScheduler(index_config.scheduler_config())

    def create_plan(self, index_config: IndexConfig, snapshot: FundSnapshot) -> RebalancePlan:
        """Run the full calculation for one index.

        Args:
            index_config: Registry, strategy and allocation settings
            snapshot: Current fund contract state

        Returns:
            RebalancePlan with allocations, schedule and report

        Raises:
            ConfigurationError: On missing registry entries or components
            DegenerateAllocationError: If the allocation has no valid result
        """
        logger.info(
            "Calculating rebalance for %s (%d assets, method=%s)",
            index_config.name,
            len(index_config.strategy),
            index_config.method,
        )

        constants = build_strategy_constants(
            index_config.registry, index_config.strategy, snapshot.positions
        )
        fund_value = calculate_fund_value(constants)
        logger.info("Fund value per share: %d", fund_value)

        allocator = self._allocator_for(index_config)
        allocations = allocator.calculate_allocations(
            constants, fund_value, snapshot.total_supply
        )

        schedule = self._scheduler_for(index_config).create_schedule(
            allocations, index_config.registry
        )

        report = build_report(
            allocations, schedule, constants, index_config.registry, snapshot
        )

        return RebalancePlan(
            index=index_config.name,
            strategy_constants=constants,
            fund_value=fund_value,
            allocations=allocations,
            schedule=schedule,
            report=report,
        )

    def validate(
        self,
        index_config: IndexConfig,
        report: RebalanceReport,
        snapshot: FundSnapshot,
    ) -> None:
        """Check contract state against a previously generated report.

        Raises:
            ValidationError: On the first mismatch
        """
        constants = build_strategy_constants(
            index_config.registry, index_config.strategy, snapshot.positions
        )
        validate_report(report, constants, snapshot)

    @staticmethod
    def format_summary(allocations: List[TargetAllocation]) -> pd.DataFrame:
        """Format allocation results as a DataFrame for display."""
        return summary_frame(allocations)

    @staticmethod
    def format_trades(schedule: ScheduleResult) -> pd.DataFrame:
        """Format the trade schedule as a DataFrame, one row per trade.

        Example:
            >>> trades_df = RebalanceAPI.format_trades(plan.schedule)
            >>> trades_df[trades_df["outcome"] == "DEFERRED"]
        """
        columns = ["round", "asset", "side", "trade_size", "quote_amount", "outcome"]
        if not schedule.trades:
            return pd.DataFrame(columns=columns)

        data = [
            {
                "round": t.round,
                "asset": t.asset,
                "side": "BUY" if t.is_buy else "SELL",
                "trade_size": t.trade_size,
                "quote_amount": t.quote_amount,
                "outcome": t.outcome.value,
            }
            for t in schedule.trades
        ]
        return pd.DataFrame(data, columns=columns).astype(object)
