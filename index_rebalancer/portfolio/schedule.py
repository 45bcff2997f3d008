"""Round-based trade scheduling under a self-funding constraint.

Sells raise a balance in a quote asset (e.g. WETH); buys may only spend what
sells have already raised. Each round runs every sell first, then every buy,
in registry order, and each asset trades at most ``max_trade_size`` per
round and at most ``trade_count`` times overall.

Algorithm (repeated for max(trade_count) rounds):
1. Sell pass: every sell asset with trades left sells
   min(max_trade_size, remaining); proceeds go to the quote balance
2. Buy pass: every buy asset with trades left buys
   min(max_trade_size, remaining) if the quote balance covers the cost,
   otherwise it waits for a later round
3. Cleanup: buy assets that still have trades left get one deferred entry
   each, without a funding check

Insufficient liquidity is never an error. Deferred entries mark the trades
the schedule could not fund within its round budget.

Trade sizes and ``max_trade_size`` are in the native units of each token;
quote amounts are in native units of the quote asset.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional

from index_rebalancer.portfolio.base import AssetQuote, TargetAllocation
from index_rebalancer.portfolio.valuation import truncating_div
from index_rebalancer.utils.exceptions import ConfigurationError
from index_rebalancer.utils.logging import get_logger

logger = get_logger(__name__)


class SchedulingOutcome(Enum):
    """Whether a scheduled trade was funded inside the round budget."""

    EXECUTED = "EXECUTED"
    DEFERRED = "DEFERRED"


@dataclass(frozen=True)
class TradeScheduleEntry:
    """One trade in the execution order.

    Attributes:
        asset: Asset symbol
        is_buy: True for a buy, False for a sell
        trade_size: Token amount traded
        quote_amount: Trade size expressed in the quote asset
        round: 1-based round number, None for cleanup entries
        outcome: EXECUTED, or DEFERRED for unfunded cleanup buys
    """

    asset: str
    is_buy: bool
    trade_size: int
    quote_amount: int
    round: Optional[int]
    outcome: SchedulingOutcome = SchedulingOutcome.EXECUTED


@dataclass
class ScheduleResult:
    """Ordered trade list produced by TradeScheduler."""

    trades: List[TradeScheduleEntry] = field(default_factory=list)
    quote_balance: int = 0
    rounds: int = 0

    @property
    def executed(self) -> List[TradeScheduleEntry]:
        return [t for t in self.trades if t.outcome == SchedulingOutcome.EXECUTED]

    @property
    def deferred(self) -> List[TradeScheduleEntry]:
        return [t for t in self.trades if t.outcome == SchedulingOutcome.DEFERRED]

    @property
    def trade_order(self) -> List[str]:
        """Asset symbols in execution order."""
        return [t.asset for t in self.trades]

    @property
    def is_fully_funded(self) -> bool:
        return not self.deferred


@dataclass
class _TradeState:
    asset: str
    price: int
    decimals: int
    max_trade_size: int
    remaining_notional: int
    remaining_trade_count: int


def _quote_amount(trade_size: int, state: _TradeState, quote: AssetQuote) -> int:
    """Convert a native-unit trade size into native units of the quote asset."""
    return truncating_div(
        trade_size * state.price * 10**quote.decimals,
        quote.price * 10**state.decimals,
    )


class TradeScheduler:
    """Build a deterministic, liquidity-constrained trade order.

    Configuration Parameters:
        quote_asset: Registry symbol of the asset sells are converted into
            and buys are paid with (default "WETH")

    Example:
        >>> scheduler = TradeScheduler({"quote_asset": "WETH"})
        >>> result = scheduler.create_schedule(allocations, registry)
        >>> result.trade_order
        ['COMP', 'COMP', 'YFI', 'COMP', 'YFI']
        >>> result.deferred
        []
    """

    def __init__(self, config: Optional[Dict] = None):
        config = config or {}
        self.quote_asset = config.get("quote_asset", "WETH")

        if not self.quote_asset:
            raise ValueError("quote_asset must be a non-empty symbol")

    def create_schedule(
        self,
        allocations: List[TargetAllocation],
        quotes: Mapping[str, AssetQuote],
    ) -> ScheduleResult:
        """Schedule the trades that move the fund to its target units.

        Args:
            allocations: Allocation results, in registry order
            quotes: Market data keyed by symbol; must include the quote asset

        Returns:
            ScheduleResult with the ordered trades and final quote balance

        Raises:
            ConfigurationError: If the quote asset or a traded asset has no quote
        """
        quote = quotes.get(self.quote_asset)
        if quote is None:
            raise ConfigurationError(f"Quote asset {self.quote_asset} has no price")

        sells: List[_TradeState] = []
        buys: List[_TradeState] = []
        for allocation in allocations:
            asset_quote = quotes.get(allocation.asset)
            if asset_quote is None:
                raise ConfigurationError(f"Asset {allocation.asset} has no price")

            state = _TradeState(
                asset=allocation.asset,
                price=asset_quote.price,
                decimals=asset_quote.decimals,
                max_trade_size=allocation.max_trade_size,
                remaining_notional=allocation.notional_in_token,
                remaining_trade_count=allocation.trade_count,
            )
            if allocation.notional_in_token < 0:
                sells.append(state)
            else:
                buys.append(state)

        result = ScheduleResult(
            rounds=max((a.trade_count for a in allocations), default=0)
        )

        for round_number in range(1, result.rounds + 1):
            self._do_sell_trades(sells, quote, round_number, result)
            self._do_buy_trades(buys, quote, round_number, result)

        self._cleanup_trades(buys, quote, result)

        logger.info(
            "Scheduled %d trades over %d rounds (%d deferred), quote balance %d",
            len(result.trades),
            result.rounds,
            len(result.deferred),
            result.quote_balance,
        )
        if result.deferred:
            logger.warning(
                "Schedule is not self-funded; deferred buys: %s",
                ", ".join(t.asset for t in result.deferred),
            )
        return result

    def _do_sell_trades(
        self,
        sells: List[_TradeState],
        quote: AssetQuote,
        round_number: int,
        result: ScheduleResult,
    ) -> None:
        for state in sells:
            if state.remaining_trade_count <= 0:
                continue

            trade_size = min(state.max_trade_size, -state.remaining_notional)
            proceeds = _quote_amount(trade_size, state, quote)

            state.remaining_notional += trade_size
            state.remaining_trade_count -= 1
            result.quote_balance += proceeds
            result.trades.append(
                TradeScheduleEntry(
                    asset=state.asset,
                    is_buy=False,
                    trade_size=trade_size,
                    quote_amount=proceeds,
                    round=round_number,
                )
            )

    def _do_buy_trades(
        self,
        buys: List[_TradeState],
        quote: AssetQuote,
        round_number: int,
        result: ScheduleResult,
    ) -> None:
        for state in buys:
            trade_size = min(state.max_trade_size, state.remaining_notional)
            cost = _quote_amount(trade_size, state, quote)

            if state.remaining_trade_count <= 0 or cost > result.quote_balance:
                continue

            state.remaining_notional -= trade_size
            state.remaining_trade_count -= 1
            result.quote_balance -= cost
            result.trades.append(
                TradeScheduleEntry(
                    asset=state.asset,
                    is_buy=True,
                    trade_size=trade_size,
                    quote_amount=cost,
                    round=round_number,
                )
            )

    def _cleanup_trades(
        self,
        buys: List[_TradeState],
        quote: AssetQuote,
        result: ScheduleResult,
    ) -> None:
        # No funding check: these are the trades the rounds could not pay for
        for state in buys:
            if state.remaining_trade_count <= 0:
                continue

            trade_size = min(state.max_trade_size, state.remaining_notional)
            result.trades.append(
                TradeScheduleEntry(
                    asset=state.asset,
                    is_buy=True,
                    trade_size=trade_size,
                    quote_amount=_quote_amount(trade_size, state, quote),
                    round=None,
                    outcome=SchedulingOutcome.DEFERRED,
                )
            )
