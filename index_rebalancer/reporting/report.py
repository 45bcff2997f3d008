"""Rebalance report assembly and persistence.

The report gathers everything needed to prepare the fund-management
contract calls for a rebalance:

- rebalance parameters: new components with their units, the new unit of
  every existing component (in contract order) and the position multiplier
- execution parameter updates: trade maximums, exchanges and cool-off
  periods that differ from what the contract currently holds
- the trade order, expressed in registry ids, for the off-chain trader

Call-data encoding is left to the tool that submits the transaction.
Reports are written as JSON (machine-readable, big integers as decimal
strings) and as a plain-text table for review.
"""

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping

import pandas as pd

from index_rebalancer.portfolio.base import (
    AssetQuote,
    FundSnapshot,
    StrategyAsset,
    TargetAllocation,
)
from index_rebalancer.portfolio.schedule import ScheduleResult
from index_rebalancer.portfolio.valuation import PRECISE_UNIT, native_max_trade_size
from index_rebalancer.utils.exceptions import ConfigurationError, ReportError
from index_rebalancer.utils.logging import get_logger

logger = get_logger(__name__)

_INT_FIELDS = (
    "current_unit",
    "new_unit",
    "notional_in_token",
    "notional_in_usd",
    "trade_count",
    "max_trade_size",
    "cool_off_period",
    "allocation",
)


@dataclass
class ParamSetting:
    """Components whose execution setting must change, with new values."""

    components: List[str] = field(default_factory=list)
    values: List[str] = field(default_factory=list)

    def add(self, component: str, value: Any) -> None:
        self.components.append(component)
        self.values.append(str(value))


@dataclass
class RebalanceParams:
    """Arguments of the call that starts a rebalance."""

    new_components: List[str] = field(default_factory=list)
    new_component_units: List[str] = field(default_factory=list)
    old_component_units: List[str] = field(default_factory=list)
    position_multiplier: str = "0"


@dataclass
class RebalanceReport:
    """Complete output of one rebalance calculation.

    Attributes:
        summary: Per-asset allocation results
        max_trade_size_params: Trade maximum updates
        exchange_params: Exchange adapter updates
        cool_off_period_params: Cool-off period updates
        rebalance_params: Component units and position multiplier
        trade_order: Registry ids in execution order
        deferred_trades: Registry ids of buys the schedule could not fund
    """

    summary: List[TargetAllocation]
    max_trade_size_params: ParamSetting
    exchange_params: ParamSetting
    cool_off_period_params: ParamSetting
    rebalance_params: RebalanceParams
    trade_order: List[str] = field(default_factory=list)
    deferred_trades: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-safe dictionary (integers as strings)."""
        summary = []
        for allocation in self.summary:
            record = asdict(allocation)
            for key in _INT_FIELDS:
                record[key] = str(record[key])
            summary.append(record)

        return {
            "summary": summary,
            "max_trade_size_params": asdict(self.max_trade_size_params),
            "exchange_params": asdict(self.exchange_params),
            "cool_off_period_params": asdict(self.cool_off_period_params),
            "rebalance_params": asdict(self.rebalance_params),
            "trade_order": list(self.trade_order),
            "deferred_trades": list(self.deferred_trades),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RebalanceReport":
        """Rebuild a report from ``to_dict`` output.

        Raises:
            ReportError: If required fields are missing or malformed
        """
        try:
            summary = []
            for record in data["summary"]:
                record = dict(record)
                for key in _INT_FIELDS:
                    record[key] = int(record[key])
                summary.append(TargetAllocation(**record))

            return cls(
                summary=summary,
                max_trade_size_params=ParamSetting(**data["max_trade_size_params"]),
                exchange_params=ParamSetting(**data["exchange_params"]),
                cool_off_period_params=ParamSetting(**data["cool_off_period_params"]),
                rebalance_params=RebalanceParams(**data["rebalance_params"]),
                trade_order=list(data.get("trade_order", [])),
                deferred_trades=list(data.get("deferred_trades", [])),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ReportError(f"Malformed rebalance report: {e}") from e


def build_report(
    allocations: List[TargetAllocation],
    schedule: ScheduleResult,
    strategy_constants: Mapping[str, StrategyAsset],
    registry: Mapping[str, AssetQuote],
    snapshot: FundSnapshot,
) -> RebalanceReport:
    """Assemble contract-call parameters from a finished calculation.

    Args:
        allocations: Allocation results
        schedule: Trade schedule for the allocations
        strategy_constants: Merged per-asset map
        registry: Full asset registry, used to resolve on-chain components
        snapshot: Current fund contract state

    Returns:
        RebalanceReport

    Raises:
        ConfigurationError: If an on-chain component is not in the registry
            or has no allocation result
    """
    by_symbol = {allocation.asset: allocation for allocation in allocations}
    symbol_by_address = {quote.address.lower(): symbol for symbol, quote in registry.items()}

    # New components enter the fund with no current unit
    rebalance_params = RebalanceParams(position_multiplier=str(snapshot.position_multiplier))
    for allocation in allocations:
        if allocation.current_unit == 0:
            rebalance_params.new_components.append(strategy_constants[allocation.asset].address)
            rebalance_params.new_component_units.append(str(allocation.new_unit))

    for component in snapshot.components:
        symbol = symbol_by_address.get(component.lower())
        if symbol is None:
            raise ConfigurationError(f"On-chain component {component} is not in the registry")
        if symbol not in by_symbol:
            raise ConfigurationError(
                f"On-chain component {symbol} has no target unit; add it to the strategy"
            )
        rebalance_params.old_component_units.append(str(by_symbol[symbol].new_unit))

    # Execution settings that differ from contract state
    max_trade_size_params = ParamSetting()
    exchange_params = ParamSetting()
    cool_off_period_params = ParamSetting()
    for asset in strategy_constants.values():
        info = snapshot.get_execution_info(asset.address)
        max_size = native_max_trade_size(asset)

        if info is None or info.max_size != max_size:
            max_trade_size_params.add(asset.address, max_size)
        if info is None or info.exchange_name != asset.exchange:
            exchange_params.add(asset.address, asset.exchange)
        if info is None or info.cool_off_period != asset.cool_off_period:
            cool_off_period_params.add(asset.address, asset.cool_off_period)

    def asset_id(symbol: str) -> str:
        return strategy_constants[symbol].asset_id or symbol.lower()

    report = RebalanceReport(
        summary=list(allocations),
        max_trade_size_params=max_trade_size_params,
        exchange_params=exchange_params,
        cool_off_period_params=cool_off_period_params,
        rebalance_params=rebalance_params,
        trade_order=[asset_id(symbol) for symbol in schedule.trade_order],
        deferred_trades=[asset_id(entry.asset) for entry in schedule.deferred],
    )

    logger.info(
        "Built report: %d new components, %d trade size / %d exchange / %d cool-off updates",
        len(rebalance_params.new_components),
        len(max_trade_size_params.components),
        len(exchange_params.components),
        len(cool_off_period_params.components),
    )
    return report


def summary_frame(allocations: List[TargetAllocation]) -> pd.DataFrame:
    """Format allocation results as a DataFrame for display.

    Unit and notional columns keep exact integers; ``allocation_pct`` is a
    display-only float.
    """
    columns = [
        "asset",
        "current_unit",
        "new_unit",
        "notional_in_token",
        "notional_in_usd",
        "trade_count",
        "is_buy",
        "capped",
        "allocation_pct",
        "exchange",
        "max_trade_size",
        "cool_off_period",
    ]
    if not allocations:
        return pd.DataFrame(columns=columns)

    data = [
        {
            "asset": a.asset,
            "current_unit": a.current_unit,
            "new_unit": a.new_unit,
            "notional_in_token": a.notional_in_token,
            "notional_in_usd": a.notional_in_usd,
            "trade_count": a.trade_count,
            "is_buy": a.is_buy,
            "capped": a.capped,
            "allocation_pct": a.allocation / PRECISE_UNIT * 100,
            "exchange": a.exchange,
            "max_trade_size": a.max_trade_size,
            "cool_off_period": a.cool_off_period,
        }
        for a in allocations
    ]
    return pd.DataFrame(data, columns=columns).astype(object)


def format_report_text(report: RebalanceReport) -> str:
    """Render a report as plain text for human review."""
    params = report.rebalance_params
    lines = [
        "REBALANCE SUMMARY",
        "=" * 70,
        summary_frame(report.summary).to_string(index=False),
        "",
        f"Position multiplier: {params.position_multiplier}",
        "",
        "NEW COMPONENTS",
        "-" * 70,
    ]
    lines.extend(
        f"{component}  {unit}"
        for component, unit in zip(params.new_components, params.new_component_units)
    )
    lines.extend(["", "OLD COMPONENT UNITS", "-" * 70])
    lines.extend(params.old_component_units)

    for title, setting in (
        ("TRADE MAXIMUMS", report.max_trade_size_params),
        ("EXCHANGES", report.exchange_params),
        ("COOL-OFF PERIODS", report.cool_off_period_params),
    ):
        lines.extend(["", title, "-" * 70])
        lines.extend(f"{c}  {v}" for c, v in zip(setting.components, setting.values))

    lines.extend(["", "TRADE ORDER", "-" * 70, ",".join(report.trade_order)])
    if report.deferred_trades:
        lines.extend(["", "DEFERRED (NOT SELF-FUNDED)", "-" * 70, ",".join(report.deferred_trades)])

    return "\n".join(lines) + "\n"


def write_report(report: RebalanceReport, path: str | Path) -> List[Path]:
    """Write ``<path>.json`` and ``<path>.txt``.

    Returns:
        Paths of the written files
    """
    base = Path(path)
    base.parent.mkdir(parents=True, exist_ok=True)

    json_path = base.with_name(base.name + ".json")
    text_path = base.with_name(base.name + ".txt")

    json_path.write_text(json.dumps(report.to_dict(), indent=2), encoding="utf-8")
    text_path.write_text(format_report_text(report), encoding="utf-8")

    logger.info("Wrote rebalance report to %s and %s", json_path, text_path)
    return [json_path, text_path]


def load_report(path: str | Path) -> RebalanceReport:
    """Load a report written by ``write_report``.

    Args:
        path: The ``.json`` file, or the path prefix it was written with

    Raises:
        ReportError: If the file is missing or malformed
    """
    json_path = Path(path)
    if json_path.suffix != ".json":
        json_path = json_path.with_name(json_path.name + ".json")

    if not json_path.exists():
        raise ReportError(f"Report file not found: {json_path}")

    try:
        data = json.loads(json_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ReportError(f"Invalid JSON in {json_path}: {e}") from e

    return RebalanceReport.from_dict(data)
