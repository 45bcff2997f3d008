#!/usr/bin/env python3
"""Index rebalance calculation and validation CLI.

This script wires the rebalance calculation to YAML inputs:
- calculate: compute target units and trade order, optionally write a report
- validate: check contract state against a written report

Examples:
    # Calculate and print a rebalance
    python scripts/rebalance.py calculate config/example_index.yaml snapshot.yaml

    # Calculate and write reports/dpi/rebalance-2026-10.{json,txt}
    python scripts/rebalance.py calculate config/example_index.yaml snapshot.yaml \\
        --output reports/dpi/rebalance-2026-10

    # Validate contract state after the parameters were submitted
    python scripts/rebalance.py validate config/example_index.yaml \\
        reports/dpi/rebalance-2026-10.json snapshot-after.yaml
"""

import sys
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

# Add project root to path
sys.path.append(".")

from index_rebalancer.api.rebalance_api import RebalanceAPI, RebalancePlan
from index_rebalancer.portfolio.valuation import PRECISE_UNIT
from index_rebalancer.reporting.report import load_report, write_report
from index_rebalancer.utils.config import load_fund_snapshot, load_index_config
from index_rebalancer.utils.exceptions import IndexRebalancerError
from index_rebalancer.utils.logging import setup_logging

console = Console()


def create_summary_table(plan: RebalancePlan) -> Table:
    """Create a table of per-asset allocation results.

    Args:
        plan: Finished rebalance calculation

    Returns:
        Rich Table with one row per asset
    """
    table = Table(title=f"{plan.index} Rebalance Summary", show_header=True, header_style="bold magenta")

    table.add_column("Asset", style="cyan")
    table.add_column("Current Unit", justify="right")
    table.add_column("New Unit", justify="right")
    table.add_column("Allocation", justify="right")
    table.add_column("Notional (USD)", justify="right")
    table.add_column("Trades", justify="right")
    table.add_column("Side")
    table.add_column("Exchange")

    for a in plan.allocations:
        side = "[green]BUY[/green]" if a.is_buy else "[red]SELL[/red]"
        allocation = f"{a.allocation / PRECISE_UNIT:.2%}"
        if a.capped:
            allocation += " (capped)"
        table.add_row(
            a.asset,
            str(a.current_unit),
            str(a.new_unit),
            allocation,
            f"${a.notional_in_usd:,}",
            str(a.trade_count),
            side,
            a.exchange,
        )

    return table


def create_trade_table(plan: RebalancePlan) -> Table:
    """Create a table of the scheduled trade order."""
    table = Table(title="Trade Order", show_header=True, header_style="bold magenta")

    table.add_column("#", justify="right")
    table.add_column("Round", justify="right")
    table.add_column("Asset", style="cyan")
    table.add_column("Side")
    table.add_column("Size", justify="right")
    table.add_column("Quote Amount", justify="right")
    table.add_column("Outcome")

    for i, t in enumerate(plan.schedule.trades, start=1):
        outcome = t.outcome.value
        if t.round is None:
            outcome = f"[yellow]{outcome}[/yellow]"
        table.add_row(
            str(i),
            "-" if t.round is None else str(t.round),
            t.asset,
            "BUY" if t.is_buy else "SELL",
            str(t.trade_size),
            str(t.quote_amount),
            outcome,
        )

    return table


@click.group()
def cli():
    """Index Rebalancer"""
    pass


@cli.command()
@click.argument("config_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("snapshot_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--output", "-o", type=str, help="Report path prefix (writes .json and .txt)")
@click.option("--log-level", default=None, help="Logging level (default from config)")
@click.option("--show-trades/--no-show-trades", default=True, help="Print the trade order")
def calculate(
    config_file: str,
    snapshot_file: str,
    output: Optional[str],
    log_level: Optional[str],
    show_trades: bool,
):
    """Calculate new target units and the trade order for an index.

    CONFIG_FILE: Index YAML (registry, strategy, allocation settings)

    SNAPSHOT_FILE: Fund contract state YAML
    """
    try:
        index_config = load_index_config(config_file)
        setup_logging(level=log_level or index_config.log_level)

        snapshot = load_fund_snapshot(snapshot_file)
        plan = RebalanceAPI().create_plan(index_config, snapshot)

        console.print(create_summary_table(plan))
        if show_trades:
            console.print(create_trade_table(plan))

        console.print(f"Fund value per share: {plan.fund_value / PRECISE_UNIT:,.2f} USD")
        console.print(f"Trade order: {','.join(plan.report.trade_order)}")

        if plan.schedule.deferred:
            console.print(
                f"[bold yellow]Warning:[/bold yellow] {len(plan.schedule.deferred)} buy(s) "
                f"could not be funded within {plan.schedule.rounds} rounds: "
                f"{', '.join(t.asset for t in plan.schedule.deferred)}"
            )

        if output:
            paths = write_report(plan.report, output)
            console.print(f"[green]✓[/green] Report written: {', '.join(str(p) for p in paths)}")

    except (IndexRebalancerError, FileNotFoundError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)


@cli.command()
@click.argument("config_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("report_file", type=click.Path())
@click.argument("snapshot_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--log-level", default=None, help="Logging level (default from config)")
def validate(config_file: str, report_file: str, snapshot_file: str, log_level: Optional[str]):
    """Validate on-chain parameters against a generated report.

    CONFIG_FILE: Index YAML

    REPORT_FILE: Report JSON written by `calculate --output`

    SNAPSHOT_FILE: Fund contract state YAML read after the update
    """
    try:
        index_config = load_index_config(config_file)
        setup_logging(level=log_level or index_config.log_level)

        report = load_report(report_file)
        snapshot = load_fund_snapshot(snapshot_file)
        RebalanceAPI().validate(index_config, report, snapshot)

        console.print("[bold green]All parameters verified![/bold green]")

    except (IndexRebalancerError, FileNotFoundError) as e:
        console.print(f"[bold red]Validation failed:[/bold red] {e}")
        sys.exit(1)


if __name__ == "__main__":
    cli()
