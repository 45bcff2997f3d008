"""Check contract state against a generated rebalance report.

Run after the rebalance parameters have been submitted on-chain: every
target unit, trade maximum, exchange and cool-off period the contract
holds must match the report exactly.
"""

from typing import Mapping

from index_rebalancer.portfolio.base import FundSnapshot, StrategyAsset
from index_rebalancer.portfolio.valuation import native_max_trade_size
from index_rebalancer.reporting.report import RebalanceReport
from index_rebalancer.utils.exceptions import ConfigurationError, ValidationError
from index_rebalancer.utils.logging import get_logger

logger = get_logger(__name__)


def validate_report(
    report: RebalanceReport,
    strategy_constants: Mapping[str, StrategyAsset],
    snapshot: FundSnapshot,
) -> None:
    """Verify that on-chain parameters match a report.

    Args:
        report: Report produced for this rebalance
        strategy_constants: Merged per-asset map of the index
        snapshot: Contract state read after the parameters were set

    Raises:
        ValidationError: On the first mismatch
        ConfigurationError: If a report asset is not in the strategy
    """
    expected_multiplier = int(report.rebalance_params.position_multiplier)
    if snapshot.position_multiplier != expected_multiplier:
        raise ValidationError(
            f"Different position multiplier used: {snapshot.position_multiplier} "
            f"instead of {expected_multiplier}"
        )

    for allocation in report.summary:
        asset = strategy_constants.get(allocation.asset)
        if asset is None:
            raise ConfigurationError(f"Report asset {allocation.asset} is not in the strategy")

        info = snapshot.get_execution_info(asset.address)
        if info is None:
            raise ValidationError(f"No execution info on-chain for {asset.symbol}")

        if info.target_unit != allocation.new_unit:
            raise ValidationError(
                f"Target unit for {asset.symbol} is wrong, should be "
                f"{allocation.new_unit} instead of {info.target_unit}"
            )

        max_size = native_max_trade_size(asset)
        if info.max_size != max_size:
            raise ValidationError(
                f"Max trade size for {asset.symbol} is wrong, should be "
                f"{max_size} instead of {info.max_size}"
            )

        if info.exchange_name != asset.exchange:
            raise ValidationError(
                f"Exchange for {asset.symbol} is wrong, should be "
                f"{asset.exchange} instead of {info.exchange_name}"
            )

        if info.cool_off_period != asset.cool_off_period:
            raise ValidationError(
                f"Cool off period for {asset.symbol} is wrong, should be "
                f"{asset.cool_off_period} instead of {info.cool_off_period}"
            )

    logger.info("All parameters verified for %d assets", len(report.summary))
