"""Fixed-point valuation helpers.

All on-chain quantities are plain Python integers scaled by ``PRECISE_UNIT``
(10**18). Every division truncates toward zero, matching the big-number
arithmetic used by the contracts that later check these values. Python's
``//`` floors instead, so signed values go through ``truncating_div``.
"""

from decimal import Decimal
from typing import Iterable, Mapping

from index_rebalancer.portfolio.base import (
    AssetPosition,
    AssetQuote,
    StrategyAsset,
    TargetAllocation,
)
from index_rebalancer.utils.exceptions import ConfigurationError

PRECISE_UNIT = 10**18


def truncating_div(numerator: int, denominator: int) -> int:
    """Integer division truncating toward zero."""
    quotient = abs(numerator) // abs(denominator)
    if (numerator < 0) != (denominator < 0):
        return -quotient
    return quotient


def ether(value: int | str | float | Decimal) -> int:
    """Convert a decimal amount to 18-decimal fixed point.

    Floats are converted through ``str`` so ``ether(0.25)`` is exact.

    Example:
        >>> ether("13.2")
        13200000000000000000
    """
    if isinstance(value, float):
        value = str(value)
    return int(Decimal(value) * PRECISE_UNIT)


def precise_mul(a: int, b: int) -> int:
    """Multiply two fixed-point values."""
    return truncating_div(a * b, PRECISE_UNIT)


def precise_div(a: int, b: int) -> int:
    """Divide two fixed-point values."""
    return truncating_div(a * PRECISE_UNIT, b)


def calculate_total_value(
    positions: Iterable[AssetPosition],
    quotes: Mapping[str, AssetQuote],
) -> int:
    """Calculate the value of one fund share.

    Computes ``sum(current_unit * price / 10**decimals)`` over all held
    positions, scaling each asset by its own native decimal count. Terms
    are brought to a common denominator and the sum is truncated once.

    Args:
        positions: Current per-share holdings
        quotes: Market data keyed by token address (any case)

    Returns:
        Fund value per share, 18-decimal fixed-point USD

    Raises:
        ConfigurationError: If a held position has no quote
    """
    by_address = {address.lower(): quote for address, quote in quotes.items()}

    terms = []
    for position in positions:
        quote = by_address.get(position.address.lower())
        if quote is None:
            raise ConfigurationError(f"No quote for position {position.address}")
        terms.append((position.current_unit * quote.price, quote.decimals))

    scale = max([18] + [decimals for _, decimals in terms])
    total = sum(value * 10 ** (scale - decimals) for value, decimals in terms)
    return truncating_div(total, 10**scale)


def calculate_fund_value(strategy_constants: Mapping[str, StrategyAsset]) -> int:
    """Calculate fund value per share from the merged strategy map."""
    positions = [
        AssetPosition(address=asset.address, current_unit=asset.current_unit)
        for asset in strategy_constants.values()
    ]
    quotes = {asset.address: asset.quote for asset in strategy_constants.values()}
    return calculate_total_value(positions, quotes)


def calculate_notional_in_token(
    current_unit: int,
    new_unit: int,
    total_supply: int,
) -> int:
    """Amount of token the whole fund must trade to reach ``new_unit``.

    Positive means buy, negative means sell.
    """
    return truncating_div((new_unit - current_unit) * total_supply, PRECISE_UNIT)


def calculate_notional_in_usd(notional: int, decimals: int, price: int) -> int:
    """Value of a token notional in whole USD.

    Args:
        notional: Token amount in the token's native units
        decimals: The token's native decimal count
        price: 18-decimal fixed-point USD price
    """
    return truncating_div(truncating_div(notional * price, 10**decimals), PRECISE_UNIT)


def native_max_trade_size(asset: StrategyAsset) -> int:
    """Max trade size in the token's native units, as the contract stores it.

    Strategy files give trade sizes as 18-decimal amounts; notionals,
    trade counts and the scheduler all work in native units.
    """
    max_trade_size = precise_mul(asset.max_trade_size, 10**asset.decimals)
    if max_trade_size <= 0:
        raise ConfigurationError(
            f"Max trade size of {asset.symbol} is below one native unit ({asset.decimals} decimals)"
        )
    return max_trade_size


def calculate_trade_count(notional: int, max_trade_size: int) -> int:
    """Number of trades needed to move ``notional``.

    Always at least one, even for an asset already at target. Exact
    multiples of ``max_trade_size`` also get one extra (empty) trade.
    """
    return abs(truncating_div(notional, max_trade_size)) + 1


def summarize_allocation(
    asset: StrategyAsset,
    new_unit: int,
    total_supply: int,
    allocation: int = 0,
    capped: bool = False,
) -> TargetAllocation:
    """Build the summary record for one asset's target unit."""
    notional = calculate_notional_in_token(asset.current_unit, new_unit, total_supply)
    max_trade_size = native_max_trade_size(asset)

    return TargetAllocation(
        asset=asset.symbol,
        current_unit=asset.current_unit,
        new_unit=new_unit,
        notional_in_token=notional,
        notional_in_usd=calculate_notional_in_usd(notional, asset.decimals, asset.price),
        trade_count=calculate_trade_count(notional, max_trade_size),
        is_buy=notional >= 0,
        exchange=asset.exchange,
        max_trade_size=max_trade_size,
        cool_off_period=asset.cool_off_period,
        allocation=allocation,
        capped=capped,
    )
