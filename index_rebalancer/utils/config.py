"""Configuration management for Index Rebalancer.

Two kinds of YAML input drive a rebalance calculation:

- the index config: allocation settings, asset registry and strategy
  parameters for one index (see config/example_index.yaml)
- the fund snapshot: contract state read by an external tool (total
  supply, position multiplier, positions, components, execution info)

Human-entered amounts (prices, trade sizes, weights, max weight) are
decimal literals converted to 18-decimal fixed point. Contract values in
the snapshot are raw integers and are taken as is.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict

import yaml

from index_rebalancer.portfolio.base import (
    AssetPosition,
    AssetQuote,
    AssetStrategy,
    ExecutionInfo,
    FundSnapshot,
)
from index_rebalancer.portfolio.valuation import ether
from index_rebalancer.utils.exceptions import ConfigurationError

ALLOCATION_METHODS = ("capped_supply", "fixed_weight")


class Config:
    """YAML configuration loader with dot-notation access.

    Example:
        >>> config = Config.from_file("config/example_index.yaml")
        >>> config.get("allocation.max_weight", "0.25")
        '0.25'
    """

    def __init__(self, config_dict: dict[str, Any]) -> None:
        self._config = config_dict

    @classmethod
    def from_file(cls, filepath: str | Path) -> "Config":
        """Load configuration from YAML file.

        Raises:
            FileNotFoundError: If config file doesn't exist
            ConfigurationError: If the file is not a YAML mapping
        """
        path = Path(filepath)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {filepath}")

        with open(path, "r", encoding="utf-8") as f:
            try:
                config_dict = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in {filepath}: {e}") from e

        if config_dict is None:
            config_dict = {}
        if not isinstance(config_dict, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {filepath}")

        return cls(config_dict)

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g. "schedule.quote_asset")."""
        value = self._config

        for k in key.split("."):
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default

        return value

    def require(self, key: str) -> Any:
        """Get a configuration value that must be present.

        Raises:
            ConfigurationError: If key not found
        """
        value = self.get(key)
        if value is None:
            raise ConfigurationError(f"Missing required configuration key: {key}")
        return value


@dataclass
class IndexConfig:
    """Typed configuration of one index.

    Attributes:
        name: Index symbol (e.g. "DPI")
        address: Fund token address
        method: Allocation method, "capped_supply" or "fixed_weight"
        max_weight: Per-asset cap, 18-decimal fixed point
        quote_asset: Registry symbol used to fund buys
        registry: Market data keyed by symbol
        strategy: Strategy parameters keyed by symbol, in declaration order
        report_path: Output path prefix for reports
        log_level: Default logging level
    """

    name: str
    address: str
    method: str
    max_weight: int
    quote_asset: str
    registry: Dict[str, AssetQuote] = field(default_factory=dict)
    strategy: Dict[str, AssetStrategy] = field(default_factory=dict)
    report_path: str = ""
    log_level: str = "INFO"

    def allocator_config(self) -> Dict[str, Any]:
        return {"max_weight": self.max_weight}

    def scheduler_config(self) -> Dict[str, Any]:
        return {"quote_asset": self.quote_asset}


def _to_int(value: Any, key: str) -> int:
    """Parse a raw integer that may be written as a string."""
    try:
        number = Decimal(str(value))
    except InvalidOperation as e:
        raise ConfigurationError(f"{key} must be an integer, got {value!r}") from e
    if number != number.to_integral_value():
        raise ConfigurationError(f"{key} must be an integer, got {value!r}")
    return int(number)


def _address(value: Any, key: str) -> str:
    """Addresses must be quoted in YAML, otherwise they load as hex integers."""
    if not isinstance(value, str):
        raise ConfigurationError(f"{key} must be a quoted address string, got {value!r}")
    return value


def _to_fixed(value: Any, key: str) -> int:
    """Parse a decimal literal into 18-decimal fixed point."""
    try:
        return ether(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ConfigurationError(f"{key} must be a decimal number, got {value!r}") from e


def _parse_registry(config: Config) -> Dict[str, AssetQuote]:
    entries = config.require("registry")
    if not isinstance(entries, dict):
        raise ConfigurationError("registry must be a mapping of symbol to asset data")

    registry: Dict[str, AssetQuote] = {}
    for symbol, entry in entries.items():
        prefix = f"registry.{symbol}"
        if not isinstance(entry, dict) or "address" not in entry or "price" not in entry:
            raise ConfigurationError(f"{prefix} needs at least address and price")
        try:
            registry[symbol] = AssetQuote(
                symbol=symbol,
                address=_address(entry["address"], f"{prefix}.address"),
                price=_to_fixed(entry["price"], f"{prefix}.price"),
                decimals=_to_int(entry.get("decimals", 18), f"{prefix}.decimals"),
                asset_id=str(entry.get("id", symbol.lower())),
            )
        except ValueError as e:
            raise ConfigurationError(f"{prefix}: {e}") from e
    return registry


def _parse_strategy(config: Config, method: str) -> Dict[str, AssetStrategy]:
    entries = config.require("strategy")
    if not isinstance(entries, dict):
        raise ConfigurationError("strategy must be a mapping of symbol to parameters")

    strategy: Dict[str, AssetStrategy] = {}
    for symbol, entry in entries.items():
        prefix = f"strategy.{symbol}"
        if not isinstance(entry, dict):
            raise ConfigurationError(f"{prefix} must be a mapping")
        for key in ("weight_input", "max_trade_size"):
            if key not in entry:
                raise ConfigurationError(f"Missing required configuration key: {prefix}.{key}")

        if method == "fixed_weight":
            weight_input = _to_fixed(entry["weight_input"], f"{prefix}.weight_input")
        else:
            weight_input = _to_int(entry["weight_input"], f"{prefix}.weight_input")

        try:
            strategy[symbol] = AssetStrategy(
                symbol=symbol,
                weight_input=weight_input,
                max_trade_size=_to_fixed(entry["max_trade_size"], f"{prefix}.max_trade_size"),
                exchange=str(entry.get("exchange", "")),
                cool_off_period=_to_int(entry.get("cool_off_period", 0), f"{prefix}.cool_off_period"),
                current_unit=_to_int(entry.get("current_unit", 0), f"{prefix}.current_unit"),
            )
        except ValueError as e:
            raise ConfigurationError(f"{prefix}: {e}") from e
    return strategy


def load_index_config(filepath: str | Path) -> IndexConfig:
    """Load and validate an index configuration file.

    Args:
        filepath: Path to the index YAML file

    Returns:
        IndexConfig with parsed registry and strategy

    Raises:
        FileNotFoundError: If the file doesn't exist
        ConfigurationError: If required keys are missing or values are invalid
    """
    config = Config.from_file(filepath)

    method = config.get("allocation.method", "capped_supply")
    if method not in ALLOCATION_METHODS:
        raise ConfigurationError(
            f"allocation.method must be one of {', '.join(ALLOCATION_METHODS)}, got {method}"
        )

    return IndexConfig(
        name=str(config.require("index.name")),
        address=str(config.get("index.address", "")),
        method=method,
        max_weight=_to_fixed(config.get("allocation.max_weight", "0.25"), "allocation.max_weight"),
        quote_asset=str(config.get("schedule.quote_asset", "WETH")),
        registry=_parse_registry(config),
        strategy=_parse_strategy(config, method),
        report_path=str(config.get("index.report_path", "")),
        log_level=str(config.get("logging.level", "INFO")),
    )


def load_fund_snapshot(filepath: str | Path) -> FundSnapshot:
    """Load fund contract state from a YAML (or JSON) snapshot file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ConfigurationError: If required keys are missing or values are invalid
    """
    config = Config.from_file(filepath)

    try:
        positions = [
            AssetPosition(
                address=_address(address, "positions"),
                current_unit=_to_int(unit, f"positions.{address}"),
            )
            for address, unit in (config.get("positions") or {}).items()
        ]
    except ValueError as e:
        raise ConfigurationError(f"positions: {e}") from e

    execution_info: Dict[str, ExecutionInfo] = {}
    for address, info in (config.get("execution_info") or {}).items():
        prefix = f"execution_info.{address}"
        if not isinstance(info, dict):
            raise ConfigurationError(f"{prefix} must be a mapping")
        execution_info[_address(address, "execution_info")] = ExecutionInfo(
            max_size=_to_int(info.get("max_size", 0), f"{prefix}.max_size"),
            exchange_name=str(info.get("exchange_name", "")),
            cool_off_period=_to_int(info.get("cool_off_period", 0), f"{prefix}.cool_off_period"),
            target_unit=_to_int(info.get("target_unit", 0), f"{prefix}.target_unit"),
        )

    try:
        return FundSnapshot(
            total_supply=_to_int(config.require("total_supply"), "total_supply"),
            position_multiplier=_to_int(
                config.require("position_multiplier"), "position_multiplier"
            ),
            positions=positions,
            components=[_address(c, "components") for c in (config.get("components") or [])],
            execution_info=execution_info,
        )
    except ValueError as e:
        raise ConfigurationError(f"Invalid fund snapshot: {e}") from e
