"""
Market configuration: per-market fee, impact, reserve and collateral factors.

Factors are FLOAT_PRECISION-scaled ints. The core only reads them; they are
injected through a `ConfigStore`, usually built from YAML with `load_config`:

    defaults:
      swap_fee_factor_for_negative_impact: "0.1%"
      reserve_factor: "0.9"
    markets:
      ETH-USDC:
        swap_impact_exponent_factor: "2"
        min_collateral_usd: "1"

Values are decimal strings (an optional trailing `%` divides by 100) or ints,
both read as whole units and scaled by 1e30. Floats are rejected so no value
ever passes through binary floating point. `max_pool_amount` is a raw token
amount and is not scaled.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from decimal import Decimal, InvalidOperation, localcontext
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from .errors import ConfigError
from .math import FLOAT_PRECISION, MAX_UINT256


@dataclass(frozen=True)
class MarketConfig:
    swap_fee_factor_for_positive_impact: int = 0
    swap_fee_factor_for_negative_impact: int = 0
    swap_fee_receiver_factor: int = 0

    position_fee_factor_for_positive_impact: int = 0
    position_fee_factor_for_negative_impact: int = 0
    position_fee_receiver_factor: int = 0
    borrowing_fee_receiver_factor: int = 0

    swap_impact_factor_positive: int = 0
    swap_impact_factor_negative: int = 0
    swap_impact_exponent_factor: int = FLOAT_PRECISION

    position_impact_factor_positive: int = 0
    position_impact_factor_negative: int = 0
    position_impact_exponent_factor: int = FLOAT_PRECISION
    max_position_impact_factor_negative: int = FLOAT_PRECISION
    max_position_impact_factor_for_liquidations: int = FLOAT_PRECISION

    reserve_factor: int = FLOAT_PRECISION
    max_pool_amount: int = MAX_UINT256

    funding_factor: int = 0
    funding_exponent_factor: int = FLOAT_PRECISION
    borrowing_factor_for_longs: int = 0
    borrowing_factor_for_shorts: int = 0
    borrowing_exponent_factor: int = FLOAT_PRECISION

    min_collateral_factor: int = 0
    min_collateral_usd: int = 0
    min_position_size_usd: int = 0

    def __post_init__(self) -> None:
        for f in fields(self):
            v = getattr(self, f.name)
            if not isinstance(v, int) or isinstance(v, bool):
                raise TypeError(f"{f.name} must be an int")
            if not (0 <= v <= MAX_UINT256):
                raise ValueError(f"{f.name} out of range: {v}")
        for name in (
            "swap_fee_receiver_factor",
            "position_fee_receiver_factor",
            "borrowing_fee_receiver_factor",
            "max_position_impact_factor_negative",
            "max_position_impact_factor_for_liquidations",
        ):
            if getattr(self, name) > FLOAT_PRECISION:
                raise ValueError(f"{name} must be at most 1.0")
        for name in (
            "swap_impact_exponent_factor",
            "position_impact_exponent_factor",
            "funding_exponent_factor",
            "borrowing_exponent_factor",
        ):
            if getattr(self, name) < FLOAT_PRECISION:
                raise ValueError(f"{name} must be at least 1.0")

    def borrowing_factor(self, is_long: bool) -> int:
        return self.borrowing_factor_for_longs if is_long else self.borrowing_factor_for_shorts


_FIELD_NAMES = frozenset(f.name for f in fields(MarketConfig))
_RAW_AMOUNT_FIELDS = frozenset({"max_pool_amount"})


class ConfigStore:
    """Market configs keyed by market token, with an optional default."""

    def __init__(
        self,
        markets: Optional[Mapping[str, MarketConfig]] = None,
        default: Optional[MarketConfig] = None,
    ):
        self._markets: Dict[str, MarketConfig] = dict(markets or {})
        self._default = default

    def set(self, market_token: str, config: MarketConfig) -> None:
        self._markets[market_token] = config

    def for_market(self, market_token: str) -> MarketConfig:
        config = self._markets.get(market_token, self._default)
        if config is None:
            raise ConfigError(f"no configuration for market {market_token}")
        return config

    def get(self, market_token: str, name: str) -> int:
        if name not in _FIELD_NAMES:
            raise ConfigError(f"unknown config parameter: {name}")
        return getattr(self.for_market(market_token), name)


# ---------------------------------------------------------------------------
# YAML loading
# ---------------------------------------------------------------------------

def parse_factor(value: Any, name: str = "factor") -> int:
    """
    Convert a YAML scalar to a FLOAT_PRECISION-scaled int.

    "0.001" -> 1e27, "0.1%" -> 1e27, 2 -> 2e30.

    Raises:
        ConfigError: floats, bools, malformed strings, or values finer than 1e-30
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise ConfigError(f"{name}: use a decimal string instead of {type(value).__name__} {value!r}")
    percent_scale = False
    if isinstance(value, int):
        d = Decimal(value)
    elif isinstance(value, str):
        text = value.strip()
        percent = text.endswith("%")
        if percent:
            text = text[:-1].strip()
        try:
            d = Decimal(text)
        except InvalidOperation:
            raise ConfigError(f"{name}: not a decimal: {value!r}") from None
        if not d.is_finite():
            raise ConfigError(f"{name}: not finite: {value!r}")
        percent_scale = percent
    else:
        raise ConfigError(f"{name}: unsupported value {value!r}")

    with localcontext() as dctx:
        dctx.prec = 200
        if percent_scale:
            d = d / 100
        scaled = d * FLOAT_PRECISION
        is_integral = scaled == scaled.to_integral_value()
    if not is_integral:
        raise ConfigError(f"{name}: more precise than 1e-30: {value!r}")
    if scaled < 0:
        raise ConfigError(f"{name}: must be non-negative: {value!r}")
    return int(scaled)


def _parse_amount(value: Any, name: str) -> int:
    if isinstance(value, bool) or isinstance(value, float):
        raise ConfigError(f"{name}: must be an integer token amount, got {value!r}")
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    if isinstance(value, int) and value >= 0:
        return value
    raise ConfigError(f"{name}: must be a non-negative integer token amount, got {value!r}")


def _apply_overrides(base: MarketConfig, raw: Any, where: str) -> MarketConfig:
    if raw is None:
        return base
    if not isinstance(raw, dict):
        raise ConfigError(f"{where}: expected a mapping")
    updates: Dict[str, int] = {}
    for key, value in raw.items():
        if key not in _FIELD_NAMES:
            raise ConfigError(f"{where}: unknown config parameter: {key}")
        label = f"{where}.{key}"
        updates[key] = _parse_amount(value, label) if key in _RAW_AMOUNT_FIELDS else parse_factor(value, label)
    try:
        return replace(base, **updates)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{where}: {exc}") from exc


def config_from_mapping(data: Any) -> ConfigStore:
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError("config root must be a mapping")
    unknown = set(data) - {"defaults", "markets"}
    if unknown:
        raise ConfigError(f"unknown top-level keys: {sorted(unknown)}")

    default = _apply_overrides(MarketConfig(), data.get("defaults"), "defaults")
    markets_raw = data.get("markets") or {}
    if not isinstance(markets_raw, dict):
        raise ConfigError("markets must be a mapping")
    markets = {
        str(market_token): _apply_overrides(default, raw, f"markets.{market_token}")
        for market_token, raw in markets_raw.items()
    }
    return ConfigStore(markets, default=default)


def load_config(path: Union[str, Path]) -> ConfigStore:
    """Load a `ConfigStore` from a YAML file."""
    p = Path(path)
    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"{p}: invalid YAML: {exc}") from exc
    return config_from_mapping(data)
