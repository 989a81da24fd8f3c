# ocsync/sync/components/price.py
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Sequence

from ocsync.sync.components.options import OptionValues

_CENTS = Decimal("0.01")


def to_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    """Woo sends prices as strings ("" for none); OpenCart as DECIMAL(15,4)."""
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    s = str(value).strip()
    if not s:
        return default
    try:
        return Decimal(s)
    except InvalidOperation:
        return default


def format_price(value: Decimal) -> str:
    """Woo REST expects prices as strings."""
    return str(value.quantize(_CENTS, rounding=ROUND_HALF_UP))


def combination_price(base: Decimal, option_map: Dict[str, OptionValues], combo: Sequence[str]) -> Decimal:
    """
    base + the signed delta of every selected value, in option-map order.
    `combo` holds one label per option, positionally aligned with the map.
    """
    if len(combo) != len(option_map):
        raise ValueError(f"combination has {len(combo)} values for {len(option_map)} options")
    price = base
    for (_, ov), selected in zip(option_map.items(), combo):
        price += ov.delta(selected)
    return price
