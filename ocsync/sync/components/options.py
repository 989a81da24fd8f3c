# ocsync/sync/components/options.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Tuple

from ocsync.opencart.models import SourceOption

logger = logging.getLogger("uvicorn.error")


@dataclass(frozen=True)
class OptionValues:
    """Ordered labels of one option plus the signed price delta of each label."""
    values: Tuple[str, ...]
    price_deltas: Dict[str, Decimal] = field(default_factory=dict)

    def delta(self, label: str) -> Decimal:
        return self.price_deltas.get(label, Decimal("0"))


def build_option_map(options: List[SourceOption]) -> Dict[str, OptionValues]:
    """
    option name -> OptionValues, in source option order.

    Order matters: it defines combination order and therefore chunk boundaries.
    - Options whose values are all missing are dropped (they would zero the
      combination count).
    - A repeated option name keeps its first position but takes the later
      option's values.
    - A repeated value label within one option is kept once, with the delta of
      its first occurrence, so no two combinations can collide.
    An empty map means the product is simple.
    """
    option_map: Dict[str, OptionValues] = {}
    for opt in options or []:
        name = (opt.name or "").strip()
        if not name:
            continue
        labels: List[str] = []
        deltas: Dict[str, Decimal] = {}
        for v in opt.values:
            label = (v.name or "").strip()
            if not label or label in deltas:
                continue
            labels.append(label)
            deltas[label] = v.delta
        if not labels:
            logger.debug("[SYNC] option %r has no values; skipped", name)
            continue
        if name in option_map:
            logger.warning("[SYNC] option name %r declared twice; later values win", name)
        option_map[name] = OptionValues(values=tuple(labels), price_deltas=deltas)
    return option_map


def value_lists(option_map: Dict[str, OptionValues]) -> List[Tuple[str, ...]]:
    return [ov.values for ov in option_map.values()]


def total_combinations(option_map: Dict[str, OptionValues]) -> int:
    if not option_map:
        return 0
    total = 1
    for ov in option_map.values():
        total *= len(ov.values)
    return total
