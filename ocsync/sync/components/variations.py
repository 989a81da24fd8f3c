# ocsync/sync/components/variations.py
# ---------------------------------------------------------
# Variation materializer, in two explicit phases:
#   1) reset (first chunk only): mark variable, re-attach the option
#      attributes, capture the base price, wipe every variation
#   2) materialize (every chunk): one variation per combination
#
# The reset is a full replace, never a diff. A run that stops between the
# wipe and the last chunk leaves the product with a partial variation set
# until the next offset-0 pass for that product. Only a single chunk (one
# batch request) is written as a unit.
# ---------------------------------------------------------
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ocsync.sync.components.attributes import merge_product_attributes, product_attribute_entry
from ocsync.sync.components.options import OptionValues
from ocsync.sync.components.price import combination_price, format_price, to_decimal
from ocsync.woocommerce import BASE_PRICE_META_KEY, meta_value

logger = logging.getLogger("uvicorn.error")


def captured_base_price(product: Dict[str, Any], fallback: Optional[Decimal] = None) -> Decimal:
    """
    Base price captured when the product's first chunk ran. Falls back to the
    product's own regular price, then to `fallback`.
    """
    stored = meta_value(product, BASE_PRICE_META_KEY)
    if stored not in (None, ""):
        return to_decimal(stored)
    current = to_decimal(product.get("regular_price"), default=None)
    if current is not None:
        return current
    return fallback if fallback is not None else Decimal("0")


async def reset_variable_product(
    catalog,
    product: Dict[str, Any],
    option_map: Dict[str, OptionValues],
    attributes: Dict[str, Dict[str, Any]],
    *,
    fallback_price: Optional[Decimal] = None,
) -> Tuple[Dict[str, Any], Decimal, int]:
    """
    Phase 1. `attributes` maps option name -> global attribute dict.
    Returns (updated product, base price, number of variations deleted).
    """
    current = to_decimal(product.get("regular_price"), default=None)
    if current is None:
        current = captured_base_price(product, fallback_price)
    base = current

    entries = [
        product_attribute_entry(attributes[name], list(ov.values), variation=True, position=i + 1)
        for i, (name, ov) in enumerate(option_map.items())
    ]
    attrs = merge_product_attributes(product.get("attributes") or [], entries, drop_variation_attrs=True)

    product = await catalog.update_product(product["id"], {
        "type": "variable",
        "attributes": attrs,
        "meta_data": [{"key": BASE_PRICE_META_KEY, "value": format_price(base)}],
    })

    children = await catalog.list_variations(product["id"])
    ids = [int(v["id"]) for v in children if v.get("id")]
    deleted = await catalog.delete_variations(product["id"], ids) if ids else 0
    if deleted:
        logger.info("[SYNC] product %s: removed %d old variation(s)", product["id"], deleted)
    return product, base, deleted


def variation_payload(
    option_map: Dict[str, OptionValues],
    attributes: Dict[str, Dict[str, Any]],
    combo: Sequence[str],
    base: Decimal,
) -> Dict[str, Any]:
    price = combination_price(base, option_map, combo)
    return {
        "regular_price": format_price(price),
        "attributes": [
            {"id": int(attributes[name]["id"]), "option": selected}
            for name, selected in zip(option_map.keys(), combo)
        ],
    }


async def materialize_chunk(
    catalog,
    product_id: int,
    option_map: Dict[str, OptionValues],
    attributes: Dict[str, Dict[str, Any]],
    chunk: List[Tuple[str, ...]],
    base: Decimal,
) -> List[Dict[str, Any]]:
    """Phase 2: create one variation per combination of the chunk."""
    if not chunk:
        return []
    payloads = [variation_payload(option_map, attributes, combo, base) for combo in chunk]
    return await catalog.create_variations(product_id, payloads)
