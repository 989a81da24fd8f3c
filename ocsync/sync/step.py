# ocsync/sync/step.py
# =======================================================
# One bounded unit of work: one OpenCart product, one chunk
# of its variations.  (cursor in) -> (result, next cursor out)
#
#   1. rank -> OpenCart product id            (none: NO_MORE_PRODUCTS)
#   2. resolve/create Woo product               (gone: PRODUCT_NOT_FOUND)
#   3. option map + attribute slug check, then description/categories/brand
#                                               (no options: PRODUCT_HAS_NO_OPTIONS)
#   4. ensure attributes + terms
#   5. first chunk: reset; every chunk: materialize
#   6/7. VARIATIONS_IN_PROGRESS or PRODUCT_COMPLETE
# =======================================================
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from ocsync.exceptions import SourceConnectionError
from ocsync.sync.components.attributes import AttributeRegistrar, attribute_slug
from ocsync.sync.components.brands import BRAND_SLUG
from ocsync.sync.components.matrix import cartesian, chunk_window, slice_chunk
from ocsync.sync.components.options import build_option_map, total_combinations, value_lists
from ocsync.sync.components.products import resolve_product, sync_simple_fields
from ocsync.sync.components.variations import (
    captured_base_price,
    materialize_chunk,
    reset_variable_product,
)
from ocsync.sync.protocol import StepResult, StepState, SyncCursor
from ocsync.woocommerce import BASE_PRICE_META_KEY, meta_value

logger = logging.getLogger("uvicorn.error")


async def run_sync_step(
    cursor: SyncCursor,
    *,
    reader,
    catalog,
    chunk_size: int,
    image_base_url: Optional[str] = None,
) -> StepResult:
    """
    Process exactly one chunk for the product at `cursor.offset`.

    Unexpected failures while processing the product come back as an ERROR
    result carrying the message; they are never retried here. An unreachable
    OpenCart database raises SourceConnectionError.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")

    oc_id = await reader.product_id_at(cursor.offset)
    if oc_id is None:
        return StepResult(
            state=StepState.NO_MORE_PRODUCTS,
            message="No more products",
            cursor=SyncCursor(0, 0),
            has_more_variations=False,
            has_more_products=False,
        )
    total_products = await reader.count_products_with_options()

    try:
        return await _process_product(
            cursor, oc_id, total_products,
            reader=reader, catalog=catalog,
            chunk_size=chunk_size, image_base_url=image_base_url,
        )
    except SourceConnectionError:
        raise
    except Exception as e:
        logger.exception("[SYNC] OC #%s failed at %s: %s", oc_id, cursor, e)
        return StepResult(
            state=StepState.ERROR,
            message=str(e) or e.__class__.__name__,
            cursor=cursor,
            product_id=oc_id,
        )


def _product_done(state: StepState, message: str, cursor: SyncCursor, oc_id: int,
                  total_products: int, total_combinations: int = 0) -> StepResult:
    nxt = cursor.next_product()
    return StepResult(
        state=state,
        message=message,
        cursor=nxt,
        has_more_variations=False,
        has_more_products=nxt.offset < total_products,
        product_id=oc_id,
        total_combinations=total_combinations,
    )


async def _source_price(reader, oc_id: int) -> Optional[Decimal]:
    src = await reader.get_product(oc_id)
    return src.price if src else None


async def _attribute_slugs(reader, option_map, oc_id: int) -> Dict[str, str]:
    """
    option name -> global attribute slug. Raises ValueError when two options,
    or an option and the product's brand, would share one attribute.
    """
    owner_by_slug: Dict[str, str] = {}
    slugs: Dict[str, str] = {}
    for name in option_map:
        slug = attribute_slug(name)
        if slug in owner_by_slug:
            raise ValueError(
                f"Options {owner_by_slug[slug]!r} and {name!r} of OC #{oc_id} map to the same attribute {slug!r}"
            )
        owner_by_slug[slug] = name
        slugs[name] = slug

    if BRAND_SLUG in owner_by_slug and await reader.get_manufacturer_name(oc_id):
        raise ValueError(
            f"Option {owner_by_slug[BRAND_SLUG]!r} of OC #{oc_id} maps to the brand attribute {BRAND_SLUG!r}"
        )
    return slugs


async def _process_product(
    cursor: SyncCursor,
    oc_id: int,
    total_products: int,
    *,
    reader,
    catalog,
    chunk_size: int,
    image_base_url: Optional[str],
) -> StepResult:
    vo = cursor.variation_offset

    resolved = await resolve_product(reader, catalog, oc_id, image_base_url)
    if resolved is None:
        logger.info("[SYNC] OC #%s vanished from OpenCart; skipping", oc_id)
        return _product_done(StepState.PRODUCT_NOT_FOUND, f"OC #{oc_id} not found",
                             cursor, oc_id, total_products)

    option_map = build_option_map(await reader.get_options(oc_id))
    slugs = await _attribute_slugs(reader, option_map, oc_id)

    registrar = AttributeRegistrar(catalog)
    product = await sync_simple_fields(reader, catalog, registrar, resolved.product, oc_id)

    if not option_map:
        return _product_done(StepState.PRODUCT_HAS_NO_OPTIONS, f"No options for OC #{oc_id}",
                             cursor, oc_id, total_products)

    attributes: Dict[str, Dict[str, Any]] = {}
    for name, ov in option_map.items():
        attr = await registrar.ensure(slugs[name], name)
        await registrar.ensure_terms(attr, ov.values)
        attributes[name] = attr

    combos = cartesian(value_lists(option_map))
    total = total_combinations(option_map)

    if vo == 0:
        fallback = None
        if not product.get("regular_price"):
            fallback = await _source_price(reader, oc_id)
        product, base, _ = await reset_variable_product(
            catalog, product, option_map, attributes, fallback_price=fallback
        )
    else:
        fallback = None
        if meta_value(product, BASE_PRICE_META_KEY) in (None, "") and not product.get("regular_price"):
            fallback = await _source_price(reader, oc_id)
        base = captured_base_price(product, fallback)
        if vo >= total:
            logger.warning("[SYNC] OC #%s: variation offset %d past %d combinations", oc_id, vo, total)

    chunk = slice_chunk(combos, vo, chunk_size)
    await materialize_chunk(catalog, int(product["id"]), option_map, attributes, chunk, base)
    del combos

    next_vo, has_more = chunk_window(total, vo, len(chunk))
    if has_more:
        return StepResult(
            state=StepState.VARIATIONS_IN_PROGRESS,
            message=f"Variations {vo}-{vo + len(chunk) - 1} of {total} done for OC #{oc_id}",
            cursor=cursor.next_chunk(next_vo),
            has_more_variations=True,
            has_more_products=True,
            product_id=oc_id,
            total_combinations=total,
        )
    return _product_done(StepState.PRODUCT_COMPLETE, f"All {total} variations done for OC #{oc_id}",
                         cursor, oc_id, total_products, total)
