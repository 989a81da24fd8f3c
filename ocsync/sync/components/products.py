# ocsync/sync/components/products.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ocsync.opencart.models import SourceProduct
from ocsync.sync.components.attributes import AttributeRegistrar
from ocsync.sync.components.brands import sync_product_brand
from ocsync.sync.components.images import absolute_image_url, import_product_image
from ocsync.sync.components.price import format_price
from ocsync.woocommerce import EXTERNAL_ID_META_KEY, external_sku

logger = logging.getLogger("uvicorn.error")


@dataclass
class ResolvedProduct:
    product: Dict[str, Any]
    created: bool = False


def new_product_payload(src: SourceProduct) -> Dict[str, Any]:
    price = format_price(src.price)
    return {
        "name": src.model or f"OpenCart #{src.product_id}",
        "type": "simple",
        "status": "publish",
        "sku": external_sku(src.product_id),
        "regular_price": price,
        "meta_data": [{"key": EXTERNAL_ID_META_KEY, "value": str(src.product_id)}],
    }


async def resolve_product(reader, catalog, product_id: int,
                          image_base_url: str | None = None) -> Optional[ResolvedProduct]:
    """
    Find the Woo product linked to `product_id`, or create it from the
    OpenCart row. None when the source product no longer exists.
    """
    existing = await catalog.find_product_by_external_id(product_id)
    if existing:
        return ResolvedProduct(product=existing, created=False)

    src = await reader.get_product(product_id)
    if src is None:
        return None

    product = await catalog.create_product(new_product_payload(src))
    logger.info("[SYNC] created Woo product %s for OC #%s", product.get("id"), product_id)

    img = absolute_image_url(image_base_url, src.image)
    if img:
        await import_product_image(catalog, product, img)

    return ResolvedProduct(product=product, created=True)


async def sync_simple_fields(reader, catalog, registrar: AttributeRegistrar,
                             product: Dict[str, Any], product_id: int) -> Dict[str, Any]:
    """
    Overwrite description, short description, categories and brand from
    OpenCart. Runs on every step; repeating it is harmless.
    """
    desc = await reader.get_description(product_id)
    payload: Dict[str, Any] = {
        "description": desc.description if desc else "",
        "short_description": desc.meta_description if desc else "",
    }

    cat_names = await reader.get_category_names(product_id)
    if cat_names:
        cat_ids = [await catalog.ensure_category(name) for name in cat_names]
        payload["categories"] = [{"id": cid} for cid in cat_ids]

    product = await catalog.update_product(product["id"], payload)

    brand = await reader.get_manufacturer_name(product_id)
    return await sync_product_brand(catalog, registrar, product, brand)
