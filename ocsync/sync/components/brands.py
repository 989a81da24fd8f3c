from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ocsync.sync.components.attributes import (
    AttributeRegistrar,
    merge_product_attributes,
    product_attribute_entry,
)

logger = logging.getLogger("uvicorn.error")

BRAND_SLUG = "brand"
BRAND_LABEL = "Brand"


async def sync_product_brand(
    catalog,
    registrar: AttributeRegistrar,
    product: Dict[str, Any],
    brand: Optional[str],
) -> Dict[str, Any]:
    """
    Attach the OpenCart manufacturer as the product's 'Brand' attribute
    (global attribute, visible, not used for variations). Products without a
    manufacturer are left alone. Returns the (possibly updated) product.
    """
    brand = (brand or "").strip()
    if not brand:
        return product

    attr = await registrar.ensure(BRAND_SLUG, BRAND_LABEL)
    await registrar.ensure_terms(attr, [brand])

    current = next(
        (a for a in (product.get("attributes") or []) if int(a.get("id") or 0) == int(attr["id"])),
        None,
    )
    if current and list(current.get("options") or []) == [brand] and not current.get("variation"):
        return product

    attrs = merge_product_attributes(
        product.get("attributes") or [],
        [product_attribute_entry(attr, [brand], variation=False)],
    )
    logger.debug("[SYNC] brand %r -> product %s", brand, product.get("id"))
    return await catalog.update_product(product["id"], {"attributes": attrs})
