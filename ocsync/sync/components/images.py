# ocsync/sync/components/images.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

from ocsync.exceptions import WooCommerceError

logger = logging.getLogger("uvicorn.error")


def absolute_image_url(base_url: str | None, image_path: str | None) -> Optional[str]:
    """
    Turn an OpenCart image path ("catalog/amps/foo.jpg") into a public URL.
    Absolute URLs are returned as-is; relative ones need a base.
    """
    if not image_path or not image_path.strip():
        return None
    path = image_path.strip()
    if path.startswith(("http://", "https://")):
        return path
    base = (base_url or "").rstrip("/")
    if not base:
        logger.debug("OC_IMAGE_BASE_URL not set; cannot absolutize %s", path)
        return None
    return f"{base}/{quote(path.lstrip('/'), safe='/:%()[]&=+,-._~')}"


async def import_product_image(catalog, product: Dict[str, Any], image_url: Optional[str]) -> bool:
    """
    Best-effort featured image import: Woo sideloads the URL into the media
    library. Any failure is logged and swallowed; the product stays as created.
    """
    if not image_url:
        return False
    try:
        await catalog.update_product(product["id"], {"images": [{"src": image_url, "position": 0}]})
        return True
    except WooCommerceError as e:
        logger.warning(f"[IMG] Failed to import {image_url} for product {product.get('id')}: {e}")
        return False
