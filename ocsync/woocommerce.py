#==========================================================================================
# ocsync/woocommerce.py
# WooCommerce API interface module.
# Target catalog write surface for the sync: products, categories, global attributes,
# attribute terms and variations.
#==========================================================================================
from __future__ import annotations

import html
import logging
from typing import Any, Dict, Iterable, List, Optional

import httpx

from ocsync.config import settings
from ocsync.exceptions import WooCommerceError

logger = logging.getLogger("uvicorn.error")

EXTERNAL_ID_META_KEY = "oc_product_id"
BASE_PRICE_META_KEY = "oc_sync_base_price"
PER_PAGE = 100


def _slugify(text: str) -> str:
    """
    Simple slugifier: lowercase, non-alnum -> single '-'.
    Guarantees a non-empty slug.
    """
    text = (text or "").strip().lower()
    out = []
    dash = False
    for ch in text:
        if ch.isalnum():
            out.append(ch)
            dash = False
        else:
            if not dash:
                out.append("-")
                dash = True
    s = "".join(out).strip("-")
    return s or "attr"


def external_sku(product_id: int) -> str:
    """SKU under which a synced OpenCart product lives in Woo."""
    return f"oc-{int(product_id)}"


def meta_value(product: Dict[str, Any], key: str) -> Any:
    for m in (product or {}).get("meta_data") or []:
        if isinstance(m, dict) and m.get("key") == key:
            return m.get("value")
    return None


def _norm_name(name: str | None) -> str:
    # Woo returns term names HTML-encoded ("Amps &amp; Cabs")
    return html.unescape(name or "").strip().lower()


class WooCatalog:
    """
    Thin async client over /wp-json/wc/v3 with the operations the sync needs.
    Use as an async context manager; pass `transport` to swap the network out.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        api_secret: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=f"{self.base_url}/wp-json/wc/v3",
            auth=(api_key, api_secret),
            timeout=timeout,
            verify=False,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, transport: httpx.AsyncBaseTransport | None = None) -> "WooCatalog":
        return cls(
            settings.WC_BASE_URL,
            settings.WC_API_KEY,
            settings.WC_API_SECRET,
            timeout=settings.WC_TIMEOUT,
            transport=transport,
        )

    async def __aenter__(self) -> "WooCatalog":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ---- Low level ----

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"[WC] {method} {path} failed: {e}")
            raise WooCommerceError(f"WooCommerce request failed: {e}") from e

        if resp.status_code >= 400:
            try:
                body = resp.json()
            except ValueError:
                body = {"message": resp.text}
            if not isinstance(body, dict):
                body = {"message": str(body)}
            logger.warning(f"[WC] {method} {path} -> {resp.status_code}: {body.get('message')}")
            raise WooCommerceError(
                body.get("message") or f"WooCommerce returned {resp.status_code}",
                status_code=resp.status_code,
                wc_code=body.get("code"),
                data=body.get("data"),
            )
        return resp.json() if resp.content else None

    async def _get_all(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Fetch every page of a list endpoint."""
        out: List[Dict[str, Any]] = []
        page = 1
        while True:
            q = dict(params or {})
            q.update({"per_page": PER_PAGE, "page": page})
            batch = await self._request("GET", path, params=q) or []
            out.extend(batch)
            if len(batch) < PER_PAGE:
                break
            page += 1
        return out

    # ---- Products ----

    async def find_product_by_external_id(self, product_id: int) -> Optional[Dict[str, Any]]:
        """Product linked to an OpenCart product id, or None."""
        candidates = await self._request(
            "GET", "/products", params={"sku": external_sku(product_id), "status": "any"}
        ) or []
        for p in candidates:
            if str(meta_value(p, EXTERNAL_ID_META_KEY)) == str(product_id):
                return p
        return None

    async def create_product(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/products", json=payload)

    async def update_product(self, product_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("PUT", f"/products/{product_id}", json=payload)

    # ---- Categories ----

    async def ensure_category(self, name: str) -> int:
        """Category id for `name`, creating the category when missing."""
        wanted = _norm_name(name)
        found = await self._request(
            "GET", "/products/categories", params={"search": name, "per_page": PER_PAGE}
        ) or []
        for c in found:
            if _norm_name(c.get("name")) == wanted:
                return int(c["id"])
        try:
            created = await self._request("POST", "/products/categories", json={"name": name})
            return int(created["id"])
        except WooCommerceError as e:
            # created concurrently, Woo tells us which one
            if e.wc_code == "term_exists" and isinstance(e.data, dict) and e.data.get("resource_id"):
                return int(e.data["resource_id"])
            raise

    # ---- Global attributes ----

    async def get_attributes(self) -> List[Dict[str, Any]]:
        # this endpoint is not paginated
        return await self._request("GET", "/products/attributes") or []

    async def find_attribute(self, slug: str) -> Optional[Dict[str, Any]]:
        wanted = {slug.lower(), f"pa_{slug}".lower()}
        for a in await self.get_attributes():
            if (a.get("slug") or "").lower() in wanted:
                return a
        return None

    async def create_attribute(self, name: str, slug: str, type_: str = "select",
                               order_by: str = "menu_order", has_archives: bool = False) -> Dict[str, Any]:
        payload = {
            "name": name,
            "slug": slug,
            "type": type_,
            "order_by": order_by,
            "has_archives": has_archives,
        }
        return await self._request("POST", "/products/attributes", json=payload)

    async def get_attribute_terms(self, attribute_id: int) -> List[Dict[str, Any]]:
        return await self._get_all(f"/products/attributes/{attribute_id}/terms", params={"hide_empty": False})

    async def create_attribute_term(self, attribute_id: int, name: str) -> Dict[str, Any]:
        return await self._request("POST", f"/products/attributes/{attribute_id}/terms", json={"name": name})

    async def ensure_attribute_terms(self, attribute_id: int, values: Iterable[str]) -> Dict[str, Any]:
        """
        Ensure all given values exist as terms for the attribute.
        Returns a summary with created/existing lists.
        """
        existing = await self.get_attribute_terms(attribute_id)
        by_name = {_norm_name(t.get("name")) for t in existing}
        by_slug = {(t.get("slug") or "").lower() for t in existing}

        created: List[str] = []
        already: List[str] = []
        for v in values:
            if not isinstance(v, str) or not v.strip():
                continue
            if _norm_name(v) in by_name or _slugify(v) in by_slug:
                already.append(v)
                continue
            try:
                await self.create_attribute_term(attribute_id, v)
            except WooCommerceError as e:
                if e.wc_code != "term_exists":
                    raise
                already.append(v)
                continue
            by_name.add(_norm_name(v))
            created.append(v)

        return {
            "attribute_id": attribute_id,
            "created_count": len(created),
            "existing_count": len(already),
            "created": created,
            "existing": already,
        }

    # ---- Variations ----

    async def list_variations(self, product_id: int) -> List[Dict[str, Any]]:
        return await self._get_all(f"/products/{product_id}/variations")

    async def delete_variations(self, product_id: int, variation_ids: List[int]) -> int:
        """Force-delete the given variations (batched). Returns the number deleted."""
        deleted = 0
        for i in range(0, len(variation_ids), PER_PAGE):
            ids = variation_ids[i:i + PER_PAGE]
            res = await self._request(
                "POST", f"/products/{product_id}/variations/batch", json={"delete": ids}
            ) or {}
            for row in res.get("delete") or []:
                if isinstance(row, dict) and row.get("error"):
                    raise WooCommerceError(
                        f"Failed to delete variation {row.get('id')}: {row['error'].get('message')}",
                        wc_code=row["error"].get("code"),
                    )
                deleted += 1
        return deleted

    async def create_variations(self, product_id: int, payloads: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Create variations in batches of at most 100. Returns the created rows."""
        created: List[Dict[str, Any]] = []
        for i in range(0, len(payloads), PER_PAGE):
            res = await self._request(
                "POST",
                f"/products/{product_id}/variations/batch",
                json={"create": payloads[i:i + PER_PAGE]},
            ) or {}
            for row in res.get("create") or []:
                if isinstance(row, dict) and row.get("error"):
                    raise WooCommerceError(
                        f"Failed to create variation: {row['error'].get('message')}",
                        wc_code=row["error"].get("code"),
                    )
                created.append(row)
        return created
