# ocsync/sync/components/attributes.py
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List

from ocsync.exceptions import WooCommerceError
from ocsync.woocommerce import _slugify

logger = logging.getLogger("uvicorn.error")


def attribute_slug(option_name: str) -> str:
    """
    Global attribute slug for an option name (case/space normalized).
    "Pickup Config" -> "pickup-config"; Woo exposes the taxonomy as "pa_pickup-config".
    """
    return _slugify(option_name)


class AttributeRegistrar:
    """
    Idempotent ensure of global attributes and their terms.

    Existence check then create; no locking. Two runs racing on the same slug
    both see "missing", one create wins and the loser re-reads. Lookups are
    memoized for the lifetime of one registrar (one step).
    """

    def __init__(self, catalog):
        self.catalog = catalog
        self._by_slug: Dict[str, Dict[str, Any]] = {}

    async def ensure(self, slug: str, label: str) -> Dict[str, Any]:
        """Global attribute dict (with "id") for `slug`, created as a select attribute when missing."""
        if slug in self._by_slug:
            return self._by_slug[slug]

        attr = await self.catalog.find_attribute(slug)
        if attr is None:
            try:
                attr = await self.catalog.create_attribute(name=label, slug=slug, type_="select")
                logger.info("[SYNC] created global attribute %s (%s)", label, slug)
            except WooCommerceError as e:
                attr = await self.catalog.find_attribute(slug)
                if attr is None:
                    raise
                logger.info("[SYNC] attribute %s appeared concurrently (%s)", slug, e.wc_code)

        if not isinstance(attr, dict) or not attr.get("id"):
            raise WooCommerceError(f"Failed to ensure attribute {label!r}")
        self._by_slug[slug] = attr
        return attr

    async def ensure_terms(self, attribute: Dict[str, Any], values: Iterable[str]) -> Dict[str, Any]:
        report = await self.catalog.ensure_attribute_terms(int(attribute["id"]), list(values))
        if report.get("created_count"):
            logger.info(
                "[SYNC] attribute %s: %d term(s) created",
                attribute.get("slug"), report["created_count"],
            )
        return report


def product_attribute_entry(attribute: Dict[str, Any], options: List[str], *,
                            variation: bool, position: int = 0) -> Dict[str, Any]:
    return {
        "id": int(attribute["id"]),
        "options": list(options),
        "visible": True,
        "variation": variation,
        "position": position,
    }


def merge_product_attributes(existing: List[Dict[str, Any]], updates: List[Dict[str, Any]],
                             *, drop_variation_attrs: bool = False) -> List[Dict[str, Any]]:
    """
    Merge attribute entries by attribute id: entries in `updates` replace the
    existing entry with the same id (or are appended). With
    `drop_variation_attrs`, existing variation attributes not in `updates` are
    removed, which is how the option schema gets reset on the first chunk.
    """
    by_id = {int(u["id"]): u for u in updates if u.get("id")}
    out: List[Dict[str, Any]] = []
    seen = set()
    for a in existing or []:
        aid = int(a.get("id") or 0)
        if aid and aid in by_id:
            out.append(by_id[aid])
            seen.add(aid)
            continue
        if drop_variation_attrs and a.get("variation"):
            continue
        out.append({
            "id": aid,
            "name": a.get("name"),
            "options": list(a.get("options") or []),
            "visible": bool(a.get("visible", True)),
            "variation": bool(a.get("variation", False)),
            "position": a.get("position", 0),
        } if aid else dict(a))
    for u in updates:
        if int(u.get("id") or 0) not in seen:
            out.append(u)
    return out
