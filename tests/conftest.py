import copy
import itertools
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest
from sqlalchemy.exc import ProgrammingError

from ocsync.exceptions import SourceConnectionError, WooCommerceError
from ocsync.opencart.models import (
    ProductDescription,
    SourceOption,
    SourceOptionValue,
    SourceProduct,
)
from ocsync.woocommerce import EXTERNAL_ID_META_KEY, external_sku, meta_value


def make_option(poid: int, name: str, values: Dict[str, str]) -> SourceOption:
    """values: {label: "+2" | "-1.5" | "0"}"""
    out = []
    for label, delta in values.items():
        d = str(delta)
        prefix = "-" if d.startswith("-") else "+"
        out.append(SourceOptionValue(name=label, price=Decimal(d.lstrip("+-")), price_prefix=prefix))
    return SourceOption(product_option_id=poid, name=name, values=out)


class FakeReader:
    """In-memory stand-in for OpenCartReader."""

    def __init__(self):
        self.products: Dict[int, SourceProduct] = {}
        self.ranked: List[int] = []
        self.options: Dict[int, List[SourceOption]] = {}
        self.descriptions: Dict[int, ProductDescription] = {}
        self.categories: Dict[int, List[str]] = {}
        self.brands: Dict[int, str] = {}
        self.down = False

    def add(self, pid: int, *, model: str = "", price: str = "10", options=None,
            description: str = "", meta: str = "", categories=None, brand=None, image=None):
        self.products[pid] = SourceProduct(
            product_id=pid, model=model or f"Model {pid}", price=Decimal(price), image=image,
        )
        if pid not in self.ranked:
            self.ranked.append(pid)
            self.ranked.sort()
        self.options[pid] = list(options or [])
        self.descriptions[pid] = ProductDescription(description=description, meta_description=meta)
        self.categories[pid] = list(categories or [])
        if brand:
            self.brands[pid] = brand
        return self

    def _check(self):
        if self.down:
            raise SourceConnectionError("OpenCart DB Error: connection refused")

    async def ping(self):
        self._check()

    async def count_products_with_options(self) -> int:
        self._check()
        return len(self.ranked)

    async def product_id_at(self, rank: int) -> Optional[int]:
        self._check()
        return self.ranked[rank] if 0 <= rank < len(self.ranked) else None

    async def get_product(self, pid: int):
        return self.products.get(pid)

    async def get_description(self, pid: int):
        return self.descriptions.get(pid)

    async def get_category_names(self, pid: int):
        return list(self.categories.get(pid, []))

    async def get_manufacturer_name(self, pid: int):
        return self.brands.get(pid)

    async def get_options(self, pid: int):
        return copy.deepcopy(self.options.get(pid, []))


class RejectingEngine:
    """Engine stand-in whose every query fails the way MySQL rejects a missing table."""

    def connect(self):
        return self

    async def __aenter__(self):
        raise ProgrammingError(
            "SELECT DISTINCT product_id FROM oc_product_option", {},
            Exception("(1146, \"Table 'oc.oc_product_option' doesn't exist\")"),
        )

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeCatalog:
    """In-memory WooCommerce with the WooCatalog surface."""

    def __init__(self):
        self._ids = itertools.count(100)
        self.products: Dict[int, Dict[str, Any]] = {}
        self.categories: Dict[int, str] = {}
        self.attributes: List[Dict[str, Any]] = []
        self.terms: Dict[int, List[str]] = {}
        self.variations: Dict[int, List[Dict[str, Any]]] = {}
        self.fail_on: Optional[str] = None
        self.calls: List[str] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return None

    def _call(self, name: str):
        self.calls.append(name)
        if self.fail_on == name:
            raise WooCommerceError(f"{name} exploded", status_code=500)

    # products
    async def find_product_by_external_id(self, pid):
        self._call("find_product_by_external_id")
        for p in self.products.values():
            if p.get("sku") == external_sku(pid) and str(meta_value(p, EXTERNAL_ID_META_KEY)) == str(pid):
                return copy.deepcopy(p)
        return None

    async def create_product(self, payload):
        self._call("create_product")
        pid = next(self._ids)
        p = {"id": pid, "attributes": [], "meta_data": [], "images": [], "categories": []}
        p.update(copy.deepcopy(payload))
        self.products[pid] = p
        self.variations[pid] = []
        return copy.deepcopy(p)

    async def update_product(self, pid, payload):
        self._call("update_product")
        p = self.products[pid]
        for k, v in copy.deepcopy(payload).items():
            if k == "meta_data":
                for m in v:
                    for existing in p["meta_data"]:
                        if existing["key"] == m["key"]:
                            existing["value"] = m["value"]
                            break
                    else:
                        p["meta_data"].append(m)
            elif k == "attributes":
                p["attributes"] = [
                    dict(a, name=next((x["name"] for x in self.attributes if x["id"] == a.get("id")), a.get("name")))
                    for a in v
                ]
            else:
                p[k] = v
        return copy.deepcopy(p)

    # categories
    async def ensure_category(self, name):
        self._call("ensure_category")
        for cid, n in self.categories.items():
            if n.lower() == name.lower():
                return cid
        cid = next(self._ids)
        self.categories[cid] = name
        return cid

    # attributes
    async def find_attribute(self, slug):
        self._call("find_attribute")
        for a in self.attributes:
            if a["slug"] in (slug, f"pa_{slug}"):
                return dict(a)
        return None

    async def create_attribute(self, name, slug, type_="select", order_by="menu_order", has_archives=False):
        self._call("create_attribute")
        a = {"id": next(self._ids), "name": name, "slug": f"pa_{slug}", "type": type_}
        self.attributes.append(a)
        self.terms[a["id"]] = []
        return dict(a)

    async def ensure_attribute_terms(self, attribute_id, values):
        self._call("ensure_attribute_terms")
        existing = self.terms.setdefault(attribute_id, [])
        created = [v for v in values if v not in existing]
        existing.extend(created)
        return {"attribute_id": attribute_id, "created_count": len(created),
                "existing_count": len(values) - len(created), "created": created}

    # variations
    async def list_variations(self, pid):
        self._call("list_variations")
        return copy.deepcopy(self.variations.get(pid, []))

    async def delete_variations(self, pid, ids):
        self._call("delete_variations")
        before = len(self.variations[pid])
        self.variations[pid] = [v for v in self.variations[pid] if v["id"] not in ids]
        return before - len(self.variations[pid])

    async def create_variations(self, pid, payloads):
        self._call("create_variations")
        rows = []
        for payload in payloads:
            row = dict(copy.deepcopy(payload), id=next(self._ids))
            self.variations[pid].append(row)
            rows.append(row)
        return rows

    # helpers for assertions
    def only_product(self) -> Dict[str, Any]:
        assert len(self.products) == 1
        return next(iter(self.products.values()))

    def variation_set(self, pid) -> List[tuple]:
        names = {a["id"]: a["name"] for a in self.attributes}
        return [
            (tuple((names[a["id"]], a["option"]) for a in v["attributes"]), v["regular_price"])
            for v in self.variations[pid]
        ]


@pytest.fixture
def reader():
    return FakeReader()


@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest.fixture
def size_color_options():
    return [
        make_option(1, "Size", {"S": "0", "M": "+2", "L": "+4"}),
        make_option(2, "Color", {"Red": "0", "Blue": "+5"}),
    ]
