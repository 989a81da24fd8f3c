import asyncio
import json

import httpx
import pytest

from ocsync.exceptions import WooCommerceError
from ocsync.woocommerce import WooCatalog, _slugify, external_sku, meta_value


def call(handler, fn):
    """Run fn(catalog) against a catalog whose network is `handler`."""
    async def go():
        async with WooCatalog("https://shop.test/", "ck", "cs",
                              transport=httpx.MockTransport(handler)) as wc:
            return await fn(wc)
    return asyncio.run(go())


def test_slugify_and_sku():
    assert _slugify("  Pickup Type ") == "pickup-type"
    assert _slugify("Größe / Size") == "größe-size"
    assert _slugify("***") == "attr"
    assert external_sku(42) == "oc-42"
    assert meta_value({"meta_data": [{"key": "a", "value": 1}]}, "a") == 1
    assert meta_value({}, "a") is None


def test_find_product_checks_external_id_meta():
    seen = {}

    def handler(request):
        seen["url"] = request.url
        return httpx.Response(200, json=[
            {"id": 1, "sku": "oc-7", "meta_data": [{"key": "oc_product_id", "value": "8"}]},
            {"id": 2, "sku": "oc-7", "meta_data": [{"key": "oc_product_id", "value": "7"}]},
        ])

    product = call(handler, lambda wc: wc.find_product_by_external_id(7))
    assert product["id"] == 2
    assert seen["url"].path == "/wp-json/wc/v3/products"
    assert seen["url"].params["sku"] == "oc-7"


def test_find_product_without_match():
    product = call(lambda r: httpx.Response(200, json=[]), lambda wc: wc.find_product_by_external_id(7))
    assert product is None


def test_error_status_raises_with_woo_code():
    def handler(request):
        return httpx.Response(400, json={"code": "woocommerce_rest_invalid", "message": "Bad", "data": {"status": 400}})

    with pytest.raises(WooCommerceError) as exc:
        call(handler, lambda wc: wc.update_product(5, {"name": "x"}))
    assert exc.value.status_code == 400
    assert exc.value.wc_code == "woocommerce_rest_invalid"
    assert exc.value.message == "Bad"


def test_network_error_raises():
    def handler(request):
        raise httpx.ConnectError("down", request=request)

    with pytest.raises(WooCommerceError):
        call(handler, lambda wc: wc.update_product(5, {"name": "x"}))


def test_ensure_category_reuses_case_insensitive_match():
    posts = []

    def handler(request):
        if request.method == "POST":
            posts.append(request)
        return httpx.Response(200, json=[{"id": 3, "name": "Amps &amp; Cabs"}])

    assert call(handler, lambda wc: wc.ensure_category("amps & cabs")) == 3
    assert posts == []


def test_ensure_category_resolves_term_exists_race():
    def handler(request):
        if request.method == "GET":
            return httpx.Response(200, json=[])
        return httpx.Response(400, json={
            "code": "term_exists", "message": "exists", "data": {"status": 400, "resource_id": 44},
        })

    assert call(handler, lambda wc: wc.ensure_category("Pedals")) == 44


def test_find_attribute_matches_prefixed_slug():
    def handler(request):
        return httpx.Response(200, json=[{"id": 1, "name": "Size", "slug": "pa_size"}])

    assert call(handler, lambda wc: wc.find_attribute("size"))["id"] == 1
    assert call(handler, lambda wc: wc.find_attribute("color")) is None


def test_ensure_attribute_terms_creates_only_missing():
    created = []

    def handler(request):
        if request.method == "GET":
            return httpx.Response(200, json=[{"id": 1, "name": "S", "slug": "s"}])
        name = json.loads(request.content)["name"]
        if name == "L":
            return httpx.Response(400, json={"code": "term_exists", "message": "exists"})
        created.append(name)
        return httpx.Response(201, json={"id": 9, "name": name})

    summary = call(handler, lambda wc: wc.ensure_attribute_terms(5, ["S", "M", "L", " "]))
    assert created == ["M"]
    assert summary["created"] == ["M"]
    assert summary["existing"] == ["S", "L"]


def test_list_variations_follows_pages():
    pages = []

    def handler(request):
        page = int(request.url.params["page"])
        pages.append(page)
        size = 100 if page == 1 else 3
        return httpx.Response(200, json=[{"id": page * 1000 + i} for i in range(size)])

    rows = call(handler, lambda wc: wc.list_variations(9))
    assert pages == [1, 2]
    assert len(rows) == 103


def test_batch_delete_and_create():
    bodies = []

    def handler(request):
        body = json.loads(request.content)
        bodies.append(body)
        if "delete" in body:
            return httpx.Response(200, json={"delete": [{"id": i} for i in body["delete"]]})
        return httpx.Response(200, json={"create": [dict(p, id=i) for i, p in enumerate(body["create"])]})

    ids = list(range(150))
    deleted = call(handler, lambda wc: wc.delete_variations(9, ids))
    assert deleted == 150
    assert [len(b["delete"]) for b in bodies] == [100, 50]

    rows = call(handler, lambda wc: wc.create_variations(9, [{"regular_price": "1.00"}] * 2))
    assert len(rows) == 2


def test_batch_row_error_raises():
    def handler(request):
        return httpx.Response(200, json={"create": [
            {"id": 0, "error": {"code": "woocommerce_rest_invalid_sku", "message": "Invalid SKU"}},
        ]})

    with pytest.raises(WooCommerceError) as exc:
        call(handler, lambda wc: wc.create_variations(9, [{"regular_price": "1.00"}]))
    assert "Invalid SKU" in exc.value.message
