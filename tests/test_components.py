import asyncio

from ocsync.exceptions import WooCommerceError
from ocsync.sync.components.attributes import (
    AttributeRegistrar,
    attribute_slug,
    merge_product_attributes,
)
from ocsync.sync.components.images import absolute_image_url, import_product_image
from ocsync.sync.components.products import resolve_product


def test_attribute_slug():
    assert attribute_slug("Pickup Config") == "pickup-config"
    assert attribute_slug("COLOUR") == "colour"


def test_registrar_recovers_from_concurrent_create(catalog):
    async def racing_create(name, slug, type_="select", order_by="menu_order", has_archives=False):
        # another run created it between our lookup and our create
        catalog.attributes.append({"id": 77, "name": name, "slug": f"pa_{slug}"})
        raise WooCommerceError("slug already in use", status_code=400, wc_code="woocommerce_rest_cannot_create")

    catalog.create_attribute = racing_create
    registrar = AttributeRegistrar(catalog)

    async def go():
        first = await registrar.ensure("size", "Size")
        again = await registrar.ensure("size", "Size")
        return first, again

    first, again = asyncio.run(go())
    assert first["id"] == 77
    assert again is first
    assert catalog.calls.count("find_attribute") == 2


def test_merge_drops_stale_variation_attributes_only():
    existing = [
        {"id": 1, "name": "Brand", "options": ["Fender"], "variation": False},
        {"id": 2, "name": "Color", "options": ["Red"], "variation": True},
        {"id": 0, "name": "Custom", "options": ["x"], "variation": False},
    ]
    updates = [{"id": 3, "options": ["S"], "visible": True, "variation": True, "position": 1}]
    merged = merge_product_attributes(existing, updates, drop_variation_attrs=True)
    assert [a.get("name") for a in merged] == ["Brand", "Custom", None]
    assert merged[-1]["id"] == 3


def test_absolute_image_url():
    assert absolute_image_url("https://oc.test/image/", "catalog/amps/a b.jpg") == \
        "https://oc.test/image/catalog/amps/a%20b.jpg"
    assert absolute_image_url("", "catalog/a.jpg") is None
    assert absolute_image_url(None, "https://cdn.test/a.jpg") == "https://cdn.test/a.jpg"
    assert absolute_image_url("https://oc.test", "  ") is None


def test_image_is_imported_on_create(reader, catalog):
    reader.add(4, options=[], image="catalog/a.jpg")

    resolved = asyncio.run(resolve_product(reader, catalog, 4, "https://oc.test/image"))

    assert resolved.created is True
    assert catalog.products[resolved.product["id"]]["images"] == [{"src": "https://oc.test/image/catalog/a.jpg", "position": 0}]


def test_image_failure_does_not_fail_the_product(catalog):
    catalog.products[1] = {"id": 1}
    catalog.fail_on = "update_product"
    ok = asyncio.run(import_product_image(catalog, {"id": 1}, "https://oc.test/x.jpg"))
    assert ok is False
