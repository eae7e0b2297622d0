"""
상품/카테고리/재고 병합 테스트.
"""

import pytest

from catalog_export.exceptions import MalformedProductError
from catalog_export.schemas.catalog import (
    Category,
    DataSource,
    DegradedReason,
    InventoryLookup,
    InventoryRecord,
    Product,
)
from catalog_export.services.enrichment import merge_products, merge_statistics, resolve_media, url_key


def _product(sku, **kwargs) -> Product:
    return Product.model_validate({"sku": sku, **kwargs})


@pytest.fixture
def category_map():
    return {
        10: Category(id=10, name="Phones", position=3),
        20: Category(id=20, name="Tablets", position=4),
    }


@pytest.mark.unit
class TestMergeProducts:
    def test_partial_coverage(self, category_map):
        """A: 카테고리+재고, B: 재고만, C: 카테고리만(기본 재고)."""
        products = [
            _product("A", category_ids=[10]),
            _product("B", category_ids=[99]),
            _product("C", extension_attributes={"category_links": [{"category_id": "20", "position": 7}]}),
        ]
        inventory_map = {
            "A": InventoryRecord(sku="A", qty=3, is_in_stock=True),
            "B": InventoryLookup.resolved(InventoryRecord(sku="B", qty=1, is_in_stock=True)),
        }

        enriched = merge_products(products, category_map, inventory_map)
        a, b, c = enriched

        assert [ref.name for ref in a.categories] == ["Phones"]
        assert a.inventory.qty == 3
        assert a.provenance.data_sources == [DataSource.PRODUCTS, DataSource.CATEGORIES, DataSource.INVENTORY]
        assert a.provenance.merge_status == "success"

        assert b.categories == []
        assert b.inventory.qty == 1
        assert b.provenance.data_sources == [DataSource.PRODUCTS, DataSource.INVENTORY]
        assert b.provenance.merge_status == "partial"

        assert [ref.id for ref in c.categories] == [20]
        assert c.categories[0].position == 7
        assert c.inventory == InventoryRecord.default("C")
        assert c.provenance.data_sources == [DataSource.PRODUCTS, DataSource.CATEGORIES]
        assert c.provenance.merge_status == "partial"

    def test_degraded_lookup_not_counted(self, category_map):
        products = [_product("A", category_ids=[10])]
        inventory_map = {"A": InventoryLookup.fallback("A", DegradedReason.UPSTREAM_UNAVAILABLE)}

        (item,) = merge_products(products, category_map, inventory_map)

        assert DataSource.INVENTORY not in item.provenance.data_sources
        assert item.provenance.inventory_degraded_reason == DegradedReason.UPSTREAM_UNAVAILABLE
        assert item.inventory.qty == 0

    def test_product_without_categories_and_inventory_ok_is_success(self):
        (item,) = merge_products([_product("A")], {}, {"A": InventoryRecord(sku="A", qty=1)})
        assert item.provenance.merge_status == "success"

    def test_missing_sku_raises_with_index(self, category_map):
        products = [_product("A"), Product.model_validate({"name": "no sku"})]
        with pytest.raises(MalformedProductError) as excinfo:
            merge_products(products, category_map, {})
        assert excinfo.value.index == 1

    def test_inputs_not_mutated(self, category_map):
        product = _product("A", category_ids=[10])
        before = product.model_dump()
        merge_products([product], category_map, {})
        assert product.model_dump() == before

    def test_url_key_and_media(self):
        product = _product(
            "A",
            custom_attributes=[{"attribute_code": "url_key", "value": "galaxy-s"}],
            media_gallery_entries=[
                {"file": "/g/a/a.jpg", "position": 1, "types": ["image"]},
                {"file": "https://cdn.test/b.jpg", "position": 2},
                {"file": "c.jpg", "position": 0, "disabled": True},
            ],
        )

        (item,) = merge_products([product], {}, {}, media_base_url="https://shop.test/media/catalog/product")

        assert item.url_key == "galaxy-s"
        assert [m.url for m in item.media] == [
            "https://cdn.test/b.jpg",
            "https://shop.test/media/catalog/product/g/a/a.jpg",
        ]
        assert item.media[0].types == ["image"]


@pytest.mark.unit
def test_resolve_media_without_base():
    product = _product("A", media_gallery_entries=[{"file": "x.jpg"}])
    assert [m.url for m in resolve_media(product)] == ["/x.jpg"]


@pytest.mark.unit
def test_url_key_missing():
    assert url_key(_product("A")) == ""


@pytest.mark.unit
def test_merge_statistics(category_map):
    products = [_product("A", category_ids=[10]), _product("B"), _product("C", category_ids=[20])]
    inventory_map = {"A": InventoryRecord(sku="A", qty=1), "B": InventoryRecord(sku="B", qty=1)}

    stats = merge_statistics(merge_products(products, category_map, inventory_map))

    assert stats.products_processed == 3
    assert stats.categories_merged == 2
    assert stats.missing_categories == 1
    assert stats.inventory_merged == 2
    assert stats.missing_inventory == 1
    assert stats.successful_merges == 2
    assert stats.partial_merges == 1
