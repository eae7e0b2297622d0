"""
상품 카테고리 ID 추출 테스트.
"""

import pytest

from catalog_export.schemas.catalog import Product
from catalog_export.services.category_ids import (
    AttributeCategoryValue,
    CategoryLinkList,
    DirectCategoryList,
    category_sources,
    collect_category_ids,
    extract_category_ids,
)


def _product(**kwargs) -> Product:
    return Product.model_validate({"sku": "SKU-1", **kwargs})


@pytest.mark.unit
class TestExtractCategoryIds:
    def test_direct_list_scalars_and_objects(self):
        product = _product(category_ids=[3, "4"], categories=[{"id": 5}, {"category_id": "6"}])
        assert extract_category_ids(product) == frozenset({3, 4, 5, 6})

    def test_object_null_id_uses_category_id(self):
        product = _product(categories=[{"id": None, "category_id": 5}, {"id": "x", "category_id": "6"}])
        assert extract_category_ids(product) == frozenset({5, 6})

    def test_attribute_comma_string(self):
        product = _product(custom_attributes=[{"attribute_code": "category_ids", "value": "1, 2,3"}])
        assert extract_category_ids(product) == frozenset({1, 2, 3})

    def test_attribute_list_and_scalar(self):
        as_list = _product(custom_attributes=[{"attribute_code": "category_ids", "value": ["7", 8]}])
        as_scalar = _product(custom_attributes=[{"attribute_code": "category_ids", "value": 9}])
        assert extract_category_ids(as_list) == frozenset({7, 8})
        assert extract_category_ids(as_scalar) == frozenset({9})

    def test_category_links(self):
        product = _product(extension_attributes={"category_links": [
            {"category_id": "10", "position": 0},
            {"category_id": 11, "position": 1},
        ]})
        assert extract_category_ids(product) == frozenset({10, 11})

    def test_union_without_duplicates(self):
        product = _product(
            category_ids=[1, 2],
            custom_attributes=[{"attribute_code": "category_ids", "value": "2,3"}],
            extension_attributes={"category_links": [{"category_id": "3"}, {"category_id": "4"}]},
        )
        assert extract_category_ids(product) == frozenset({1, 2, 3, 4})

    def test_non_numeric_discarded(self):
        product = _product(
            category_ids=["abc", None, "", True, 2.5, 6.0],
            custom_attributes=[{"attribute_code": "category_ids", "value": "x,,12"}],
        )
        assert extract_category_ids(product) == frozenset({6, 12})

    def test_no_categories(self):
        assert extract_category_ids(_product()) == frozenset()
        assert category_sources(_product()) == []

    def test_empty_extension_attributes_list(self):
        product = _product(extension_attributes=[])
        assert extract_category_ids(product) == frozenset()

    def test_idempotent_and_order_independent(self):
        a = _product(category_ids=[3, 1, 2])
        b = _product(category_ids=[2, 3, 1, 1])
        assert extract_category_ids(a) == extract_category_ids(b) == extract_category_ids(a)

    def test_source_cases(self):
        product = _product(
            category_ids=[1],
            custom_attributes=[{"attribute_code": "category_ids", "value": "2"}],
            extension_attributes={"category_links": [{"category_id": "3"}]},
        )
        kinds = [type(source) for source in category_sources(product)]
        assert kinds == [DirectCategoryList, AttributeCategoryValue, CategoryLinkList]


@pytest.mark.unit
def test_collect_category_ids_sorted_unique():
    products = [_product(category_ids=[5, 1]), _product(category_ids=[1, 3])]
    assert collect_category_ids(products) == [1, 3, 5]
