"""
상품에서 카테고리 ID 추출.

업스트림은 카테고리 정보를 세 가지 형태로 내려준다.
- 직접 목록: category_ids / categories (스칼라 또는 {id|category_id} 객체)
- 커스텀 속성 category_ids: "1,2,3" 문자열, 리스트, 스칼라
- extension_attributes.category_links: [{category_id, position}]

형태별 케이스로 나눠 각각 ID 집합을 만들고 합집합을 반환한다.
숫자로 해석되지 않는 값은 조용히 버린다.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Union

from catalog_export.schemas.catalog import CategoryLink, Product


def _to_category_id(value: Any) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, dict):
        category_id = _to_category_id(value.get("id"))
        if category_id is None:
            category_id = _to_category_id(value.get("category_id"))
        return category_id
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        return None


def _collect(values: Iterable[Any]) -> frozenset[int]:
    ids = set()
    for value in values:
        category_id = _to_category_id(value)
        if category_id is not None:
            ids.add(category_id)
    return frozenset(ids)


@dataclass(frozen=True)
class DirectCategoryList:
    values: tuple[Any, ...]

    def category_ids(self) -> frozenset[int]:
        return _collect(self.values)


@dataclass(frozen=True)
class AttributeCategoryValue:
    value: Any

    def category_ids(self) -> frozenset[int]:
        if isinstance(self.value, str):
            return _collect(self.value.split(","))
        if isinstance(self.value, (list, tuple)):
            return _collect(self.value)
        return _collect([self.value])


@dataclass(frozen=True)
class CategoryLinkList:
    links: tuple[CategoryLink, ...]

    def category_ids(self) -> frozenset[int]:
        return _collect(link.category_id for link in self.links)


CategorySource = Union[DirectCategoryList, AttributeCategoryValue, CategoryLinkList]


def category_sources(product: Product) -> list[CategorySource]:
    sources: list[CategorySource] = []
    direct = list(product.category_ids) + list(product.categories)
    if direct:
        sources.append(DirectCategoryList(tuple(direct)))
    attr_value = product.attribute("category_ids")
    if attr_value is not None:
        sources.append(AttributeCategoryValue(attr_value))
    links = product.category_links
    if links:
        sources.append(CategoryLinkList(tuple(links)))
    return sources


def extract_category_ids(product: Product) -> frozenset[int]:
    ids: frozenset[int] = frozenset()
    for source in category_sources(product):
        ids = ids | source.category_ids()
    return ids


def collect_category_ids(products: Iterable[Product]) -> list[int]:
    """전체 상품의 고유 카테고리 ID (정렬)"""
    ids: set[int] = set()
    for product in products:
        ids.update(extract_category_ids(product))
    return sorted(ids)
