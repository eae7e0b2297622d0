from __future__ import annotations

from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DataSource(str, Enum):
    PRODUCTS = "products"
    CATEGORIES = "categories"
    INVENTORY = "inventory"


# ---------------------------------------------------------------------------
# 상품
# ---------------------------------------------------------------------------

class CustomAttribute(BaseModel):
    attribute_code: str = ""
    value: Any = None

    model_config = ConfigDict(frozen=True, extra="allow")


class CategoryLink(BaseModel):
    category_id: Any = None
    position: Optional[int] = None

    model_config = ConfigDict(frozen=True, extra="allow")


class ExtensionAttributes(BaseModel):
    category_links: List[CategoryLink] = []

    model_config = ConfigDict(frozen=True, extra="allow")


class MediaEntry(BaseModel):
    file: Optional[str] = None
    position: Optional[int] = None
    types: List[str] = []
    media_type: Optional[str] = None
    label: Optional[str] = None
    disabled: bool = False

    model_config = ConfigDict(frozen=True, extra="allow")


class Product(BaseModel):
    sku: Optional[str] = None
    id: Optional[int] = None
    name: Optional[str] = None
    price: Optional[float] = None
    status: Optional[int] = None
    type_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    custom_attributes: List[CustomAttribute] = []
    category_ids: List[Any] = []
    categories: List[Any] = []
    extension_attributes: Optional[ExtensionAttributes] = None
    media_gallery_entries: List[MediaEntry] = []

    model_config = ConfigDict(frozen=True, extra="allow")

    @field_validator("extension_attributes", mode="before")
    @classmethod
    def empty_extension_attributes(cls, v: Any) -> Any:
        # 확장 속성이 비어 있으면 [] 로 내려오는 경우가 있다
        if isinstance(v, list):
            return None
        return v

    @field_validator("custom_attributes", "category_ids", "categories", "media_gallery_entries", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    def attribute(self, code: str) -> Any:
        for attr in self.custom_attributes:
            if attr.attribute_code == code:
                return attr.value
        return None

    @property
    def category_links(self) -> List[CategoryLink]:
        if self.extension_attributes is None:
            return []
        return list(self.extension_attributes.category_links)


class ProductFetchResult(BaseModel):
    products: List[Product] = []
    pages_fetched: int = 0
    expected_pages: int = 0
    total_count: int = 0
    truncated: bool = False
    skipped_items: int = 0
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# 카테고리
# ---------------------------------------------------------------------------

class Category(BaseModel):
    id: int
    name: str = ""
    parent_id: Optional[int] = None
    position: Optional[int] = None
    level: Optional[int] = None
    path: Optional[str] = None
    is_active: Optional[bool] = None

    model_config = ConfigDict(frozen=True, extra="ignore")

    @property
    def is_root(self) -> bool:
        return not self.parent_id


class CategoryTreeNode(BaseModel):
    id: int
    parent_id: Optional[int] = None
    name: str = ""
    position: Optional[int] = None
    level: Optional[int] = None
    is_active: Optional[bool] = None
    product_count: Optional[int] = None
    children_data: List["CategoryTreeNode"] = []

    model_config = ConfigDict(frozen=True, extra="ignore")

    def flatten(self) -> List[Category]:
        nodes: List[Category] = []
        stack: List[CategoryTreeNode] = [self]
        while stack:
            node = stack.pop()
            nodes.append(
                Category(
                    id=node.id,
                    name=node.name,
                    parent_id=node.parent_id,
                    position=node.position,
                    level=node.level,
                    is_active=node.is_active,
                )
            )
            stack.extend(reversed(node.children_data))
        return nodes


class CategoryRef(BaseModel):
    id: int
    name: str
    position: Optional[int] = None

    model_config = ConfigDict(frozen=True)


class CategoryRelationships(BaseModel):
    parent_child: dict[int, List[int]] = {}
    roots: List[int] = []


class CategoryPage(BaseModel):
    items: List[Category] = []
    total_count: int = 0
    page_size: int = 0
    current_page: int = 1
    relationships: CategoryRelationships = Field(default_factory=CategoryRelationships)
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# 재고
# ---------------------------------------------------------------------------

class DegradedReason(str, Enum):
    NOT_FOUND = "not_found"
    UPSTREAM_ERROR = "upstream_error"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    MALFORMED_RESPONSE = "malformed_response"


class InventoryRecord(BaseModel):
    sku: str
    qty: float = 0.0
    is_in_stock: bool = False
    item_id: Optional[int] = None
    product_id: Optional[int] = None
    stock_id: Optional[int] = 1
    is_qty_decimal: bool = False
    source_code: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("qty", mode="before")
    @classmethod
    def non_negative_qty(cls, v: Any) -> float:
        try:
            qty = float(v)
        except (TypeError, ValueError):
            return 0.0
        return qty if qty > 0 else 0.0

    @classmethod
    def default(cls, sku: str) -> "InventoryRecord":
        return cls(sku=sku, qty=0, is_in_stock=False, item_id=None, product_id=None)


class InventoryLookup(BaseModel):
    """재고 조회 결과. 실패 시에도 기본 레코드와 사유 코드를 담는다."""

    record: InventoryRecord
    degraded_reason: Optional[DegradedReason] = None

    model_config = ConfigDict(frozen=True)

    @property
    def degraded(self) -> bool:
        return self.degraded_reason is not None

    @classmethod
    def resolved(cls, record: InventoryRecord) -> "InventoryLookup":
        return cls(record=record)

    @classmethod
    def fallback(cls, sku: str, reason: DegradedReason) -> "InventoryLookup":
        return cls(record=InventoryRecord.default(sku), degraded_reason=reason)


class InventoryPage(BaseModel):
    items: List[InventoryRecord] = []
    total_count: int = 0
    search_criteria: dict[str, Any] = {}
    degraded_reason: Optional[DegradedReason] = None


class InventoryStatistics(BaseModel):
    total_items: int = 0
    in_stock_items: int = 0
    out_of_stock_items: int = 0
    total_quantity: float = 0.0
    average_quantity: float = 0.0


# ---------------------------------------------------------------------------
# 병합 결과
# ---------------------------------------------------------------------------

class MediaItem(BaseModel):
    file: Optional[str] = None
    url: str = ""
    position: Optional[int] = None
    types: List[str] = []
    media_type: Optional[str] = None
    label: Optional[str] = None


class Provenance(BaseModel):
    data_sources: List[DataSource] = []
    merge_status: str = "partial"
    inventory_degraded_reason: Optional[DegradedReason] = None


class EnrichedProduct(BaseModel):
    sku: str
    product: Product
    categories: List[CategoryRef] = []
    inventory: InventoryRecord
    url_key: str = ""
    media: List[MediaItem] = []
    provenance: Provenance = Field(default_factory=Provenance)


class MergeStatistics(BaseModel):
    products_processed: int = 0
    categories_merged: int = 0
    inventory_merged: int = 0
    missing_categories: int = 0
    missing_inventory: int = 0
    successful_merges: int = 0
    partial_merges: int = 0


class PerformanceRecord(BaseModel):
    products_api_calls: int = 0
    categories_api_calls: int = 0
    inventory_api_calls: int = 0
    total_api_calls: int = 0
    processed_products: int = 0
    unique_categories: int = 0
    sku_count: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    cache_hit_ratio: float = 0.0
    categories_cached: int = 0
    categories_fetched: int = 0
    naive_call_count: int = 0
    call_reduction: int = 0
    query_consolidation: str = "0:1"
    data_sources_unified: int = 0
    pages_fetched: int = 0
    expected_pages: int = 0
    products_truncated: bool = False
    category_batch_requests: int = 0
    category_fallbacks: int = 0
    inventory_batch_requests: int = 0
    inventory_defaults_used: int = 0
    execution_time: float = 0.0
    optimizations: List[str] = []


class EnrichmentResult(BaseModel):
    products: List[EnrichedProduct] = []
    performance: PerformanceRecord = Field(default_factory=PerformanceRecord)
    merge_statistics: MergeStatistics = Field(default_factory=MergeStatistics)
    fetch: ProductFetchResult = Field(default_factory=ProductFetchResult)
