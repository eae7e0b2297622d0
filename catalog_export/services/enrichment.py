"""
상품 + 카테고리 + 재고 병합.

I/O 없는 순수 함수. 카테고리 맵에 없는 ID는 조용히 제외하고,
재고가 없으면 기본 레코드를 채운다. 출처(provenance)에 실제로 데이터를
제공한 소스와 병합 상태를 기록한다.
"""
from __future__ import annotations

import logging
from typing import Mapping, Sequence, Union

from catalog_export.exceptions import MalformedProductError
from catalog_export.schemas.catalog import (
    Category,
    CategoryRef,
    DataSource,
    DegradedReason,
    EnrichedProduct,
    InventoryLookup,
    InventoryRecord,
    MediaItem,
    MergeStatistics,
    Product,
    Provenance,
)
from catalog_export.services.category_ids import extract_category_ids

logger = logging.getLogger(__name__)

InventoryValue = Union[InventoryRecord, InventoryLookup]

MERGE_SUCCESS = "success"
MERGE_PARTIAL = "partial"


def _is_remote(ref: str | None) -> bool:
    return bool(ref) and ref.lower().startswith(("http://", "https://"))


def resolve_media(product: Product, media_base_url: str | None = None) -> list[MediaItem]:
    """미디어 경로를 절대 URL로 변환. 원격 URL 항목을 앞에 둔다."""
    remote: list[MediaItem] = []
    local: list[MediaItem] = []
    for entry in product.media_gallery_entries:
        if entry.disabled:
            continue
        explicit_url = getattr(entry, "url", None)
        if _is_remote(explicit_url):
            url, bucket = explicit_url, remote
        elif _is_remote(entry.file):
            url, bucket = entry.file, remote
        elif entry.file:
            file_path = entry.file if entry.file.startswith("/") else f"/{entry.file}"
            url = f"{media_base_url.rstrip('/')}{file_path}" if media_base_url else file_path
            bucket = local
        else:
            continue
        bucket.append(
            MediaItem(
                file=entry.file,
                url=url,
                position=entry.position,
                types=list(entry.types) or ["image"],
                media_type=entry.media_type,
                label=entry.label,
            )
        )

    def by_position(item: MediaItem) -> int:
        return item.position if item.position is not None else 1_000_000

    return sorted(remote, key=by_position) + sorted(local, key=by_position)


def url_key(product: Product) -> str:
    value = product.attribute("url_key")
    return str(value) if value else ""


def _category_refs(product: Product, category_map: Mapping[int, Category]) -> tuple[list[CategoryRef], int]:
    """(해석된 카테고리, 추출된 ID 수)"""
    ids = extract_category_ids(product)
    link_positions: dict[int, int] = {}
    for link in product.category_links:
        try:
            if link.position is not None:
                link_positions[int(link.category_id)] = link.position
        except (TypeError, ValueError):
            continue

    refs: list[CategoryRef] = []
    for category_id in sorted(ids):
        category = category_map.get(category_id)
        if category is None:
            continue
        refs.append(
            CategoryRef(
                id=category.id,
                name=category.name,
                position=link_positions.get(category_id, category.position),
            )
        )
    return refs, len(ids)


def _inventory(sku: str, value: InventoryValue | None) -> tuple[InventoryRecord, bool, DegradedReason | None]:
    """(재고 레코드, 실데이터 여부, 대체 사유)"""
    if isinstance(value, InventoryLookup):
        return value.record, not value.degraded, value.degraded_reason
    if isinstance(value, InventoryRecord):
        return value, True, None
    return InventoryRecord.default(sku), False, None


def merge_products(
    products: Sequence[Product],
    category_map: Mapping[int, Category],
    inventory_map: Mapping[str, InventoryValue],
    media_base_url: str | None = None,
) -> list[EnrichedProduct]:
    enriched: list[EnrichedProduct] = []
    for index, product in enumerate(products):
        if not product.sku:
            raise MalformedProductError(index, "sku가 없습니다.")

        categories, requested = _category_refs(product, category_map)
        record, has_inventory, degraded_reason = _inventory(product.sku, inventory_map.get(product.sku))

        data_sources = [DataSource.PRODUCTS]
        if categories:
            data_sources.append(DataSource.CATEGORIES)
        if has_inventory:
            data_sources.append(DataSource.INVENTORY)

        complete = has_inventory and len(categories) == requested
        enriched.append(
            EnrichedProduct(
                sku=product.sku,
                product=product,
                categories=categories,
                inventory=record,
                url_key=url_key(product),
                media=resolve_media(product, media_base_url),
                provenance=Provenance(
                    data_sources=data_sources,
                    merge_status=MERGE_SUCCESS if complete else MERGE_PARTIAL,
                    inventory_degraded_reason=degraded_reason,
                ),
            )
        )

    logger.debug(f"[PIPELINE] 상품 {len(enriched)}건 병합")
    return enriched


def merge_statistics(enriched: Sequence[EnrichedProduct]) -> MergeStatistics:
    stats = MergeStatistics(products_processed=len(enriched))
    for item in enriched:
        if item.categories:
            stats.categories_merged += 1
        else:
            stats.missing_categories += 1
        if DataSource.INVENTORY in item.provenance.data_sources:
            stats.inventory_merged += 1
        else:
            stats.missing_inventory += 1
        if item.provenance.merge_status == MERGE_SUCCESS:
            stats.successful_merges += 1
        else:
            stats.partial_merges += 1
    return stats
