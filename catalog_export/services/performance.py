"""
파이프라인 실행 단위 성능 지표 수집.

각 컴포넌트가 호출 수, 캐시 적중/미스, 배치/폴백 사용 여부를 보고하면
finalize() 에서 파생 지표와 최적화 힌트를 계산한다. 실패 경로는 없다.
"""
from __future__ import annotations

import logging
import time
from typing import Callable, Iterable

from catalog_export.schemas.catalog import DataSource, PerformanceRecord, ProductFetchResult

logger = logging.getLogger(__name__)


class PerformanceTracker:
    def __init__(self, clock: Callable[[], float] | None = None) -> None:
        self._clock = clock or time.monotonic
        self._started_at = self._clock()
        self.calls: dict[DataSource, int] = {source: 0 for source in DataSource}
        self.processed_products = 0
        self.category_ids: set[int] = set()
        self.skus: set[str] = set()
        self.cache_hits = 0
        self.cache_misses = 0
        self.categories_fetched = 0
        self.category_batch_requests = 0
        self.category_fallbacks = 0
        self.inventory_batch_requests = 0
        self.inventory_defaults = 0
        self.pages_fetched = 0
        self.expected_pages = 0
        self.products_truncated = False

    def record_call(self, source: DataSource, count: int = 1) -> None:
        self.calls[source] += count

    def record_cache(self, hits: int = 0, misses: int = 0) -> None:
        self.cache_hits += hits
        self.cache_misses += misses

    def record_categories_fetched(self, count: int) -> None:
        self.categories_fetched += count

    def record_category_batch(self) -> None:
        self.category_batch_requests += 1

    def record_category_fallback(self, count: int) -> None:
        self.category_fallbacks += count

    def record_inventory_batch(self) -> None:
        self.inventory_batch_requests += 1

    def record_inventory_defaults(self, count: int) -> None:
        self.inventory_defaults += count

    def record_fetch(self, result: ProductFetchResult) -> None:
        self.pages_fetched = result.pages_fetched
        self.expected_pages = result.expected_pages
        self.products_truncated = result.truncated

    def record_processed(self, count: int) -> None:
        self.processed_products += count

    def touch_categories(self, category_ids: Iterable[int]) -> None:
        self.category_ids.update(category_ids)

    def touch_skus(self, skus: Iterable[str]) -> None:
        self.skus.update(skus)

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())

    def _hints(self, data_sources_unified: int) -> list[str]:
        hints: list[str] = []
        if self.cache_hits > 0:
            hints.append("Category Caching")
        if data_sources_unified > 1:
            hints.append("Multi-Source Integration")
        if self.calls[DataSource.CATEGORIES] > 0 and self.calls[DataSource.INVENTORY] > 0:
            hints.append("Parallel Data Fetching")
        if self.category_batch_requests > 0 or self.inventory_batch_requests > 0:
            hints.append("Query Consolidation")
        if self.category_fallbacks > 0 or (
            self.categories_fetched > 0 and self.category_batch_requests == 0
        ):
            hints.append("categories not batched")
        if self.products_truncated:
            hints.append("product pages truncated")
        if self.inventory_defaults > 0:
            hints.append("inventory defaults used")
        return hints

    def finalize(self) -> PerformanceRecord:
        reads = self.cache_hits + self.cache_misses
        hit_ratio = self.cache_hits / reads if reads else 0.0

        data_sources_unified = 0
        if self.calls[DataSource.PRODUCTS] > 0:
            data_sources_unified += 1
        if self.calls[DataSource.CATEGORIES] > 0 or self.cache_hits > 0:
            data_sources_unified += 1
        if self.calls[DataSource.INVENTORY] > 0:
            data_sources_unified += 1

        # 건별 호출 기준: 상품 페이지 + 카테고리 1건당 1회 + SKU 1건당 1회
        naive_calls = self.calls[DataSource.PRODUCTS] + len(self.category_ids) + len(self.skus)
        total_calls = self.total_calls

        record = PerformanceRecord(
            products_api_calls=self.calls[DataSource.PRODUCTS],
            categories_api_calls=self.calls[DataSource.CATEGORIES],
            inventory_api_calls=self.calls[DataSource.INVENTORY],
            total_api_calls=total_calls,
            processed_products=self.processed_products,
            unique_categories=len(self.category_ids),
            sku_count=len(self.skus),
            cache_hits=self.cache_hits,
            cache_misses=self.cache_misses,
            cache_hit_ratio=round(hit_ratio, 4),
            categories_cached=self.cache_hits,
            categories_fetched=self.categories_fetched,
            naive_call_count=naive_calls,
            call_reduction=naive_calls - total_calls,
            query_consolidation=f"{total_calls}:1",
            data_sources_unified=data_sources_unified,
            pages_fetched=self.pages_fetched,
            expected_pages=self.expected_pages,
            products_truncated=self.products_truncated,
            category_batch_requests=self.category_batch_requests,
            category_fallbacks=self.category_fallbacks,
            inventory_batch_requests=self.inventory_batch_requests,
            inventory_defaults_used=self.inventory_defaults,
            execution_time=round(self._clock() - self._started_at, 3),
            optimizations=self._hints(data_sources_unified),
        )
        logger.info(
            f"[PIPELINE] 호출 {total_calls}회 (건별 기준 {naive_calls}회), "
            f"캐시 적중률 {record.cache_hit_ratio:.0%}, 힌트={record.optimizations}"
        )
        return record
