from __future__ import annotations

import asyncio
import logging

import httpx

from catalog_export.cache_store import CacheStore
from catalog_export.commerce_auth import BearerTokenAuth, CommerceCredentials, OAuth1Signer
from catalog_export.commerce_client import CommerceClient
from catalog_export.schemas.catalog import EnrichmentResult
from catalog_export.services.category_ids import collect_category_ids
from catalog_export.services.category_resolver import CategoryResolver
from catalog_export.services.enrichment import merge_products, merge_statistics
from catalog_export.services.inventory_resolver import InventoryResolver
from catalog_export.services.performance import PerformanceTracker
from catalog_export.services.product_fetcher import ProductFetcher
from catalog_export.settings import Settings, settings

logger = logging.getLogger(__name__)


def build_cache(s: Settings) -> CacheStore:
    return CacheStore(max_entries=s.cache_max_entries, enabled=s.cache_enabled)


class CatalogEnrichmentPipeline:
    """
    상품 조회 → (카테고리 ∥ 재고) → 병합 → 성능 지표.

    실행마다 새 PerformanceTracker 와 리졸버를 만들고,
    클라이언트와 캐시는 실행 간에 공유한다.
    """

    def __init__(
        self,
        client: CommerceClient,
        credentials: CommerceCredentials,
        cache: CacheStore,
        s: Settings | None = None,
    ) -> None:
        self.client = client
        self.credentials = credentials
        self.cache = cache
        self.settings = s or settings

    @classmethod
    def from_settings(
        cls,
        s: Settings | None = None,
        cache: CacheStore | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> "CatalogEnrichmentPipeline":
        s = s or settings
        return cls(
            client=CommerceClient.from_settings(s, http_client=http_client),
            credentials=CommerceCredentials.from_settings(s),
            cache=cache or build_cache(s),
            s=s,
        )

    @property
    def media_base_url(self) -> str:
        return f"{self.client.base_url}/{self.settings.commerce_media_path.strip('/')}"

    def category_resolver(self, tracker: PerformanceTracker) -> CategoryResolver:
        return CategoryResolver(
            client=self.client,
            auth=OAuth1Signer(self.credentials.oauth),
            cache=self.cache,
            tracker=tracker,
            ttl=self.settings.category_cache_ttl,
            tree_ttl=self.settings.category_tree_cache_ttl,
            fallback_concurrency=self.settings.category_fallback_concurrency,
        )

    def inventory_resolver(self, tracker: PerformanceTracker) -> InventoryResolver:
        return InventoryResolver(
            client=self.client,
            auth=BearerTokenAuth(self.credentials.admin_token),
            tracker=tracker,
            batch_size=self.settings.inventory_batch_size,
            concurrency=self.settings.inventory_concurrency,
        )

    async def enrich_products(
        self,
        page_size: int | None = None,
        max_pages: int | None = None,
    ) -> EnrichmentResult:
        page_size = page_size or self.settings.product_page_size
        max_pages = max_pages or self.settings.product_max_pages

        tracker = PerformanceTracker()
        oauth = OAuth1Signer(self.credentials.oauth)
        bearer = BearerTokenAuth(self.credentials.admin_token)
        # 요청 전에 두 인증 정보를 모두 확인
        oauth.require()
        bearer.require()

        fetcher = ProductFetcher(self.client, oauth, tracker=tracker, fields=self.settings.product_fields)
        fetch = await fetcher.fetch_all_products(page_size=page_size, max_pages=max_pages)

        products = [p for p in fetch.products if p.sku]
        if len(products) != len(fetch.products):
            logger.warning(f"[PIPELINE] sku 없는 상품 {len(fetch.products) - len(products)}건 제외")

        category_ids = collect_category_ids(products)
        skus = [p.sku for p in products]
        logger.info(
            f"[PIPELINE] 상품 {len(products)}건, 카테고리 {len(category_ids)}개, SKU {len(set(skus))}개 조회 시작"
        )

        category_map, inventory_map = await asyncio.gather(
            self.category_resolver(tracker).batch(category_ids),
            self.inventory_resolver(tracker).batch(skus),
        )

        enriched = merge_products(products, category_map, inventory_map, media_base_url=self.media_base_url)
        tracker.record_processed(len(enriched))
        stats = merge_statistics(enriched)

        if fetch.truncated:
            logger.warning(
                f"[PIPELINE] 상품 목록이 잘렸습니다 ({fetch.pages_fetched}/{fetch.expected_pages}페이지): {fetch.error}"
            )

        return EnrichmentResult(
            products=enriched,
            performance=tracker.finalize(),
            merge_statistics=stats,
            fetch=fetch,
        )

    async def aclose(self) -> None:
        await self.client.aclose()


async def enrich_products(
    page_size: int | None = None,
    max_pages: int | None = None,
    s: Settings | None = None,
    cache: CacheStore | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> EnrichmentResult:
    pipeline = CatalogEnrichmentPipeline.from_settings(s, cache=cache, http_client=http_client)
    try:
        return await pipeline.enrich_products(page_size=page_size, max_pages=max_pages)
    finally:
        await pipeline.aclose()
