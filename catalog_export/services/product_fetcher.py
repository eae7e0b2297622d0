from __future__ import annotations

import logging
import math
from typing import Any

from pydantic import ValidationError

from catalog_export.commerce_auth import AuthScheme
from catalog_export.commerce_client import CommerceClient
from catalog_export.exceptions import MalformedResponse, UpstreamUnavailable
from catalog_export.schemas.catalog import DataSource, Product, ProductFetchResult
from catalog_export.services.performance import PerformanceTracker

logger = logging.getLogger(__name__)

PRODUCTS_PATH = "V1/products"


class ProductFetcher:
    """
    상품 목록 페이지 순회.

    1페이지 실패는 예외로 전파하고, 이후 페이지 실패는 그때까지 모은 상품을
    truncated=True 결과로 돌려준다. 재시도는 전송 계층 담당.
    """

    def __init__(
        self,
        client: CommerceClient,
        auth: AuthScheme,
        tracker: PerformanceTracker | None = None,
        fields: str | None = None,
    ) -> None:
        self.client = client
        self.auth = auth
        self.tracker = tracker or PerformanceTracker()
        self.fields = fields

    async def fetch_page(self, page: int, page_size: int) -> tuple[list[Product], int, int, int]:
        """(상품, 응답 원본 건수, total_count, 건너뛴 건수)"""
        params: list[tuple[str, Any]] = [
            ("searchCriteria[pageSize]", page_size),
            ("searchCriteria[currentPage]", page),
        ]
        if self.fields:
            params.append(("fields", self.fields))

        self.tracker.record_call(DataSource.PRODUCTS)
        data = await self.client.request_json("GET", PRODUCTS_PATH, params=params, auth=self.auth)

        if not isinstance(data, dict):
            raise MalformedResponse(
                "상품 응답이 객체가 아닙니다.",
                url=self.client.build_url(PRODUCTS_PATH),
                detail=type(data).__name__,
            )
        raw_items = data.get("items") or []
        if not isinstance(raw_items, list):
            raise MalformedResponse(
                "상품 응답의 items가 목록이 아닙니다.",
                url=self.client.build_url(PRODUCTS_PATH),
                detail=type(raw_items).__name__,
            )

        products: list[Product] = []
        skipped = 0
        for raw in raw_items:
            try:
                products.append(Product.model_validate(raw))
            except ValidationError as e:
                skipped += 1
                logger.warning(f"[PRODUCTS] 상품 파싱 실패로 건너뜀 (page={page}): {e.errors()[:1]}")

        try:
            total_count = int(data.get("total_count") or 0)
        except (TypeError, ValueError):
            total_count = 0
        return products, len(raw_items), total_count, skipped

    async def fetch_all_products(self, page_size: int = 50, max_pages: int = 25) -> ProductFetchResult:
        if page_size < 1 or max_pages < 1:
            raise ValueError("page_size와 max_pages는 1 이상이어야 합니다.")
        self.auth.require()

        products: list[Product] = []
        received = 0
        skipped = 0
        total_count = 0
        expected_pages = 0
        pages_fetched = 0

        for page in range(1, max_pages + 1):
            try:
                items, raw_count, page_total, page_skipped = await self.fetch_page(page, page_size)
            except (UpstreamUnavailable, MalformedResponse) as e:
                if page == 1:
                    raise
                logger.warning(
                    f"[PRODUCTS] {page}페이지 조회 실패, {pages_fetched}/{expected_pages}페이지에서 중단: {e}"
                )
                result = ProductFetchResult(
                    products=products,
                    pages_fetched=pages_fetched,
                    expected_pages=expected_pages,
                    total_count=total_count,
                    truncated=True,
                    skipped_items=skipped,
                    error=str(e),
                )
                self.tracker.record_fetch(result)
                return result

            pages_fetched += 1
            if page == 1:
                total_count = page_total
                expected_pages = min(max_pages, math.ceil(total_count / page_size)) if total_count else 1

            products.extend(items)
            received += raw_count
            skipped += page_skipped
            logger.debug(f"[PRODUCTS] {page}페이지 {raw_count}건 수신 (누적 {received}/{total_count})")

            if raw_count < page_size:
                break
            if not total_count or received >= total_count:
                break

        result = ProductFetchResult(
            products=products,
            pages_fetched=pages_fetched,
            expected_pages=max(expected_pages, pages_fetched),
            total_count=total_count,
            truncated=False,
            skipped_items=skipped,
        )
        self.tracker.record_fetch(result)
        logger.info(f"[PRODUCTS] 상품 {len(products)}건 조회 완료 ({pages_fetched}페이지)")
        return result
