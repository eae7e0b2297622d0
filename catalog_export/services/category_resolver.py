"""
카테고리 조회 (캐시 우선).

- by_id: 단건 조회. 404 는 None, 그 외 업스트림 오류는 전파
- batch: 캐시 분리 후 미적중 ID를 한 번의 목록 요청으로 조회,
  실패하면 ID별 개별 요청으로 폴백 (건별 실패는 격리)
- list: 목록 페이지 조회 + 캐시 워밍. 업스트림 실패 시 빈 페이지
- tree: 트리 조회. 긴 TTL로 캐시하고 노드별 카테고리 캐시도 채운다

같은 ID를 동시에 조회하면 진행 중인 요청 하나를 공유한다.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Iterable

from pydantic import ValidationError

from catalog_export.cache_store import CacheStore
from catalog_export.commerce_auth import AuthScheme
from catalog_export.commerce_client import CommerceClient
from catalog_export.exceptions import MalformedResponse, UpstreamUnavailable
from catalog_export.schemas.catalog import (
    Category,
    CategoryPage,
    CategoryRelationships,
    CategoryTreeNode,
    DataSource,
)
from catalog_export.services.performance import PerformanceTracker

logger = logging.getLogger(__name__)

CATEGORY_PATH = "V1/categories/{category_id}"
CATEGORY_LIST_PATH = "V1/categories/list"
CATEGORY_TREE_PATH = "V1/categories"


def category_cache_key(category_id: int) -> str:
    return f"category:{category_id}"


def tree_cache_key(root_id: int | None) -> str:
    return f"category_tree:{root_id if root_id is not None else 'default'}"


def _search_params(
    page_size: int,
    page: int | None = None,
    field: str | None = None,
    value: str | None = None,
    condition_type: str = "eq",
) -> list[tuple[str, Any]]:
    params: list[tuple[str, Any]] = [("searchCriteria[pageSize]", page_size)]
    if page is not None:
        params.append(("searchCriteria[currentPage]", page))
    if field is not None:
        prefix = "searchCriteria[filter_groups][0][filters][0]"
        params.extend(
            [
                (f"{prefix}[field]", field),
                (f"{prefix}[value]", value),
                (f"{prefix}[condition_type]", condition_type),
            ]
        )
    return params


@dataclass
class _InFlight:
    task: asyncio.Task
    waiters: int = 0


class CategoryResolver:
    def __init__(
        self,
        client: CommerceClient,
        auth: AuthScheme,
        cache: CacheStore,
        tracker: PerformanceTracker | None = None,
        ttl: float = 300.0,
        tree_ttl: float = 600.0,
        fallback_concurrency: int = 10,
    ) -> None:
        self.client = client
        self.auth = auth
        self.cache = cache
        self.tracker = tracker or PerformanceTracker()
        self.ttl = ttl
        self.tree_ttl = tree_ttl
        self.fallback_concurrency = max(1, fallback_concurrency)
        self._inflight: dict[int, _InFlight] = {}

    # ------------------------------------------------------------------
    # 단건
    # ------------------------------------------------------------------

    async def by_id(self, category_id: int) -> Category | None:
        cached = self.cache.get(category_cache_key(category_id), self.ttl)
        if cached is not None:
            self.tracker.record_cache(hits=1)
            return cached
        self.tracker.record_cache(misses=1)
        self.tracker.touch_categories([category_id])
        self.auth.require()
        return await self._shared_fetch(category_id)

    async def _shared_fetch(self, category_id: int) -> Category | None:
        flight = self._inflight.get(category_id)
        if flight is None:
            flight = _InFlight(task=asyncio.ensure_future(self._fetch_category(category_id)))
            self._inflight[category_id] = flight
            flight.task.add_done_callback(
                lambda task, cid=category_id, f=flight: self._finish_flight(cid, f, task)
            )
        flight.waiters += 1
        try:
            return await asyncio.shield(flight.task)
        except asyncio.CancelledError:
            # 마지막 대기자가 취소되면 공유 요청도 취소
            if not flight.task.done() and flight.waiters == 1:
                flight.task.cancel()
            raise
        finally:
            flight.waiters -= 1

    def _finish_flight(self, category_id: int, flight: _InFlight, task: asyncio.Task) -> None:
        if self._inflight.get(category_id) is flight:
            del self._inflight[category_id]
        if not task.cancelled():
            task.exception()

    async def _fetch_category(self, category_id: int) -> Category | None:
        path = CATEGORY_PATH.format(category_id=category_id)
        self.tracker.record_call(DataSource.CATEGORIES)
        try:
            data = await self.client.request_json("GET", path, auth=self.auth)
        except UpstreamUnavailable as e:
            if e.not_found:
                logger.info(f"[CATEGORY] 카테고리 {category_id} 없음 (404)")
                return None
            raise

        try:
            category = Category.model_validate(data)
        except ValidationError as e:
            raise MalformedResponse(
                f"카테고리 {category_id} 응답 형식 오류",
                url=self.client.build_url(path),
                detail=str(e.errors()[:1]),
            ) from e

        self.cache.put(category_cache_key(category.id), category)
        self.tracker.record_categories_fetched(1)
        return category

    # ------------------------------------------------------------------
    # 배치
    # ------------------------------------------------------------------

    async def batch(self, category_ids: Iterable[Any]) -> dict[int, Category]:
        unique: list[int] = []
        seen: set[int] = set()
        for raw in category_ids:
            try:
                category_id = int(raw)
            except (TypeError, ValueError):
                continue
            if category_id not in seen:
                seen.add(category_id)
                unique.append(category_id)
        if not unique:
            return {}

        self.tracker.touch_categories(unique)
        cached = self.cache.get_many([category_cache_key(cid) for cid in unique], self.ttl)
        result: dict[int, Category] = {category.id: category for category in cached.values()}
        missing = [cid for cid in unique if cid not in result]
        self.tracker.record_cache(hits=len(unique) - len(missing), misses=len(missing))

        if not missing:
            logger.debug(f"[CATEGORY] {len(unique)}건 모두 캐시 적중")
            return result

        self.auth.require()
        try:
            fetched = await self._fetch_consolidated(missing)
        except (UpstreamUnavailable, MalformedResponse) as e:
            logger.warning(f"[CATEGORY] 일괄 조회 실패, 개별 조회로 전환 ({len(missing)}건): {e}")
            fetched = await self._fetch_individually(missing)

        result.update(fetched)
        logger.info(
            f"[CATEGORY] 카테고리 {len(result)}/{len(unique)}건 확보 "
            f"(캐시 {len(unique) - len(missing)}건, 조회 {len(fetched)}건)"
        )
        return result

    async def _fetch_consolidated(self, category_ids: list[int]) -> dict[int, Category]:
        params = _search_params(
            page_size=len(category_ids),
            field="entity_id",
            value=",".join(str(cid) for cid in category_ids),
            condition_type="in",
        )
        self.tracker.record_call(DataSource.CATEGORIES)
        data = await self.client.request_json("GET", CATEGORY_LIST_PATH, params=params, auth=self.auth)
        items = self._parse_items(data, CATEGORY_LIST_PATH)

        wanted = set(category_ids)
        fetched: dict[int, Category] = {}
        for category in items:
            if category.id in wanted:
                fetched[category.id] = category
        self.cache.put_many((category_cache_key(cid), category) for cid, category in fetched.items())
        self.tracker.record_category_batch()
        self.tracker.record_categories_fetched(len(fetched))
        return fetched

    async def _fetch_individually(self, category_ids: list[int]) -> dict[int, Category]:
        semaphore = asyncio.Semaphore(self.fallback_concurrency)

        async def fetch_one(category_id: int) -> Category | None:
            async with semaphore:
                return await self._shared_fetch(category_id)

        self.tracker.record_category_fallback(len(category_ids))
        results = await asyncio.gather(
            *(fetch_one(cid) for cid in category_ids), return_exceptions=True
        )

        fetched: dict[int, Category] = {}
        for category_id, outcome in zip(category_ids, results):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.warning(f"[CATEGORY] 카테고리 {category_id} 개별 조회 실패: {outcome}")
                continue
            if outcome is not None:
                fetched[category_id] = outcome
        return fetched

    def _parse_items(self, data: Any, path: str) -> list[Category]:
        if not isinstance(data, dict) or not isinstance(data.get("items") or [], list):
            raise MalformedResponse(
                "카테고리 목록 응답 형식 오류",
                url=self.client.build_url(path),
                detail=type(data).__name__,
            )
        categories: list[Category] = []
        for raw in data.get("items") or []:
            try:
                categories.append(Category.model_validate(raw))
            except ValidationError as e:
                logger.warning(f"[CATEGORY] 카테고리 항목 파싱 실패로 건너뜀: {e.errors()[:1]}")
        return categories

    # ------------------------------------------------------------------
    # 목록 / 트리
    # ------------------------------------------------------------------

    async def list(self, page_size: int = 20, page: int = 1) -> CategoryPage:
        self.auth.require()
        params = _search_params(page_size=page_size, page=page)
        self.tracker.record_call(DataSource.CATEGORIES)
        try:
            data = await self.client.request_json("GET", CATEGORY_LIST_PATH, params=params, auth=self.auth)
            items = self._parse_items(data, CATEGORY_LIST_PATH)
        except (UpstreamUnavailable, MalformedResponse) as e:
            logger.error(f"[CATEGORY] 카테고리 목록 조회 실패 (page={page}): {e}")
            return CategoryPage(page_size=page_size, current_page=page, error=str(e))

        self.cache.put_many((category_cache_key(category.id), category) for category in items)
        self.tracker.record_categories_fetched(len(items))

        try:
            total_count = int(data.get("total_count") or len(items))
        except (TypeError, ValueError):
            total_count = len(items)

        return CategoryPage(
            items=items,
            total_count=total_count,
            page_size=page_size,
            current_page=page,
            relationships=self.relationships(items),
        )

    async def tree(self, root_id: int | None = None) -> CategoryTreeNode:
        key = tree_cache_key(root_id)
        cached = self.cache.get(key, self.tree_ttl)
        if cached is not None:
            self.tracker.record_cache(hits=1)
            return cached
        self.tracker.record_cache(misses=1)

        self.auth.require()
        params = {"rootCategoryId": root_id} if root_id is not None else None
        self.tracker.record_call(DataSource.CATEGORIES)
        data = await self.client.request_json("GET", CATEGORY_TREE_PATH, params=params, auth=self.auth)
        try:
            node = CategoryTreeNode.model_validate(data)
        except ValidationError as e:
            raise MalformedResponse(
                "카테고리 트리 응답 형식 오류",
                url=self.client.build_url(CATEGORY_TREE_PATH),
                detail=str(e.errors()[:1]),
            ) from e

        self.cache.put(key, node)
        flattened = node.flatten()
        self.cache.put_many((category_cache_key(category.id), category) for category in flattened)
        logger.info(f"[CATEGORY] 카테고리 트리 캐시 (root={root_id}, 노드 {len(flattened)}개)")
        return node

    @staticmethod
    def relationships(categories: Iterable[Category]) -> CategoryRelationships:
        parent_child: dict[int, list[int]] = {}
        roots: list[int] = []
        for category in categories:
            if category.parent_id:
                parent_child.setdefault(category.parent_id, []).append(category.id)
            else:
                roots.append(category.id)
        return CategoryRelationships(parent_child=parent_child, roots=roots)
