"""
재고 조회 (관리자 토큰).

업스트림/항목 단위 실패는 모두 InventoryRecord.default(sku) 와 사유 코드로
대체한다. 관리자 토큰 누락(CredentialsMissing)만 예외로 전파한다.
"""
from __future__ import annotations

import asyncio
import logging
import urllib.parse
from typing import Any, Iterable, Sequence

from pydantic import ValidationError

from catalog_export.commerce_auth import AuthScheme
from catalog_export.commerce_client import CommerceClient
from catalog_export.exceptions import MalformedResponse, UpstreamUnavailable
from catalog_export.schemas.catalog import (
    DataSource,
    DegradedReason,
    InventoryLookup,
    InventoryPage,
    InventoryRecord,
    InventoryStatistics,
)
from catalog_export.services.performance import PerformanceTracker

logger = logging.getLogger(__name__)

STOCK_ITEM_PATH = "V1/stockItems/{sku}"
STOCK_ITEMS_PATH = "V1/stockItems"
SOURCE_ITEMS_PATH = "all/V1/inventory/source-items"

SOURCE_ITEMS_PAGE_SIZE = 50  # 업스트림 pageSize 상한
SOURCE_ITEMS_MAX_PAGES = 20
IN_STOCK_STATUS = 1


def degraded_reason_for(error: Exception) -> DegradedReason:
    if isinstance(error, UpstreamUnavailable):
        if error.not_found:
            return DegradedReason.NOT_FOUND
        if error.status_code is None or error.recoverable:
            return DegradedReason.UPSTREAM_UNAVAILABLE
        return DegradedReason.UPSTREAM_ERROR
    if isinstance(error, MalformedResponse):
        return DegradedReason.MALFORMED_RESPONSE
    return DegradedReason.UPSTREAM_ERROR


def _chunked(items: Sequence[str], size: int) -> list[list[str]]:
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def _stock_item_record(sku: str, data: Any) -> InventoryRecord:
    if not isinstance(data, dict):
        raise ValueError(f"재고 항목이 객체가 아닙니다: {type(data).__name__}")
    return InventoryRecord(
        sku=sku,
        qty=data.get("qty"),
        is_in_stock=bool(data.get("is_in_stock") or False),
        item_id=data.get("item_id"),
        product_id=data.get("product_id"),
        stock_id=data.get("stock_id") or 1,
        is_qty_decimal=bool(data.get("is_qty_decimal") or False),
    )


def _search_params(
    filters: Iterable[dict[str, Any]],
    page_size: int,
    page: int | None = None,
) -> list[tuple[str, Any]]:
    params: list[tuple[str, Any]] = [("searchCriteria[pageSize]", page_size)]
    if page is not None:
        params.append(("searchCriteria[currentPage]", page))
    for idx, flt in enumerate(filters):
        prefix = f"searchCriteria[filter_groups][0][filters][{idx}]"
        params.append((f"{prefix}[field]", flt.get("field")))
        params.append((f"{prefix}[value]", flt.get("value")))
        params.append((f"{prefix}[condition_type]", flt.get("condition_type", "eq")))
    return params


class InventoryResolver:
    def __init__(
        self,
        client: CommerceClient,
        auth: AuthScheme,
        tracker: PerformanceTracker | None = None,
        batch_size: int = 20,
        concurrency: int = 5,
    ) -> None:
        self.client = client
        self.auth = auth
        self.tracker = tracker or PerformanceTracker()
        self.batch_size = max(1, min(batch_size, SOURCE_ITEMS_PAGE_SIZE))
        self.concurrency = max(1, concurrency)

    def _fallback(self, sku: str, reason: DegradedReason) -> InventoryLookup:
        self.tracker.record_inventory_defaults(1)
        return InventoryLookup.fallback(sku, reason)

    async def by_sku(self, sku: str) -> InventoryLookup:
        self.auth.require()
        self.tracker.touch_skus([sku])
        path = STOCK_ITEM_PATH.format(sku=urllib.parse.quote(sku, safe=""))
        self.tracker.record_call(DataSource.INVENTORY)
        try:
            data = await self.client.request_json("GET", path, auth=self.auth)
        except (UpstreamUnavailable, MalformedResponse) as e:
            reason = degraded_reason_for(e)
            logger.warning(f"[INVENTORY] {sku} 재고 조회 실패, 기본값 사용 ({reason.value}): {e}")
            return self._fallback(sku, reason)

        try:
            record = _stock_item_record(sku, data)
        except (ValueError, ValidationError) as e:
            logger.warning(f"[INVENTORY] {sku} 재고 응답 형식 오류, 기본값 사용: {e}")
            return self._fallback(sku, DegradedReason.MALFORMED_RESPONSE)
        return InventoryLookup.resolved(record)

    async def batch(self, skus: Iterable[str]) -> dict[str, InventoryLookup]:
        """
        SKU 묶음 단위로 source-items 를 조회한다.

        결과에는 요청한 모든 SKU가 들어 있다 (조회 실패/누락은 기본값).
        """
        unique = list(dict.fromkeys(sku for sku in skus if sku))
        if not unique:
            return {}
        self.auth.require()
        self.tracker.touch_skus(unique)

        chunks = _chunked(unique, self.batch_size)
        semaphore = asyncio.Semaphore(self.concurrency)

        async def fetch_chunk(chunk: list[str]) -> dict[str, InventoryLookup]:
            async with semaphore:
                return await self._fetch_chunk(chunk)

        results = await asyncio.gather(*(fetch_chunk(c) for c in chunks), return_exceptions=True)

        lookups: dict[str, InventoryLookup] = {}
        for chunk, outcome in zip(chunks, results):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                reason = degraded_reason_for(outcome)
                logger.warning(
                    f"[INVENTORY] 재고 배치 조회 실패 ({len(chunk)}건 기본값, {reason.value}): {outcome}"
                )
                for sku in chunk:
                    lookups[sku] = self._fallback(sku, reason)
                continue
            lookups.update(outcome)

        degraded = sum(1 for lookup in lookups.values() if lookup.degraded)
        logger.info(
            f"[INVENTORY] 재고 {len(unique)}건 처리 ({len(chunks)}개 배치, 기본값 {degraded}건)"
        )
        return {sku: lookups[sku] for sku in unique}

    async def _fetch_source_items(self, chunk: list[str]) -> list[Any]:
        """
        묶음의 source-items 를 모든 페이지에 걸쳐 조회한다.

        SKU 하나에 소스가 여러 개일 수 있어 행 수가 SKU 수보다 많다.
        total_count 에 도달하거나 짧은 페이지가 오면 멈춘다.
        """
        filters = [{"field": "sku", "value": ",".join(chunk), "condition_type": "in"}]
        self.tracker.record_inventory_batch()

        rows: list[Any] = []
        for page in range(1, SOURCE_ITEMS_MAX_PAGES + 1):
            params = _search_params(filters, page_size=SOURCE_ITEMS_PAGE_SIZE, page=page)
            self.tracker.record_call(DataSource.INVENTORY)
            data = await self.client.request_json("GET", SOURCE_ITEMS_PATH, params=params, auth=self.auth)
            items = data.get("items") if isinstance(data, dict) else None
            if items is None and isinstance(data, dict):
                items = []
            if not isinstance(items, list):
                raise MalformedResponse(
                    "재고 source-items 응답 형식 오류",
                    url=self.client.build_url(SOURCE_ITEMS_PATH),
                    detail=type(data).__name__,
                )
            rows.extend(items)

            try:
                total_count = int(data["total_count"])
            except (KeyError, TypeError, ValueError):
                total_count = None
            if len(items) < SOURCE_ITEMS_PAGE_SIZE:
                break
            if total_count is not None and len(rows) >= total_count:
                break
        else:
            logger.warning(
                f"[INVENTORY] source-items 페이지 상한({SOURCE_ITEMS_MAX_PAGES}) 도달, "
                f"{len(chunk)}건 묶음 결과가 잘렸을 수 있음"
            )
        return rows

    async def _fetch_chunk(self, chunk: list[str]) -> dict[str, InventoryLookup]:
        items = await self._fetch_source_items(chunk)

        wanted = set(chunk)
        quantities: dict[str, float] = {}
        in_stock: dict[str, bool] = {}
        sources: dict[str, list[str]] = {}
        for item in items:
            if not isinstance(item, dict) or item.get("sku") not in wanted:
                continue
            sku = item["sku"]
            try:
                qty = float(item.get("quantity") or 0)
            except (TypeError, ValueError):
                qty = 0.0
            quantities[sku] = quantities.get(sku, 0.0) + max(qty, 0.0)
            in_stock[sku] = in_stock.get(sku, False) or item.get("status") == IN_STOCK_STATUS
            if item.get("source_code"):
                sources.setdefault(sku, []).append(str(item["source_code"]))

        lookups: dict[str, InventoryLookup] = {}
        for sku in chunk:
            if sku not in quantities:
                lookups[sku] = self._fallback(sku, DegradedReason.NOT_FOUND)
                continue
            record = InventoryRecord(
                sku=sku,
                qty=quantities[sku],
                is_in_stock=in_stock[sku],
                source_code=",".join(sources.get(sku, [])) or None,
            )
            lookups[sku] = InventoryLookup.resolved(record)
        return lookups

    async def list(self, page_size: int = 50, page: int = 1) -> InventoryPage:
        criteria = {"pageSize": page_size, "currentPage": page}
        return await self._page(_search_params([], page_size, page), criteria)

    async def search(
        self,
        filters: Sequence[dict[str, Any]],
        page_size: int = 50,
        page: int = 1,
    ) -> InventoryPage:
        criteria = {
            "filterGroups": [{"filters": list(filters)}],
            "pageSize": page_size,
            "currentPage": page,
        }
        return await self._page(_search_params(filters, page_size, page), criteria)

    async def _page(self, params: list[tuple[str, Any]], criteria: dict[str, Any]) -> InventoryPage:
        self.auth.require()
        self.tracker.record_call(DataSource.INVENTORY)
        try:
            data = await self.client.request_json("GET", STOCK_ITEMS_PATH, params=params, auth=self.auth)
            if not isinstance(data, dict) or not isinstance(data.get("items") or [], list):
                raise MalformedResponse(
                    "재고 목록 응답 형식 오류",
                    url=self.client.build_url(STOCK_ITEMS_PATH),
                    detail=type(data).__name__,
                )
        except (UpstreamUnavailable, MalformedResponse) as e:
            reason = degraded_reason_for(e)
            logger.error(f"[INVENTORY] 재고 목록 조회 실패 ({reason.value}): {e}")
            return InventoryPage(search_criteria=criteria, degraded_reason=reason)

        records: list[InventoryRecord] = []
        for raw in data.get("items") or []:
            if not isinstance(raw, dict):
                continue
            sku = raw.get("sku") or (str(raw["product_id"]) if raw.get("product_id") is not None else "")
            if not sku:
                continue
            try:
                records.append(_stock_item_record(sku, raw))
            except (ValueError, ValidationError) as e:
                logger.warning(f"[INVENTORY] 재고 항목 파싱 실패로 건너뜀 ({sku}): {e}")

        try:
            total_count = int(data.get("total_count") or len(records))
        except (TypeError, ValueError):
            total_count = len(records)
        return InventoryPage(items=records, total_count=total_count, search_criteria=criteria)

    @staticmethod
    def statistics(records: Iterable[InventoryRecord | InventoryLookup]) -> InventoryStatistics:
        total_items = 0
        in_stock_items = 0
        total_quantity = 0.0
        for item in records:
            record = item.record if isinstance(item, InventoryLookup) else item
            total_items += 1
            total_quantity += record.qty
            if record.is_in_stock:
                in_stock_items += 1
        return InventoryStatistics(
            total_items=total_items,
            in_stock_items=in_stock_items,
            out_of_stock_items=total_items - in_stock_items,
            total_quantity=total_quantity,
            average_quantity=round(total_quantity / total_items, 2) if total_items else 0.0,
        )
