"""
TTL 기반 메모리 캐시.

프로세스 전역 캐시를 두지 않고, 호출 측에서 인스턴스를 만들어
CategoryResolver 등에 주입한다. 만료는 읽기 시점에 판단한다(lazy expiry).
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    key: str
    payload: Any
    inserted_at: float


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    expired: int = 0
    evicted: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "expired": self.expired,
            "evicted": self.evicted,
        }


def _now() -> float:
    return time.time()


class CacheStore:
    """
    key/value TTL 저장소.

    - get(key, ttl): now - inserted_at < ttl 이면 payload, 아니면 제거 후 None
    - put(key, payload): 항상 덮어쓰고 현재 시각 기록
    - 모든 연산은 Lock으로 보호 (여러 파이프라인 실행이 공유 가능)
    """

    def __init__(
        self,
        max_entries: int | None = None,
        enabled: bool = True,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._max_entries = max_entries if max_entries and max_entries > 0 else None
        self._clock = clock or _now
        self.enabled = enabled
        self.stats = CacheStats()

    def _lookup(self, key: str, ttl: float, now: float) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            self.stats.misses += 1
            return None
        if now - entry.inserted_at < ttl:
            self.stats.hits += 1
            return entry.payload
        del self._entries[key]
        self.stats.expired += 1
        self.stats.misses += 1
        return None

    def get(self, key: str, ttl: float) -> Any | None:
        if not self.enabled:
            return None
        with self._lock:
            return self._lookup(key, ttl, self._clock())

    def get_many(self, keys: Iterable[str], ttl: float) -> dict[str, Any]:
        """현재 유효한 항목만 한 번의 잠금 구간에서 조회"""
        if not self.enabled:
            return {}
        found: dict[str, Any] = {}
        with self._lock:
            now = self._clock()
            for key in keys:
                if key in found:
                    continue
                payload = self._lookup(key, ttl, now)
                if payload is not None:
                    found[key] = payload
        return found

    def put(self, key: str, payload: Any) -> None:
        if not self.enabled or payload is None:
            return
        with self._lock:
            # 덮어쓰기 시 삽입 순서를 갱신해 오래된 항목부터 밀어낸다
            self._entries.pop(key, None)
            self._entries[key] = CacheEntry(key=key, payload=payload, inserted_at=self._clock())
            if self._max_entries is not None:
                while len(self._entries) > self._max_entries:
                    oldest = next(iter(self._entries))
                    del self._entries[oldest]
                    self.stats.evicted += 1

    def put_many(self, items: Iterable[tuple[str, Any]]) -> None:
        for key, payload in items:
            self.put(key, payload)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def purge_expired(self, ttl: float) -> int:
        """만료 항목 일괄 정리 (메모리 상한 관리용, 선택 사항)"""
        with self._lock:
            now = self._clock()
            stale = [k for k, e in self._entries.items() if now - e.inserted_at >= ttl]
            for key in stale:
                del self._entries[key]
            self.stats.expired += len(stale)
        if stale:
            logger.debug(f"[CACHE] Purged {len(stale)} expired entries")
        return len(stale)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
