from __future__ import annotations

import logging
from typing import Any, Sequence

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from catalog_export.commerce_auth import AuthScheme
from catalog_export.exceptions import MalformedResponse, UpstreamUnavailable
from catalog_export.settings import Settings


logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

QueryParams = Sequence[tuple[str, Any]] | dict[str, Any]


def _describe_error(status_code: int, data: Any) -> str:
    """
    커머스 REST 에러 응답을 읽기 쉬운 메시지로 변환합니다.

    에러 본문 형식: {"message": "... %1 ...", "parameters": [...] | {...}}
    """
    error_messages = {
        400: "요청 파라미터 오류",
        401: "인증 오류",
        403: "권한 없음",
        404: "리소스를 찾을 수 없음",
        429: "요청 한도 초과 (잠시 후 재시도 필요)",
        500: "서버 오류 (잠시 후 재시도 필요)",
        503: "서비스 일시 중단 (잠시 후 재시도 필요)",
    }
    base_message = error_messages.get(status_code, f"HTTP {status_code} 오류")

    if not isinstance(data, dict):
        return base_message

    message = data.get("message")
    if not message:
        return base_message

    message_text = str(message)
    parameters = data.get("parameters")
    if isinstance(parameters, list):
        for idx, value in enumerate(parameters, start=1):
            message_text = message_text.replace(f"%{idx}", str(value))
    elif isinstance(parameters, dict):
        for key, value in parameters.items():
            message_text = message_text.replace(f"%{key}", str(value))

    return f"{base_message}: {message_text}"


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, UpstreamUnavailable) and error.recoverable


class CommerceClient:
    """
    커머스 REST API 전송 계층.

    타임아웃/재시도는 이 계층이 전담하고, 상위 컴포넌트는 결과 또는
    UpstreamUnavailable / MalformedResponse 만 받는다.
    """

    def __init__(
        self,
        base_url: str,
        rest_prefix: str = "/rest",
        timeout: httpx.Timeout | None = None,
        retry_count: int = 3,
        retry_backoff: float = 1.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._rest_prefix = "/" + rest_prefix.strip("/") if rest_prefix.strip("/") else ""
        self._timeout = timeout or httpx.Timeout(60.0, connect=10.0)
        self._retry_count = max(1, retry_count)
        self._retry_backoff = retry_backoff
        self._http = http_client
        self._owns_http = http_client is None

    @classmethod
    def from_settings(cls, s: Settings, http_client: httpx.AsyncClient | None = None) -> "CommerceClient":
        return cls(
            base_url=s.commerce_base_url,
            rest_prefix=s.commerce_rest_prefix,
            timeout=httpx.Timeout(s.http_timeout, connect=s.http_connect_timeout),
            retry_count=s.http_retry_count,
            retry_backoff=s.http_retry_backoff,
            http_client=http_client,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def build_url(self, path: str) -> str:
        return f"{self._base_url}{self._rest_prefix}/{path.lstrip('/')}"

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self._timeout)
        return self._http

    async def aclose(self) -> None:
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self) -> "CommerceClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def request_json(
        self,
        method: str,
        path: str,
        params: QueryParams | None = None,
        payload: dict[str, Any] | None = None,
        auth: AuthScheme | None = None,
    ) -> Any:
        """재시도 포함 요청. 성공 시 파싱된 JSON을 반환한다."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._retry_count),
            wait=wait_exponential(multiplier=self._retry_backoff, min=0, max=30),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
            before_sleep=lambda retry_state: logger.warning(
                f"커머스 API 재시도 중... ({retry_state.attempt_number}회째): "
                f"{retry_state.outcome.exception()}"
            ),
        )
        async for attempt in retrying:
            with attempt:
                return await self._send_once(method, path, params, payload, auth)

    async def _send_once(
        self,
        method: str,
        path: str,
        params: QueryParams | None,
        payload: dict[str, Any] | None,
        auth: AuthScheme | None,
    ) -> Any:
        client = self._client()
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        request = client.build_request(
            method,
            self.build_url(path),
            params=params,
            json=payload,
            headers=headers,
        )
        url = str(request.url)
        if auth is not None:
            # 서명은 최종 인코딩된 URL 기준, 시도마다 새로 생성
            request.headers["Authorization"] = auth.authorization_header(method, url)

        try:
            resp = await client.send(request)
        except httpx.TransportError as e:
            raise UpstreamUnavailable(
                f"커머스 API 네트워크 오류: {e}", url=url, recoverable=True
            ) from e

        if resp.status_code >= 400:
            try:
                data = resp.json() if resp.content else {}
            except ValueError:
                data = {}
            raise UpstreamUnavailable(
                _describe_error(resp.status_code, data),
                status_code=resp.status_code,
                url=url,
                response_body=resp.text[:500],  # 최대 500자만 보관
                recoverable=resp.status_code in RETRYABLE_STATUS_CODES,
            )

        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as e:
            raise MalformedResponse(
                f"커머스 API 응답 파싱 실패 (HTTP {resp.status_code})",
                url=url,
                detail=resp.text[:500],
            ) from e
