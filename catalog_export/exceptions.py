"""
Catalog Export Exception Classes

파이프라인 전 구간에서 사용하는 구조화된 예외 정의.
CLI 는 severity 로 로그 레벨을 고르고 to_dict() 를 stderr 로 출력한다.
"""
import logging
from typing import Optional, Dict, Any, Iterable
from enum import Enum


class ErrorSeverity(Enum):
    """에러 심각도 레벨"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def log_level(self) -> int:
        return {
            ErrorSeverity.LOW: logging.INFO,
            ErrorSeverity.MEDIUM: logging.WARNING,
            ErrorSeverity.HIGH: logging.ERROR,
            ErrorSeverity.CRITICAL: logging.CRITICAL,
        }[self]


class CatalogExportError(Exception):
    """
    카탈로그 내보내기 예외 기본 클래스

    Attributes:
        message: 에러 메시지
        error_code: 에러 코드 (기본값은 클래스 이름)
        severity: 에러 심각도
        context: 요청 URL, 상태 코드 등 추가 정보
        recoverable: 재시도로 복구 가능 여부 (재시도 판정에 사용)
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        context: Optional[Dict[str, Any]] = None,
        recoverable: bool = False
    ):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.severity = severity
        self.context = context or {}
        self.recoverable = recoverable
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """CLI 오류 출력용 딕셔너리 (None 인 컨텍스트 값은 제외)"""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "severity": self.severity.value,
            "context": {k: v for k, v in self.context.items() if v is not None},
            "recoverable": self.recoverable
        }


class CredentialsMissing(CatalogExportError):
    """
    필수 인증 정보 누락. 요청을 시도하지 않고 즉시 실패한다.

    Attributes:
        scheme: 인증 방식 (oauth1, bearer)
        missing_fields: 누락된 필드 이름 목록
    """

    def __init__(self, scheme: str, missing_fields: Iterable[str]):
        self.scheme = scheme
        self.missing_fields = list(missing_fields)
        super().__init__(
            message=f"{scheme} 인증 정보가 없습니다: {', '.join(self.missing_fields)}",
            error_code="CREDENTIALS_MISSING",
            severity=ErrorSeverity.CRITICAL,
            context={"scheme": scheme, "missing_fields": self.missing_fields},
            recoverable=False
        )


class SigningError(CatalogExportError):
    """요청 서명 생성 실패"""

    def __init__(self, message: str, method: Optional[str] = None, url: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="SIGNING_ERROR",
            severity=ErrorSeverity.HIGH,
            context={"method": method, "url": url},
            recoverable=False
        )


class UpstreamUnavailable(CatalogExportError):
    """
    업스트림 API 호출 실패 (네트워크 오류 또는 non-2xx)

    Attributes:
        status_code: HTTP 상태 코드 (네트워크 오류면 None)
        url: 요청 URL
        response_body: 응답 본문 일부
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
        response_body: Optional[str] = None,
        recoverable: bool = True
    ):
        super().__init__(
            message=message,
            error_code="UPSTREAM_UNAVAILABLE",
            severity=ErrorSeverity.MEDIUM,
            context={
                "status_code": status_code,
                "url": url,
                "response_body": response_body
            },
            recoverable=recoverable
        )
        self.status_code = status_code
        self.url = url
        self.response_body = response_body

    @property
    def not_found(self) -> bool:
        return self.status_code == 404


class MalformedResponse(CatalogExportError):
    """응답 형식이 예상과 다름"""

    def __init__(self, message: str, url: Optional[str] = None, detail: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="MALFORMED_RESPONSE",
            severity=ErrorSeverity.MEDIUM,
            context={"url": url, "detail": detail},
            recoverable=False
        )
        self.url = url
        self.detail = detail


class MalformedProductError(CatalogExportError):
    """병합 입력 상품 데이터 오류 (예: sku 누락)"""

    def __init__(self, index: int, reason: str):
        super().__init__(
            message=f"상품 #{index} 데이터가 올바르지 않습니다: {reason}",
            error_code="MALFORMED_PRODUCT",
            severity=ErrorSeverity.HIGH,
            context={"index": index, "reason": reason},
            recoverable=False
        )
        self.index = index
        self.reason = reason
