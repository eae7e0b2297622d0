from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
import time
import urllib.parse
from dataclasses import dataclass, fields
from typing import Protocol

from catalog_export.exceptions import CredentialsMissing, SigningError
from catalog_export.settings import Settings


def percent_encode(value: object) -> str:
    """RFC 3986 퍼센트 인코딩 (unreserved 문자만 그대로 유지)"""
    if value is None:
        return ""
    return urllib.parse.quote(str(value), safe="~")


@dataclass(frozen=True)
class OAuthCredentials:
    consumer_key: str
    consumer_secret: str
    access_token: str
    access_token_secret: str

    def require(self) -> "OAuthCredentials":
        missing = [f.name for f in fields(self) if not getattr(self, f.name)]
        if missing:
            raise CredentialsMissing("oauth1", missing)
        return self


@dataclass(frozen=True)
class CommerceCredentials:
    """두 업스트림이 서로 다른 인증을 쓰므로 함께 보관한다."""
    oauth: OAuthCredentials
    admin_token: str

    @classmethod
    def from_settings(cls, s: Settings) -> "CommerceCredentials":
        return cls(
            oauth=OAuthCredentials(
                consumer_key=s.commerce_consumer_key,
                consumer_secret=s.commerce_consumer_secret,
                access_token=s.commerce_access_token,
                access_token_secret=s.commerce_access_token_secret,
            ),
            admin_token=s.commerce_admin_token,
        )


def _generate_nonce() -> str:
    return secrets.token_hex(16)


def build_oauth_header(
    method: str,
    url: str,
    credentials: OAuthCredentials,
    nonce: str | None = None,
    timestamp: str | None = None,
) -> str:
    """
    OAuth 1.0a 인증 헤더(HMAC-SHA256) 생성.

    서명 문자열: {METHOD}&{enc(base_url)}&{enc(정렬된 파라미터 문자열)}
    서명 키: {enc(consumer_secret)}&{enc(access_token_secret)}
    쿼리 파라미터도 서명 대상에 포함된다.
    """
    credentials.require()

    parsed = urllib.parse.urlsplit(url)
    if not parsed.scheme or not parsed.netloc:
        raise SigningError(f"서명할 URL이 올바르지 않습니다: {url}", method=method, url=url)
    base_url = f"{parsed.scheme.lower()}://{parsed.netloc.lower()}{parsed.path}"

    oauth_params = {
        "oauth_consumer_key": credentials.consumer_key,
        "oauth_token": credentials.access_token,
        "oauth_signature_method": "HMAC-SHA256",
        "oauth_timestamp": timestamp or str(int(time.time())),
        "oauth_nonce": nonce or _generate_nonce(),
        "oauth_version": "1.0",
    }

    query_params = urllib.parse.parse_qsl(parsed.query, keep_blank_values=True)
    encoded_pairs = sorted(
        (percent_encode(k), percent_encode(v))
        for k, v in list(oauth_params.items()) + query_params
    )
    parameter_string = "&".join(f"{k}={v}" for k, v in encoded_pairs)

    base_string = "&".join(
        [method.upper(), percent_encode(base_url), percent_encode(parameter_string)]
    )
    signing_key = (
        f"{percent_encode(credentials.consumer_secret)}&"
        f"{percent_encode(credentials.access_token_secret)}"
    )

    try:
        digest = hmac.new(
            signing_key.encode("utf-8"),
            base_string.encode("utf-8"),
            hashlib.sha256,
        ).digest()
    except (TypeError, ValueError) as e:
        raise SigningError(f"HMAC 서명 생성 실패: {e}", method=method, url=url) from e

    oauth_params["oauth_signature"] = base64.b64encode(digest).decode("ascii")

    header_params = ", ".join(
        f'{key}="{percent_encode(oauth_params[key])}"' for key in sorted(oauth_params)
    )
    return f"OAuth {header_params}"


def build_bearer_header(token: str | None) -> str:
    if not token:
        raise CredentialsMissing("bearer", ["admin_token"])
    return f"Bearer {token}"


class AuthScheme(Protocol):
    name: str

    def require(self) -> None:
        ...

    def authorization_header(self, method: str, url: str) -> str:
        ...


class OAuth1Signer:
    """요청마다 새 nonce/timestamp로 서명한다 (재시도 포함)."""

    name = "oauth1"

    def __init__(self, credentials: OAuthCredentials) -> None:
        self._credentials = credentials

    def require(self) -> None:
        self._credentials.require()

    def authorization_header(self, method: str, url: str) -> str:
        return build_oauth_header(method, url, self._credentials)


class BearerTokenAuth:
    name = "bearer"

    def __init__(self, token: str | None) -> None:
        self._token = token

    def require(self) -> None:
        build_bearer_header(self._token)

    def authorization_header(self, method: str, url: str) -> str:
        return build_bearer_header(self._token)
