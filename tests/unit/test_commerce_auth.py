"""
요청 서명(OAuth 1.0a / Bearer) 테스트.
"""

import base64
import hashlib
import hmac
import urllib.parse

import pytest

from catalog_export.commerce_auth import (
    BearerTokenAuth,
    CommerceCredentials,
    OAuth1Signer,
    OAuthCredentials,
    build_bearer_header,
    build_oauth_header,
    percent_encode,
)
from catalog_export.exceptions import CredentialsMissing, SigningError
from catalog_export.settings import Settings


def _parse_header(header: str) -> dict[str, str]:
    assert header.startswith("OAuth ")
    params = {}
    for part in header[len("OAuth "):].split(", "):
        key, value = part.split("=", 1)
        params[key] = urllib.parse.unquote(value.strip('"'))
    return params


@pytest.mark.unit
class TestPercentEncode:
    def test_unreserved_kept(self):
        assert percent_encode("abc-._~XYZ019") == "abc-._~XYZ019"

    def test_reserved_encoded(self):
        assert percent_encode("a b&c=d/e+f") == "a%20b%26c%3Dd%2Fe%2Bf"

    def test_none(self):
        assert percent_encode(None) == ""

    def test_non_ascii(self):
        assert percent_encode("상품") == "%EC%83%81%ED%92%88"


@pytest.mark.unit
class TestOAuthHeader:
    def test_header_contains_sorted_oauth_params(self, oauth_credentials):
        header = build_oauth_header(
            "GET", "https://shop.test/rest/V1/products", oauth_credentials,
            nonce="abc", timestamp="1700000000",
        )
        params = _parse_header(header)
        assert list(params) == sorted(params)
        assert params["oauth_consumer_key"] == "ck"
        assert params["oauth_token"] == "at"
        assert params["oauth_signature_method"] == "HMAC-SHA256"
        assert params["oauth_nonce"] == "abc"
        assert params["oauth_timestamp"] == "1700000000"
        assert params["oauth_version"] == "1.0"

    def test_signature_matches_reference_computation(self, oauth_credentials):
        """쿼리 파라미터를 포함한 서명 문자열로 직접 계산한 값과 일치해야 한다."""
        url = "https://shop.test/rest/V1/products?searchCriteria%5BpageSize%5D=50&searchCriteria%5BcurrentPage%5D=1"
        header = build_oauth_header("get", url, oauth_credentials, nonce="n1", timestamp="1")

        pairs = sorted([
            ("oauth_consumer_key", "ck"),
            ("oauth_nonce", "n1"),
            ("oauth_signature_method", "HMAC-SHA256"),
            ("oauth_timestamp", "1"),
            ("oauth_token", "at"),
            ("oauth_version", "1.0"),
            (percent_encode("searchCriteria[pageSize]"), "50"),
            (percent_encode("searchCriteria[currentPage]"), "1"),
        ])
        param_string = "&".join(f"{k}={v}" for k, v in pairs)
        base_string = "&".join([
            "GET",
            percent_encode("https://shop.test/rest/V1/products"),
            percent_encode(param_string),
        ])
        expected = base64.b64encode(
            hmac.new(b"cs&ats", base_string.encode(), hashlib.sha256).digest()
        ).decode()

        assert _parse_header(header)["oauth_signature"] == expected

    def test_signature_changes_with_query(self, oauth_credentials):
        a = build_oauth_header("GET", "https://shop.test/rest/V1/products?a=1", oauth_credentials, "n", "1")
        b = build_oauth_header("GET", "https://shop.test/rest/V1/products?a=2", oauth_credentials, "n", "1")
        assert _parse_header(a)["oauth_signature"] != _parse_header(b)["oauth_signature"]

    def test_fresh_nonce_per_call(self, oauth_credentials):
        signer = OAuth1Signer(oauth_credentials)
        first = _parse_header(signer.authorization_header("GET", "https://shop.test/rest/V1/products"))
        second = _parse_header(signer.authorization_header("GET", "https://shop.test/rest/V1/products"))
        assert first["oauth_nonce"] != second["oauth_nonce"]
        assert len(first["oauth_nonce"]) == 32

    def test_missing_credentials(self):
        creds = OAuthCredentials(consumer_key="ck", consumer_secret="", access_token="at", access_token_secret="")
        with pytest.raises(CredentialsMissing) as excinfo:
            build_oauth_header("GET", "https://shop.test/rest/V1/products", creds)
        assert excinfo.value.missing_fields == ["consumer_secret", "access_token_secret"]
        assert excinfo.value.scheme == "oauth1"

    def test_invalid_url(self, oauth_credentials):
        with pytest.raises(SigningError):
            build_oauth_header("GET", "/rest/V1/products", oauth_credentials)


@pytest.mark.unit
class TestBearer:
    def test_header(self):
        assert build_bearer_header("tok") == "Bearer tok"
        assert BearerTokenAuth("tok").authorization_header("GET", "https://x") == "Bearer tok"

    def test_missing_token(self):
        with pytest.raises(CredentialsMissing) as excinfo:
            BearerTokenAuth("").require()
        assert excinfo.value.error_code == "CREDENTIALS_MISSING"
        assert excinfo.value.to_dict()["context"]["missing_fields"] == ["admin_token"]


@pytest.mark.unit
def test_credentials_from_settings():
    s = Settings(
        _env_file=None,
        commerce_consumer_key="ck",
        commerce_consumer_secret="cs",
        commerce_access_token="at",
        commerce_access_token_secret="ats",
        commerce_admin_token="admin",
    )
    creds = CommerceCredentials.from_settings(s)
    assert creds.oauth.require() is creds.oauth
    assert creds.admin_token == "admin"
