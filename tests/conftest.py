"""Pytest configuration and fixtures."""

import pytest

from catalog_export.cache_store import CacheStore
from catalog_export.commerce_auth import BearerTokenAuth, OAuth1Signer, OAuthCredentials
from catalog_export.services.performance import PerformanceTracker
from tests.fake_commerce import FakeCommerce


@pytest.fixture
def fake_commerce():
    """경로별 응답을 등록하는 가짜 업스트림."""
    return FakeCommerce()


@pytest.fixture
def oauth_credentials():
    return OAuthCredentials(
        consumer_key="ck",
        consumer_secret="cs",
        access_token="at",
        access_token_secret="ats",
    )


@pytest.fixture
def oauth_auth(oauth_credentials):
    return OAuth1Signer(oauth_credentials)


@pytest.fixture
def bearer_auth():
    return BearerTokenAuth("admin-token")


@pytest.fixture
def cache_store():
    return CacheStore()


@pytest.fixture
def tracker():
    return PerformanceTracker()


# 테스트 마커 정의
def pytest_configure(config):
    """Pytest 마커 등록."""
    config.addinivalue_line("markers", "unit: 단위 테스트 (외부 API 불필요)")
    config.addinivalue_line("markers", "integration: 통합 테스트 (가짜 업스트림으로 전체 파이프라인 실행)")
    config.addinivalue_line("markers", "slow: 느린 테스트 (> 1분)")
