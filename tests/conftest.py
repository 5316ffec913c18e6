"""Shared fixtures for WAF engine tests"""
import pytest

from app.core.config import Settings
from app.core.init import seed_rules
from app.services.waf_service import WAFService
from tests.factories import InMemoryGateway


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        SNAPSHOT_RETRY_ATTEMPTS=3,
        SNAPSHOT_RETRY_BACKOFF=0.001,
        THREAT_MODEL_PATH=None,
    )


@pytest.fixture
def empty_service(test_settings) -> WAFService:
    """Service with no rules and no persistence"""
    return WAFService(config=test_settings)


@pytest.fixture
def service(test_settings) -> WAFService:
    """Service with the default rule set and no persistence"""
    waf = WAFService(config=test_settings)
    seed_rules(waf.rules)
    return waf


@pytest.fixture
def gateway() -> InMemoryGateway:
    return InMemoryGateway()
