"""Shared pytest fixtures for AquiTaDo WhatsApp core tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402

from aquita.infra.settings import Settings, WhatsAppSettings  # noqa: E402
from aquita.observability.dependency_health import DependencyHealthTracker  # noqa: E402

from .helpers import FakeClock  # noqa: E402


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tracker():
    return DependencyHealthTracker()


@pytest.fixture
def enabled_whatsapp_settings():
    return WhatsAppSettings(
        enabled=True,
        phone_number_id="1098765",
        access_token="test-token",
        api_version="v20.0",
        graph_base_url="https://graph.example.test",
        http_timeout_seconds=10.0,
    )


@pytest.fixture
def settings():
    return Settings(ops_api_token="ops-secret")
