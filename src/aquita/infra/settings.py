"""Runtime settings loaded from a key-value source (environment by default).

Each concern gets its own frozen dataclass so services only receive what
they consume. Malformed or non-positive numbers fall back to defaults.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping

DEFAULT_GRAPH_API_VERSION = "v20.0"
DEFAULT_GRAPH_BASE_URL = "https://graph.facebook.com"


@dataclass(frozen=True)
class WhatsAppSettings:
    """WhatsApp Cloud API configuration.

    Attributes:
        enabled: True only when the flag is on AND phone_number_id and
                 access_token are both present.
    """

    enabled: bool = False
    phone_number_id: str | None = None
    access_token: str | None = None
    api_version: str = DEFAULT_GRAPH_API_VERSION
    graph_base_url: str = DEFAULT_GRAPH_BASE_URL
    http_timeout_seconds: float = 10.0
    verify_token: str | None = None
    app_secret: str | None = None


@dataclass(frozen=True)
class CircuitBreakerSettings:
    failure_threshold: int = 5
    cooldown_ms: int = 60_000


@dataclass(frozen=True)
class DashboardSettings:
    """Thresholds for the operational dashboard."""

    latency_thresholds_ms: dict[str, float] = field(
        default_factory=lambda: {"ai": 2500.0, "whatsapp": 1800.0}
    )
    pool_warn_ratio: float = 0.75
    pool_critical_ratio: float = 0.9


@dataclass(frozen=True)
class Settings:
    whatsapp: WhatsAppSettings = field(default_factory=WhatsAppSettings)
    circuit_breaker: CircuitBreakerSettings = field(default_factory=CircuitBreakerSettings)
    dashboard: DashboardSettings = field(default_factory=DashboardSettings)
    app_web_base_url: str = "https://aquita.do"
    ops_api_token: str | None = None


def load_settings(source: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from a key-value source.

    Args:
        source: Mapping of configuration keys. Defaults to os.environ.

    Returns:
        Fully resolved Settings.
    """
    env = os.environ if source is None else source

    return Settings(
        whatsapp=_load_whatsapp(env),
        circuit_breaker=CircuitBreakerSettings(
            failure_threshold=_positive_int(env, "CIRCUIT_BREAKER_FAILURE_THRESHOLD", 5),
            cooldown_ms=_positive_int(env, "CIRCUIT_BREAKER_COOLDOWN_MS", 60_000),
        ),
        dashboard=DashboardSettings(
            latency_thresholds_ms={
                "ai": _positive_float(env, "OBS_AI_P95_THRESHOLD_MS", 2500.0),
                "whatsapp": _positive_float(env, "OBS_WHATSAPP_P95_THRESHOLD_MS", 1800.0),
            },
            pool_warn_ratio=_positive_float(env, "DB_POOL_WARN_RATIO", 0.75),
            pool_critical_ratio=_positive_float(env, "DB_POOL_CRITICAL_RATIO", 0.9),
        ),
        app_web_base_url=(_clean(env, "APP_WEB_BASE_URL") or "https://aquita.do").rstrip("/"),
        ops_api_token=_clean(env, "OPS_API_TOKEN"),
    )


def _load_whatsapp(env: Mapping[str, str]) -> WhatsAppSettings:
    phone_number_id = _clean(env, "WHATSAPP_PHONE_NUMBER_ID")
    access_token = _clean(env, "WHATSAPP_ACCESS_TOKEN")
    flag = (_clean(env, "WHATSAPP_ENABLED") or "false").lower()

    return WhatsAppSettings(
        enabled=flag in ("true", "1") and bool(phone_number_id) and bool(access_token),
        phone_number_id=phone_number_id,
        access_token=access_token,
        api_version=_clean(env, "WHATSAPP_API_VERSION") or DEFAULT_GRAPH_API_VERSION,
        graph_base_url=(_clean(env, "WHATSAPP_GRAPH_BASE_URL") or DEFAULT_GRAPH_BASE_URL).rstrip("/"),
        http_timeout_seconds=_positive_float(env, "WHATSAPP_HTTP_TIMEOUT_SECONDS", 10.0),
        verify_token=_clean(env, "WHATSAPP_VERIFY_TOKEN"),
        app_secret=_clean(env, "WHATSAPP_APP_SECRET"),
    )


def _clean(env: Mapping[str, str], key: str) -> str | None:
    value = env.get(key)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _positive_int(env: Mapping[str, str], key: str, fallback: int) -> int:
    raw = _clean(env, key)
    if raw is None:
        return fallback
    try:
        parsed = int(raw)
    except ValueError:
        return fallback
    return parsed if parsed > 0 else fallback


def _positive_float(env: Mapping[str, str], key: str, fallback: float) -> float:
    raw = _clean(env, key)
    if raw is None:
        return fallback
    try:
        parsed = float(raw)
    except ValueError:
        return fallback
    return parsed if parsed > 0 else fallback
