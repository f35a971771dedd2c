"""Operational dashboard: one status verdict from database and dependency signals.

Signals:
- schema readiness (database reachable and required tables present)
- connection pool saturation (active / max connections)
- dependency groups "ai" and "whatsapp" from the health tracker

Overall status is the worst of the four (down > degraded > up).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

import psycopg2

from aquita.infra.db import txn
from aquita.infra.repositories import database_stats_repository
from aquita.infra.settings import DashboardSettings
from aquita.infra.time import utc_now
from aquita.observability.dependency_health import (
    UNHEALTHY_ERROR_RATE_PCT,
    DependencyHealthTracker,
    DependencyReport,
)
from aquita.observability.logging import get_logger
from aquita.observability.redaction import safe_log_context

logger = get_logger(__name__)

UP = "up"
DEGRADED = "degraded"
DOWN = "down"

_SEVERITY = {UP: 0, DEGRADED: 1, DOWN: 2}

REQUIRED_TABLES = ("whatsapp_conversations", "whatsapp_messages")
DEPENDENCY_GROUPS = ("ai", "whatsapp")


@dataclass(frozen=True)
class DatabaseCheck:
    reachable: bool
    missing_tables: list[str] = field(default_factory=list)
    active_connections: int = 0
    max_connections: int = 0
    error: str | None = None


class DatabaseProbe(Protocol):
    def check(self, required_tables: tuple[str, ...]) -> DatabaseCheck: ...


class PostgresDatabaseProbe:
    """Probe using server statistics; an unreachable database is reported, not raised."""

    def check(self, required_tables: tuple[str, ...]) -> DatabaseCheck:
        try:
            with txn() as cur:
                database_stats_repository.ping(cur)
                missing = database_stats_repository.missing_tables(cur, list(required_tables))
                active, maximum = database_stats_repository.connection_usage(cur)
        except (psycopg2.Error, RuntimeError) as e:
            logger.warning(
                "database probe failed",
                extra={"extra_fields": safe_log_context(error_type=type(e).__name__)},
            )
            return DatabaseCheck(reachable=False, error=type(e).__name__)

        return DatabaseCheck(
            reachable=True,
            missing_tables=missing,
            active_connections=active,
            max_connections=maximum,
        )


def worst_status(*statuses: str) -> str:
    return max(statuses, key=lambda s: _SEVERITY[s], default=UP)


def summarize_group(reports: list[DependencyReport]) -> dict:
    """Status for one dependency group.

    No samples -> degraded (no_samples). An unhealthy entry at or above the
    error-rate limit -> down. Any other unhealthy entry -> degraded.
    """
    if not reports:
        return {"status": DEGRADED, "reason": "no_samples", "entries": []}

    unhealthy = [r for r in reports if not r.healthy]
    if any(r.error_rate_pct >= UNHEALTHY_ERROR_RATE_PCT for r in unhealthy):
        status, reason = DOWN, "error_rate"
    elif unhealthy:
        status, reason = DEGRADED, "latency"
    else:
        status, reason = UP, None

    return {
        "status": status,
        "reason": reason,
        "entries": [r.to_dict() for r in reports],
    }


def pool_status(ratio: float, warn_ratio: float, critical_ratio: float) -> str:
    if ratio >= critical_ratio:
        return DOWN
    if ratio >= warn_ratio:
        return DEGRADED
    return UP


class OperationalDashboard:
    """Composes the dashboard from a database probe and the health tracker."""

    def __init__(
        self,
        health_tracker: DependencyHealthTracker,
        settings: DashboardSettings,
        probe: DatabaseProbe | None = None,
    ) -> None:
        self._health = health_tracker
        self._settings = settings
        self._probe = probe or PostgresDatabaseProbe()

    def get_operational_dashboard(self) -> dict:
        database = self._database_section()

        reports = self._health.snapshot(self._settings.latency_thresholds_ms)
        groups = {
            name: summarize_group([r for r in reports if r.dependency == name])
            for name in DEPENDENCY_GROUPS
        }

        status = worst_status(
            database["schema"]["status"],
            database["pool"]["status"],
            *(group["status"] for group in groups.values()),
        )

        return {
            "status": status,
            "generatedAt": utc_now().isoformat(),
            "database": database,
            "dependencies": groups,
        }

    def _database_section(self) -> dict:
        s = self._settings
        check = self._probe.check(REQUIRED_TABLES)

        if not check.reachable:
            return {
                "schema": {"status": DOWN, "reason": "unreachable", "missingTables": []},
                "pool": {
                    "status": DOWN,
                    "reason": "unreachable",
                    "activeConnections": None,
                    "maxConnections": None,
                    "utilizationRatio": None,
                    "warnRatio": s.pool_warn_ratio,
                    "criticalRatio": s.pool_critical_ratio,
                },
            }

        ratio = (
            round(check.active_connections / check.max_connections, 4)
            if check.max_connections > 0
            else 0.0
        )
        return {
            "schema": {
                "status": DOWN if check.missing_tables else UP,
                "reason": "missing_tables" if check.missing_tables else None,
                "missingTables": list(check.missing_tables),
            },
            "pool": {
                "status": pool_status(ratio, s.pool_warn_ratio, s.pool_critical_ratio),
                "reason": None,
                "activeConnections": check.active_connections,
                "maxConnections": check.max_connections,
                "utilizationRatio": ratio,
                "warnRatio": s.pool_warn_ratio,
                "criticalRatio": s.pool_critical_ratio,
            },
        }
