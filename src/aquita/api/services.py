"""Process-wide service graph, built once at startup and closed at shutdown."""

from __future__ import annotations

from dataclasses import dataclass

from aquita.ai.directory import BusinessPromptAutoReply, DirectoryConcierge
from aquita.infra.settings import Settings, load_settings
from aquita.observability.dependency_health import DependencyHealthTracker
from aquita.operations.dashboard import OperationalDashboard
from aquita.resilience.circuit_breaker import CircuitBreaker
from aquita.whatsapp.meta_sender import WhatsAppOutboundGateway
from aquita.whatsapp.reconciler import WebhookReconciler
from aquita.whatsapp.replies import ReplyComposer
from aquita.whatsapp.store import PostgresWhatsAppStore


@dataclass
class Services:
    settings: Settings
    health_tracker: DependencyHealthTracker
    circuit_breaker: CircuitBreaker
    gateway: WhatsAppOutboundGateway
    reconciler: WebhookReconciler
    dashboard: OperationalDashboard

    def close(self) -> None:
        self.gateway.close()
        self.circuit_breaker.reset()
        self.health_tracker.reset()


def build_services(settings: Settings | None = None) -> Services:
    """Wire the default Postgres-backed graph."""
    settings = settings or load_settings()

    health_tracker = DependencyHealthTracker()
    breaker = CircuitBreaker(
        failure_threshold=settings.circuit_breaker.failure_threshold,
        cooldown_ms=settings.circuit_breaker.cooldown_ms,
    )
    gateway = WhatsAppOutboundGateway(settings.whatsapp, health_tracker)
    composer = ReplyComposer(
        auto_reply=BusinessPromptAutoReply(breaker, health_tracker),
        concierge=DirectoryConcierge(breaker, health_tracker, settings.app_web_base_url),
    )

    return Services(
        settings=settings,
        health_tracker=health_tracker,
        circuit_breaker=breaker,
        gateway=gateway,
        reconciler=WebhookReconciler(PostgresWhatsAppStore(), composer, gateway),
        dashboard=OperationalDashboard(health_tracker, settings.dashboard),
    )
