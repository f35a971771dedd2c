"""OpenTelemetry tracer access.

Only the API package is required; spans are no-ops unless the process
installs an SDK tracer provider.
"""

from opentelemetry import trace
from opentelemetry.trace import Tracer

TRACER_NAME = "aquita-api"


def get_tracer() -> Tracer:
    return trace.get_tracer(TRACER_NAME)
