# helpdesk/metrics.py
# Prometheus-Metriken: Anfragen, Latenz, Token, Verfügbarkeit, Tickets
from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

# ── Metriken-Definitionen ──────────────────────────────────────────────────

REQUEST_COUNT = Counter(
    "helpdesk_chat_requests_total",
    "Gesamtanzahl Chat-Anfragen pro Provider und Ergebnis",
    ["provider", "status"],
)

REQUEST_LATENCY = Histogram(
    "helpdesk_chat_latency_ms",
    "Antwortzeit des Backends in Millisekunden",
    ["provider"],
    buckets=[50, 100, 250, 500, 1000, 2500, 5000, 10000, 30000],
)

TOKENS_TOTAL = Counter(
    "helpdesk_tokens_total",
    "Vom Backend gemeldete Token (input/output)",
    ["direction", "provider"],
)

PROVIDER_AVAILABLE = Gauge(
    "helpdesk_provider_available",
    "Ergebnis des letzten Probes (1=verfügbar, 0=nicht verfügbar)",
    ["provider"],
)

TICKETS_CREATED = Counter(
    "helpdesk_tickets_created_total",
    "Erstellte Support-Tickets nach Priorität",
    ["priority"],
)


def get_metrics_response() -> tuple[bytes, str]:
    """Prometheus-Metriken im Textformat zurückgeben."""
    return generate_latest(), CONTENT_TYPE_LATEST
