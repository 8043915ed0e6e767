from __future__ import annotations

import logging
from typing import Any, Dict

from opentelemetry import _logs as logs
from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.resources import Resource

from ..config import settings

DEFAULT_POSTHOG_ENDPOINT = "https://us.i.posthog.com/i/v1/logs"
EU_POSTHOG_ENDPOINT = "https://eu.i.posthog.com/i/v1/logs"
SERVICE_NAME = "competitor-scrape"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

_logger_provider: LoggerProvider | None = None
_logger: logging.Logger | None = None

log = logging.getLogger("competitor_scrape.telemetry")


def _resolve_endpoint() -> str:
    if settings.posthog_logs_endpoint:
        return settings.posthog_logs_endpoint.rstrip("/")

    region = (settings.posthog_region or "").lower()
    if region.startswith("eu"):
        return EU_POSTHOG_ENDPOINT

    return DEFAULT_POSTHOG_ENDPOINT


def _build_otlp_exporter(endpoint: str, token: str) -> OTLPLogExporter:
    return OTLPLogExporter(endpoint=endpoint, headers={"Authorization": f"Bearer {token}"})


def telemetry_enabled() -> bool:
    return bool(settings.posthog_project_api_key) and not settings.posthog_disabled


def _ensure_logger() -> logging.Logger:
    global _logger, _logger_provider

    if _logger:
        return _logger

    token = settings.posthog_project_api_key
    if not token:
        raise RuntimeError("POSTHOG_PROJECT_API_KEY is not configured")

    provider = LoggerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
    logs.set_logger_provider(provider)
    provider.add_log_record_processor(BatchLogRecordProcessor(_build_otlp_exporter(_resolve_endpoint(), token)))

    handler = LoggingHandler(level=logging.INFO, logger_provider=provider)
    logger = logging.getLogger("competitor_scrape.events")
    logger.setLevel(logging.INFO)
    logger.propagate = False

    # Avoid duplicating OTLP handlers when the function is called multiple times.
    logger.handlers = [h for h in logger.handlers if not isinstance(h, LoggingHandler)]
    logger.addHandler(handler)

    _logger_provider = provider
    _logger = logger
    return logger


def _normalize_log_level(level: Any) -> int:
    if isinstance(level, int):
        return level
    return _LEVELS.get(str(level or "").strip().lower(), logging.INFO)


def emit_posthog_log(payload: Dict[str, Any]) -> None:
    """Send one pipeline event to PostHog via OTLP.

    ``data`` entries become log attributes; a ``run_id`` or ``label`` is appended
    to the message so events stay searchable by remote run.
    """

    logger = _ensure_logger()

    event = str(payload.get("event") or "competitor_scrape")
    data = payload.get("data") or {}
    context = " ".join(f"{key}={data[key]}" for key in ("run_id", "label") if data.get(key))
    message = f"{event} {context}" if context else event

    attributes: Dict[str, Any] = {"event": event}
    for key, value in data.items():
        if value is None:
            continue
        attributes[key] = value if isinstance(value, (str, int, float, bool)) else str(value)

    # stacklevel points OTLP location fields at the caller of this helper.
    logger.log(_normalize_log_level(payload.get("level")), message, extra=attributes, stacklevel=2)


def emit_event(event: str, *, level: str = "info", **data: Any) -> None:
    """Best-effort event shipping; never raises into the caller."""

    if not telemetry_enabled():
        return
    try:
        emit_posthog_log({"event": event, "level": level, "data": data})
    except Exception:
        log.debug("telemetry.emit_failed event=%s", event, exc_info=True)


def force_flush_posthog_logs(timeout_ms: int = 30000) -> bool:
    if _logger_provider:
        return _logger_provider.force_flush(timeout_ms)
    return True
