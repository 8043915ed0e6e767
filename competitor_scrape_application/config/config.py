from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    value = os.getenv(name, default)
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass
class Settings:
    # Apify REST API (https://api.apify.com/v2); token is sent as a bearer header
    apify_api_token: str | None = os.getenv("APIFY_API_TOKEN")
    apify_base_url: str = os.getenv("APIFY_BASE_URL", "https://api.apify.com")
    http_timeout_seconds: float = _env_float("HTTP_TIMEOUT_SECONDS", 60.0)

    # Gemini (google-generativeai)
    gemini_api_key: str | None = os.getenv("GEMINI_API_KEY")
    gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-1.5-pro")
    gemini_extraction_model: str = os.getenv("GEMINI_EXTRACTION_MODEL", "gemini-1.5-flash")
    gemini_content_model: str = os.getenv("GEMINI_CONTENT_MODEL", "gemini-2.0-flash")

    # Key-value persistence: "file" writes one JSON file per key, "memory" keeps a dict
    storage_backend: str = os.getenv("STORAGE_BACKEND", "file")
    storage_dir: str = os.getenv("STORAGE_DIR", ".storage")

    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # PostHog logging (OTLP) configuration
    posthog_project_api_key: str | None = os.getenv("POSTHOG_PROJECT_API_KEY")
    posthog_logs_endpoint: str | None = os.getenv("POSTHOG_LOGS_ENDPOINT")
    posthog_region: str | None = os.getenv("POSTHOG_REGION")
    posthog_disabled: bool = _env_flag("POSTHOG_DISABLED", "false") or _env_flag(
        "POSTHOG_DISABLE", "false"
    )


settings = Settings()
