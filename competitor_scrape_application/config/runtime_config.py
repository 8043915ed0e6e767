from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

import yaml

from .paths import resolve_config_path


@dataclass(frozen=True)
class PollBudget:
    poll_seconds: float
    max_attempts: int


@dataclass
class RuntimeConfig:
    website_scrape_poll_seconds: float
    website_scrape_max_attempts: int
    http_fallback_poll_seconds: float
    http_fallback_max_attempts: int
    product_scrape_poll_seconds: float
    product_scrape_max_attempts: int
    keyword_scrape_poll_seconds: float
    keyword_scrape_max_attempts: int
    tracking_scrape_poll_seconds: float
    tracking_scrape_max_attempts: int
    transport_retries: int
    transport_backoff_seconds: float
    llm_content_sample_chars: int

    @property
    def website_scrape(self) -> PollBudget:
        return PollBudget(self.website_scrape_poll_seconds, self.website_scrape_max_attempts)

    @property
    def http_fallback(self) -> PollBudget:
        return PollBudget(self.http_fallback_poll_seconds, self.http_fallback_max_attempts)

    @property
    def product_scrape(self) -> PollBudget:
        return PollBudget(self.product_scrape_poll_seconds, self.product_scrape_max_attempts)

    @property
    def keyword_scrape(self) -> PollBudget:
        return PollBudget(self.keyword_scrape_poll_seconds, self.keyword_scrape_max_attempts)

    @property
    def tracking_scrape(self) -> PollBudget:
        return PollBudget(self.tracking_scrape_poll_seconds, self.tracking_scrape_max_attempts)


_DEFAULTS: Dict[str, int | float] = {
    "website_scrape_poll_seconds": 5,
    "website_scrape_max_attempts": 24,
    "http_fallback_poll_seconds": 5,
    "http_fallback_max_attempts": 12,
    "product_scrape_poll_seconds": 5,
    "product_scrape_max_attempts": 30,
    "keyword_scrape_poll_seconds": 5,
    "keyword_scrape_max_attempts": 24,
    "tracking_scrape_poll_seconds": 20,
    "tracking_scrape_max_attempts": 15,
    "transport_retries": 3,
    "transport_backoff_seconds": 1.0,
    "llm_content_sample_chars": 2000,
}


def _load_runtime_yaml(path: Path | None = None) -> Dict[str, Any]:
    path = path or resolve_config_path("runtime.yaml")
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text()) or {}
    except (OSError, yaml.YAMLError):
        return {}
    return data if isinstance(data, dict) else {}


def _coerce_int(config: Dict[str, Any], key: str, default: int) -> int:
    value = config.get(key)
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)) and value >= 0:
        return int(value)
    return default


def _coerce_float(config: Dict[str, Any], key: str, default: float) -> float:
    value = config.get(key)
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)) and value >= 0:
        return float(value)
    return default


def load_runtime_config(raw: Dict[str, Any] | None = None) -> RuntimeConfig:
    """Build a RuntimeConfig from a mapping (defaults to runtime.yaml)."""

    config = _load_runtime_yaml() if raw is None else raw
    values: Dict[str, Any] = {}
    for key, default in _DEFAULTS.items():
        if key.endswith("_seconds"):
            values[key] = _coerce_float(config, key, float(default))
        else:
            values[key] = _coerce_int(config, key, int(default))
    return RuntimeConfig(**values)


runtime_config = load_runtime_config()
