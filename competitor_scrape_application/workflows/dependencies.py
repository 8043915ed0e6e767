from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from ..components.models import ResultRecord
from ..constants import RecordStatus
from ..config import RuntimeConfig, runtime_config, settings
from ..services.storage import KeyValueStore, build_store
from .scrapers import ApifyScraper, BaseScraper

logger = logging.getLogger("competitor_scrape.workflows")


class TextGenerator(Protocol):
    async def generate(
        self,
        prompt: str,
        *,
        model_name: Optional[str] = None,
        temperature: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
    ) -> str: ...


@dataclass
class WorkflowDependencies:
    """Collaborators shared by every use case.

    ``llm`` is None when no Gemini key is configured; use cases then take their
    rule-based fallbacks instead of calling the model.
    """

    store: KeyValueStore
    scraper: BaseScraper
    llm: Optional[TextGenerator] = None
    runtime: RuntimeConfig = field(default_factory=lambda: runtime_config)


def build_default_dependencies() -> WorkflowDependencies:
    runtime = runtime_config
    scraper = ApifyScraper(
        settings.apify_api_token,
        base_url=settings.apify_base_url,
        timeout_seconds=settings.http_timeout_seconds,
        retries=runtime.transport_retries,
        backoff_seconds=runtime.transport_backoff_seconds,
    )
    llm: Optional[TextGenerator] = None
    if settings.gemini_api_key:
        from ..services.gemini_client import GeminiClient

        llm = GeminiClient(settings.gemini_api_key, settings.gemini_model)
    else:
        logger.warning("workflows.llm_disabled reason=GEMINI_API_KEY not set; using rule-based fallbacks")
    return WorkflowDependencies(store=build_store(), scraper=scraper, llm=llm, runtime=runtime)


async def save_record(store: KeyValueStore, record: ResultRecord) -> ResultRecord:
    await store.set(record.key, record.dump())
    logger.info("workflows.record_saved key=%s status=%s", record.key, record.status)
    return record


async def load_json(store: KeyValueStore, key: str) -> Optional[Any]:
    value = await store.get(key)
    if value is None:
        logger.info("workflows.record_missing key=%s", key)
    return value


async def save_failure(store: KeyValueStore, record: ResultRecord, exc: Exception) -> ResultRecord:
    message = getattr(exc, "message", None) or str(exc) or type(exc).__name__
    failed = record.model_copy(update={"status": RecordStatus.FAILED, "error": message})
    logger.error("workflows.record_failed key=%s error=%s", record.key, message)
    return await save_record(store, failed)
