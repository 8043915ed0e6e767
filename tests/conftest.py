from __future__ import annotations

import os
from typing import Any, Dict, List, Optional, Sequence, Union

import pytest


def _isolate_env() -> None:
    # Settings are read at import time; keep tests off the network and the disk.
    os.environ.setdefault("STORAGE_BACKEND", "memory")
    os.environ.setdefault("POSTHOG_DISABLED", "true")
    os.environ.setdefault("APIFY_BASE_URL", "https://api.apify.test")


_isolate_env()

from competitor_scrape_application.config import load_runtime_config  # noqa: E402
from competitor_scrape_application.services.storage import MemoryStore  # noqa: E402
from competitor_scrape_application.testing.apify_mock import MockApifyService  # noqa: E402
from competitor_scrape_application.workflows.dependencies import WorkflowDependencies  # noqa: E402
from competitor_scrape_application.workflows.exceptions import GenerationError  # noqa: E402
from competitor_scrape_application.workflows.scrapers import ApifyScraper  # noqa: E402

FAST_RUNTIME: Dict[str, Any] = {
    "website_scrape_poll_seconds": 1,
    "website_scrape_max_attempts": 3,
    "http_fallback_poll_seconds": 1,
    "http_fallback_max_attempts": 2,
    "product_scrape_poll_seconds": 1,
    "product_scrape_max_attempts": 5,
    "keyword_scrape_poll_seconds": 1,
    "keyword_scrape_max_attempts": 3,
    "tracking_scrape_poll_seconds": 1,
    "tracking_scrape_max_attempts": 3,
    "transport_retries": 1,
    "transport_backoff_seconds": 0,
    "llm_content_sample_chars": 500,
}


class RecordingSleep:
    """Zero-delay stand-in for asyncio.sleep that remembers every requested delay."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeLLM:
    """Scripted text generator: returns (or raises) the queued responses in order."""

    def __init__(self, responses: Optional[Sequence[Union[str, Exception]]] = None) -> None:
        self.responses: List[Union[str, Exception]] = list(responses or [])
        self.calls: List[Dict[str, Any]] = []

    async def generate(
        self,
        prompt: str,
        *,
        model_name: Optional[str] = None,
        temperature: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
    ) -> str:
        self.calls.append(
            {
                "prompt": prompt,
                "model_name": model_name,
                "temperature": temperature,
                "max_output_tokens": max_output_tokens,
            }
        )
        if not self.responses:
            raise GenerationError("no scripted response left")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def no_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def apify() -> MockApifyService:
    return MockApifyService()


@pytest.fixture
def scraper(apify: MockApifyService, no_sleep: RecordingSleep) -> ApifyScraper:
    return ApifyScraper(
        "apify-test-token",
        base_url="https://api.apify.test",
        retries=1,
        backoff_seconds=0,
        sleep=no_sleep,
        transport=apify.transport(),
    )


@pytest.fixture
def fast_runtime():
    return load_runtime_config(dict(FAST_RUNTIME))


@pytest.fixture
def make_deps(store: MemoryStore, scraper: ApifyScraper, fast_runtime):
    def _make(llm: Optional[FakeLLM] = None) -> WorkflowDependencies:
        return WorkflowDependencies(store=store, scraper=scraper, llm=llm, runtime=fast_runtime)

    return _make


@pytest.fixture
def deps(make_deps) -> WorkflowDependencies:
    return make_deps(None)


@pytest.fixture
def make_llm():
    return FakeLLM
