from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import quote

import httpx

from ..exceptions import ConfigurationError, DatasetFetchError, SubmissionError
from ..helpers.transport import request_with_retry
from ..remote_job import JobOutcome, run_remote_job
from .actors import ACTOR_LABELS
from .base import BaseScraper

logger = logging.getLogger("competitor_scrape.scrapers")

DEFAULT_APIFY_BASE_URL = "https://api.apify.com"


def flatten_items(payload: Any) -> List[Any]:
    """Dataset items with one level of nested arrays flattened."""

    if isinstance(payload, dict):
        return [payload]
    if not isinstance(payload, list):
        return []
    items: List[Any] = []
    for entry in payload:
        if isinstance(entry, list):
            items.extend(entry)
        else:
            items.append(entry)
    return items


class ApifyScraper(BaseScraper):
    """Apify actor runs over the v2 REST API: start, poll, read dataset."""

    provider = "apify"

    def __init__(
        self,
        api_token: Optional[str],
        *,
        base_url: str = DEFAULT_APIFY_BASE_URL,
        timeout_seconds: float = 60.0,
        retries: int = 3,
        backoff_seconds: float = 1.0,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_token = api_token
        self.base_url = (base_url or DEFAULT_APIFY_BASE_URL).rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.retries = retries
        self.backoff_seconds = backoff_seconds
        self.sleep = sleep or asyncio.sleep
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        if not self.api_token:
            raise ConfigurationError("APIFY_API_TOKEN environment variable is not set")
        return {"Authorization": f"Bearer {self.api_token}", "Content-Type": "application/json"}

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        headers = self._headers()
        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self.transport) as client:
            return await request_with_retry(
                client,
                method,
                f"{self.base_url}{path}",
                retries=self.retries,
                backoff_seconds=self.backoff_seconds,
                sleep=self.sleep,
                headers=headers,
                **kwargs,
            )

    async def start_run(self, actor: str, run_input: Dict[str, Any]) -> str:
        label = ACTOR_LABELS.get(actor, actor)
        response = await self._request("POST", f"/v2/acts/{quote(actor, safe='~')}/runs", json=run_input)
        if not response.is_success:
            logger.error(
                "apify.start_failed actor=%s status=%s body=%s", actor, response.status_code, response.text[:500]
            )
            raise SubmissionError(
                f"Failed to start {label}: {response.status_code} {response.reason_phrase}",
                status_text=response.reason_phrase,
            )
        try:
            run_id = (response.json().get("data") or {}).get("id")
        except (ValueError, AttributeError):
            run_id = None
        if not isinstance(run_id, str) or not run_id:
            raise SubmissionError(f"Failed to start {label}: response did not include a run id")
        logger.info("apify.run_started actor=%s run_id=%s", actor, run_id)
        return run_id

    async def get_run_status(self, run_id: str) -> Optional[str]:
        response = await self._request("GET", f"/v2/actor-runs/{run_id}")
        if not response.is_success:
            logger.warning(
                "apify.status_failed run_id=%s status=%s reason=%s",
                run_id,
                response.status_code,
                response.reason_phrase,
            )
            return None
        try:
            status = (response.json().get("data") or {}).get("status")
        except (ValueError, AttributeError):
            return None
        return status if isinstance(status, str) else None

    async def fetch_dataset(self, run_id: str) -> List[Any]:
        response = await self._request("GET", f"/v2/actor-runs/{run_id}/dataset/items")
        if not response.is_success:
            raise DatasetFetchError(
                f"Failed to fetch run results: {response.status_code} {response.reason_phrase}",
                status="SUCCEEDED",
                run_id=run_id,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise DatasetFetchError(
                f"Run results were not valid JSON: {exc}", status="SUCCEEDED", run_id=run_id
            ) from exc
        items = flatten_items(payload)
        if not items:
            logger.warning("apify.dataset_empty run_id=%s", run_id)
        return items

    async def run_actor(
        self,
        actor: str,
        run_input: Dict[str, Any],
        *,
        poll_interval: float,
        max_attempts: int,
        label: Optional[str] = None,
    ) -> JobOutcome:
        return await run_remote_job(
            lambda: self.start_run(actor, run_input),
            self.get_run_status,
            self.fetch_dataset,
            poll_interval=poll_interval,
            max_attempts=max_attempts,
            label=label or f"{ACTOR_LABELS.get(actor, actor)} task",
            sleep=self.sleep,
        )
