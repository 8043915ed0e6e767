from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import httpx

from ..exceptions import TransportError

logger = logging.getLogger("competitor_scrape.scrapers")

Sleep = Callable[[float], Awaitable[Any]]


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    retries: int = 3,
    backoff_seconds: float = 1.0,
    sleep: Optional[Sleep] = None,
    **kwargs: Any,
) -> httpx.Response:
    """Send one request, retrying only connection-level failures.

    HTTP error statuses are returned to the caller untouched. Other request
    errors (undecodable bodies, redirect loops) raise TransportError at once.
    The delay doubles after each failed attempt; once the retry budget is spent
    a TransportError is raised.
    """

    sleeper = sleep or asyncio.sleep
    delay = backoff_seconds
    remaining = max(retries, 0)
    while True:
        try:
            return await client.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            if remaining <= 0:
                raise TransportError(f"{method} {_redact(url)} failed: {exc}") from exc
            logger.warning(
                "transport.retry method=%s url=%s delay=%.2fs remaining=%s error=%s",
                method,
                _redact(url),
                delay,
                remaining,
                exc,
            )
            await sleeper(delay)
            delay *= 2
            remaining -= 1
        except httpx.RequestError as exc:
            # Decoding and redirect failures repeat on retry.
            raise TransportError(f"{method} {_redact(url)} failed: {exc}") from exc


def _redact(url: str) -> str:
    return url.split("?", 1)[0]
