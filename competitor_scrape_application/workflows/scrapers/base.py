from __future__ import annotations

from typing import Any, Dict, List, Optional

from ..remote_job import JobOutcome


class BaseScraper:
    """Common interface for provider-specific scrapers."""

    provider: str = "unknown"

    async def start_run(self, actor: str, run_input: Dict[str, Any]) -> str:
        raise NotImplementedError("start_run must be implemented by scraper classes")

    async def get_run_status(self, run_id: str) -> Optional[str]:
        raise NotImplementedError("get_run_status must be implemented by scraper classes")

    async def fetch_dataset(self, run_id: str) -> List[Any]:
        raise NotImplementedError("fetch_dataset must be implemented by scraper classes")

    async def run_actor(
        self,
        actor: str,
        run_input: Dict[str, Any],
        *,
        poll_interval: float,
        max_attempts: int,
        label: Optional[str] = None,
    ) -> JobOutcome:
        raise NotImplementedError("run_actor must be implemented by scraper classes")
