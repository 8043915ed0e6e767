from __future__ import annotations

from typing import List, Optional

import pytest

from competitor_scrape_application.constants import FallbackKind, OnFailure, RecordStatus, RunStatus
from competitor_scrape_application.workflows.exceptions import (
    DatasetFetchError,
    PollTimeoutError,
    RemoteJobFailedError,
    SubmissionError,
    TransportError,
)
from competitor_scrape_application.workflows.remote_job import (
    Completed,
    Failed,
    TimedOut,
    outcome_error,
    parse_run_status,
    record_status_for,
    resolve_outcome,
    run_remote_job,
)


class ScriptedRun:
    """Fake submit/status/fetch trio that logs the order of calls."""

    def __init__(self, statuses: List[Optional[str]], payload=None) -> None:
        self.statuses = list(statuses)
        self.payload = payload if payload is not None else [{"ok": True}]
        self.events: List[str] = []

    async def submit(self) -> str:
        self.events.append("submit")
        return "run-1"

    async def check(self, run_id: str) -> Optional[str]:
        self.events.append("check")
        return self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]

    async def fetch(self, run_id: str):
        self.events.append("fetch")
        return self.payload

    async def sleep(self, delay: float) -> None:
        self.events.append(f"sleep:{delay}")


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("SUCCEEDED", RunStatus.SUCCEEDED),
        ("succeeded", RunStatus.SUCCEEDED),
        ("FAILED", RunStatus.FAILED),
        ("TIMED-OUT", RunStatus.TIMED_OUT),
        ("ABORTED", RunStatus.ABORTED),
        ("READY", RunStatus.RUNNING),
        ("TIMING-OUT", RunStatus.RUNNING),
        ("ABORTING", RunStatus.RUNNING),
        ("SOMETHING-NEW", RunStatus.RUNNING),
        (None, RunStatus.RUNNING),
    ],
)
def test_parse_run_status(raw, expected):
    assert parse_run_status(raw) is expected


def test_record_status_mapping_is_explicit():
    assert record_status_for(RunStatus.RUNNING) is RecordStatus.RUNNING
    assert record_status_for(RunStatus.SUCCEEDED) is RecordStatus.COMPLETED
    for status in (RunStatus.FAILED, RunStatus.TIMED_OUT, RunStatus.ABORTED):
        assert record_status_for(status) is RecordStatus.FAILED


@pytest.mark.asyncio
async def test_each_attempt_sleeps_then_checks_once():
    run = ScriptedRun(["RUNNING", "RUNNING", "SUCCEEDED"])

    outcome = await run_remote_job(
        run.submit, run.check, run.fetch, poll_interval=3, max_attempts=5, sleep=run.sleep
    )

    assert isinstance(outcome, Completed)
    assert outcome.payload == [{"ok": True}]
    assert run.events == [
        "submit",
        "sleep:3",
        "check",
        "sleep:3",
        "check",
        "sleep:3",
        "check",
        "fetch",
    ]
    assert outcome.job.status is RunStatus.SUCCEEDED
    assert outcome.job.attempts_made == 3


@pytest.mark.asyncio
async def test_unavailable_status_consumes_an_attempt():
    run = ScriptedRun([None, None, "SUCCEEDED"])

    outcome = await run_remote_job(run.submit, run.check, run.fetch, poll_interval=1, max_attempts=2, sleep=run.sleep)

    assert isinstance(outcome, TimedOut)
    assert outcome.attempts == 2
    assert run.events.count("check") == 2
    assert "fetch" not in run.events


@pytest.mark.asyncio
async def test_budget_exhaustion_times_out():
    run = ScriptedRun(["RUNNING"])

    outcome = await run_remote_job(
        run.submit, run.check, run.fetch, poll_interval=1, max_attempts=5, label="Cheerio Scraper task", sleep=run.sleep
    )

    assert isinstance(outcome, TimedOut)
    assert outcome.reason == "Cheerio Scraper task did not complete after 5 attempts"
    assert outcome.job.status is RunStatus.RUNNING


@pytest.mark.asyncio
@pytest.mark.parametrize("terminal", ["FAILED", "TIMED-OUT", "ABORTED"])
async def test_terminal_failures_stop_polling(terminal):
    run = ScriptedRun(["RUNNING", terminal, "SUCCEEDED"])

    outcome = await run_remote_job(
        run.submit, run.check, run.fetch, poll_interval=1, max_attempts=5, label="job", sleep=run.sleep
    )

    assert isinstance(outcome, Failed)
    assert outcome.status is parse_run_status(terminal)
    assert outcome.reason == f"job failed with status: {terminal}"
    assert run.events.count("check") == 2


@pytest.mark.asyncio
async def test_submission_errors_become_failed_outcomes():
    async def submit() -> str:
        raise SubmissionError("Failed to start Cheerio Scraper: 402 Payment Required")

    run = ScriptedRun(["SUCCEEDED"])
    outcome = await run_remote_job(submit, run.check, run.fetch, poll_interval=1, max_attempts=3, sleep=run.sleep)

    assert isinstance(outcome, Failed)
    assert isinstance(outcome.error, SubmissionError)
    assert run.events == []


@pytest.mark.asyncio
async def test_dataset_and_transport_errors_become_failed_outcomes():
    run = ScriptedRun(["SUCCEEDED"])

    async def fetch(run_id: str):
        raise DatasetFetchError("Failed to fetch run results: 502 Bad Gateway", status="SUCCEEDED", run_id=run_id)

    outcome = await run_remote_job(run.submit, run.check, fetch, poll_interval=1, max_attempts=3, sleep=run.sleep)
    assert isinstance(outcome, Failed)
    assert outcome.status is RunStatus.SUCCEEDED
    assert isinstance(outcome.error, DatasetFetchError)

    async def check(run_id: str):
        raise TransportError("GET https://api.apify.com/v2/actor-runs/run-1 failed")

    outcome = await run_remote_job(run.submit, check, run.fetch, poll_interval=1, max_attempts=3, sleep=run.sleep)
    assert isinstance(outcome.error, TransportError)


def test_outcome_error_maps_each_outcome():
    timeout_error = outcome_error(TimedOut(attempts=5, label="HTTP Request task"))
    assert isinstance(timeout_error, PollTimeoutError)
    assert timeout_error.attempts == 5
    assert "did not complete" in timeout_error.message

    failed_error = outcome_error(Failed(reason="task failed with status: ABORTED", status=RunStatus.ABORTED))
    assert isinstance(failed_error, RemoteJobFailedError)
    assert failed_error.status == "ABORTED"

    original = SubmissionError("refused")
    assert outcome_error(Failed(reason="refused", error=original)) is original


def test_resolve_outcome_policies():
    completed = resolve_outcome(Completed(payload=[1]), OnFailure.PROPAGATE)
    assert completed.payload == [1]
    assert completed.fallback is None

    timed_out = TimedOut(attempts=3)
    with pytest.raises(PollTimeoutError):
        resolve_outcome(timed_out, OnFailure.PROPAGATE)

    mocked = resolve_outcome(timed_out, OnFailure.SUBSTITUTE_MOCK, mock=lambda: ["mock"])
    assert mocked.payload == ["mock"]
    assert mocked.fallback is FallbackKind.MOCK
    assert "did not complete" in mocked.reason

    raw = resolve_outcome(Failed(reason="boom"), OnFailure.SUBSTITUTE_RAW, raw=[{"name": "raw"}])
    assert raw.payload == [{"name": "raw"}]
    assert raw.fallback is FallbackKind.RAW

    with pytest.raises(ValueError):
        resolve_outcome(timed_out, OnFailure.SUBSTITUTE_MOCK)
