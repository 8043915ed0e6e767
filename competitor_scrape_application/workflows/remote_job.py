"""Poll-until-complete orchestration for asynchronous remote scraping runs.

One run is submitted, its status is polled at a fixed interval until a terminal
state or the attempt budget is exhausted, and the dataset is fetched once on
success. Callers pick what a non-success means through ``OnFailure``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from ..constants import FallbackKind, OnFailure, RECORD_STATUS_BY_RUN_STATUS, RecordStatus, RunStatus
from ..services import telemetry
from .exceptions import (
    PollTimeoutError,
    RemoteJobFailedError,
    TransportError,
    WorkflowError,
)

logger = logging.getLogger("competitor_scrape.remote_job")

Sleep = Callable[[float], Awaitable[Any]]
Submit = Callable[[], Awaitable[str]]
CheckStatus = Callable[[str], Awaitable[Optional[Union[RunStatus, str]]]]
FetchResult = Callable[[str], Awaitable[Any]]

_TERMINAL_ALIASES = {
    "SUCCEEDED": RunStatus.SUCCEEDED,
    "FAILED": RunStatus.FAILED,
    "TIMED-OUT": RunStatus.TIMED_OUT,
    "TIMED_OUT": RunStatus.TIMED_OUT,
    "ABORTED": RunStatus.ABORTED,
}


def parse_run_status(value: Any) -> RunStatus:
    """Collapse the remote vocabulary; anything non-terminal reads as RUNNING."""

    if isinstance(value, RunStatus):
        return value
    if not isinstance(value, str):
        return RunStatus.RUNNING
    return _TERMINAL_ALIASES.get(value.strip().upper(), RunStatus.RUNNING)


def record_status_for(status: RunStatus) -> RecordStatus:
    return RECORD_STATUS_BY_RUN_STATUS[status]


@dataclass
class Job:
    run_id: str
    status: RunStatus = RunStatus.RUNNING
    attempts_made: int = 0
    attempts_max: int = 0


@dataclass(frozen=True)
class Completed:
    payload: Any
    job: Optional[Job] = None


@dataclass(frozen=True)
class Failed:
    reason: str
    status: Optional[RunStatus] = None
    job: Optional[Job] = None
    error: Optional[WorkflowError] = None


@dataclass(frozen=True)
class TimedOut:
    attempts: int
    label: str = "remote job"
    job: Optional[Job] = None

    @property
    def reason(self) -> str:
        return f"{self.label} did not complete after {self.attempts} attempts"


JobOutcome = Union[Completed, Failed, TimedOut]


async def run_remote_job(
    submit: Submit,
    check_status: CheckStatus,
    fetch_result: FetchResult,
    *,
    poll_interval: float,
    max_attempts: int,
    label: str = "remote job",
    sleep: Optional[Sleep] = None,
) -> JobOutcome:
    """Submit one run, poll it to a terminal state, and fetch its result.

    Each attempt waits ``poll_interval`` and then issues exactly one status
    check. A check returning None (non-success response) still consumes an
    attempt. Submission and dataset errors come back as ``Failed`` carrying the
    original exception; nothing is raised for remote-side outcomes.
    """

    sleeper = sleep or asyncio.sleep

    try:
        run_id = await submit()
    except WorkflowError as exc:
        logger.error("remote_job.submit_failed label=%s error=%s", label, exc)
        return _report_failure(Failed(reason=str(exc), error=exc), label)

    job = Job(run_id=run_id, attempts_max=max_attempts)
    logger.info("remote_job.started label=%s run_id=%s max_attempts=%s", label, run_id, max_attempts)

    while job.attempts_made < max_attempts:
        job.attempts_made += 1
        await sleeper(poll_interval)

        try:
            raw_status = await check_status(run_id)
        except TransportError as exc:
            logger.error("remote_job.status_failed label=%s run_id=%s error=%s", label, run_id, exc)
            return _report_failure(Failed(reason=str(exc), job=job, error=exc), label)

        if raw_status is None:
            logger.warning(
                "remote_job.status_unavailable label=%s run_id=%s attempt=%s/%s",
                label,
                run_id,
                job.attempts_made,
                max_attempts,
            )
            continue

        job.status = parse_run_status(raw_status)
        logger.debug(
            "remote_job.poll label=%s run_id=%s attempt=%s/%s status=%s",
            label,
            run_id,
            job.attempts_made,
            max_attempts,
            job.status,
        )

        if job.status is RunStatus.SUCCEEDED:
            try:
                payload = await fetch_result(run_id)
            except (RemoteJobFailedError, TransportError) as exc:
                logger.error("remote_job.fetch_failed label=%s run_id=%s error=%s", label, run_id, exc)
                return _report_failure(Failed(reason=str(exc), status=job.status, job=job, error=exc), label)
            logger.info(
                "remote_job.succeeded label=%s run_id=%s attempts=%s", label, run_id, job.attempts_made
            )
            return Completed(payload=payload, job=job)

        if job.status.is_terminal:
            reason = f"{label} failed with status: {job.status}"
            return _report_failure(Failed(reason=reason, status=job.status, job=job), label)

    timed_out = TimedOut(attempts=job.attempts_made, label=label, job=job)
    logger.warning("remote_job.timed_out label=%s run_id=%s attempts=%s", label, run_id, job.attempts_made)
    telemetry.emit_event(
        "remote_job.timed_out", level="warn", label=label, run_id=run_id, attempts=job.attempts_made
    )
    return timed_out


def _report_failure(failed: Failed, label: str) -> Failed:
    logger.warning("remote_job.failed label=%s status=%s reason=%s", label, failed.status, failed.reason)
    telemetry.emit_event(
        "remote_job.failed",
        level="error",
        label=label,
        run_id=failed.job.run_id if failed.job else None,
        status=str(failed.status) if failed.status else None,
        reason=failed.reason,
    )
    return failed


def outcome_error(outcome: Union[Failed, TimedOut]) -> WorkflowError:
    """The exception that represents a non-success outcome."""

    if isinstance(outcome, TimedOut):
        return PollTimeoutError(
            outcome.reason,
            attempts=outcome.attempts,
            run_id=outcome.job.run_id if outcome.job else None,
        )
    if outcome.error is not None:
        return outcome.error
    return RemoteJobFailedError(
        outcome.reason,
        status=str(outcome.status) if outcome.status else None,
        run_id=outcome.job.run_id if outcome.job else None,
    )


@dataclass(frozen=True)
class Resolution:
    """Payload chosen after applying a failure policy."""

    payload: Any
    fallback: Optional[FallbackKind] = None
    reason: Optional[str] = None


def resolve_outcome(
    outcome: JobOutcome,
    on_failure: OnFailure,
    *,
    mock: Optional[Callable[[], Any]] = None,
    raw: Any = None,
) -> Resolution:
    """Apply the failure policy to an outcome.

    PROPAGATE raises the outcome's error. SUBSTITUTE_MOCK calls ``mock`` and
    SUBSTITUTE_RAW returns ``raw``; both record which substitution happened.
    """

    if isinstance(outcome, Completed):
        return Resolution(payload=outcome.payload)

    error = outcome_error(outcome)
    if on_failure is OnFailure.PROPAGATE:
        raise error

    if on_failure is OnFailure.SUBSTITUTE_MOCK:
        if mock is None:
            raise ValueError("SUBSTITUTE_MOCK requires a mock factory")
        kind = FallbackKind.MOCK
        payload = mock()
    else:
        kind = FallbackKind.RAW
        payload = raw

    logger.info("workflow.fallback kind=%s reason=%s", kind, error.message)
    telemetry.emit_event("workflow.fallback", level="warn", kind=str(kind), reason=error.message)
    return Resolution(payload=payload, fallback=kind, reason=error.message)
