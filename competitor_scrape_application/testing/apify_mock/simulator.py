from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import httpx

ItemsFactory = Callable[[Dict[str, Any]], List[Any]]


class MockApifyScenario(str, Enum):
    """Enumerate common Apify run behaviours for tests."""

    SUCCESS = "success"
    START_FAILS = "start_fails"
    RUN_FAILS = "run_fails"
    NEVER_FINISHES = "never_finishes"
    DATASET_FAILS = "dataset_fails"
    STATUS_UNAVAILABLE = "status_unavailable"


@dataclass
class ActorScript:
    """Scripted behaviour for every run of one actor.

    ``statuses`` is consumed one entry per status poll and the last entry
    repeats. A ``None`` entry makes the status endpoint answer 500.
    """

    statuses: List[Optional[str]] = field(default_factory=lambda: ["SUCCEEDED"])
    items: Union[List[Any], ItemsFactory] = field(default_factory=list)
    start_status_code: int = 201
    dataset_status_code: int = 200
    connect_errors: int = 0

    def items_for(self, run_input: Dict[str, Any]) -> List[Any]:
        if callable(self.items):
            return self.items(run_input)
        return list(self.items)


@dataclass
class MockActorRun:
    run_id: str
    actor: str
    run_input: Dict[str, Any]
    script: ActorScript
    polls: int = 0

    def next_status(self) -> Optional[str]:
        statuses = self.script.statuses or ["SUCCEEDED"]
        index = min(self.polls, len(statuses) - 1)
        self.polls += 1
        return statuses[index]


class MockApifyService:
    """In-memory stand-in for the Apify v2 REST API served through httpx.MockTransport."""

    def __init__(self) -> None:
        self._scripts: Dict[str, List[ActorScript]] = {}
        self.runs: Dict[str, MockActorRun] = {}
        self.requests: List[httpx.Request] = []

    def script(
        self,
        actor: str,
        *,
        statuses: Sequence[Optional[str]] = ("SUCCEEDED",),
        items: Union[List[Any], ItemsFactory, None] = None,
        start_status_code: int = 201,
        dataset_status_code: int = 200,
        connect_errors: int = 0,
    ) -> ActorScript:
        """Queue a script for the next run of ``actor``; the last queued script is reused."""

        script = ActorScript(
            statuses=list(statuses),
            items=items if items is not None else [],
            start_status_code=start_status_code,
            dataset_status_code=dataset_status_code,
            connect_errors=connect_errors,
        )
        self._scripts.setdefault(actor, []).append(script)
        return script

    def scenario(
        self,
        actor: str,
        scenario: MockApifyScenario,
        *,
        items: Union[List[Any], ItemsFactory, None] = None,
        attempts: int = 3,
    ) -> ActorScript:
        if scenario is MockApifyScenario.START_FAILS:
            return self.script(actor, start_status_code=500)
        if scenario is MockApifyScenario.RUN_FAILS:
            return self.script(actor, statuses=["RUNNING", "FAILED"])
        if scenario is MockApifyScenario.NEVER_FINISHES:
            return self.script(actor, statuses=["RUNNING"])
        if scenario is MockApifyScenario.DATASET_FAILS:
            return self.script(actor, statuses=["SUCCEEDED"], dataset_status_code=502)
        if scenario is MockApifyScenario.STATUS_UNAVAILABLE:
            return self.script(actor, statuses=[None] * attempts + ["SUCCEEDED"], items=items)
        return self.script(actor, statuses=["RUNNING", "SUCCEEDED"], items=items)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)

    def runs_for(self, actor: str) -> List[MockActorRun]:
        return [run for run in self.runs.values() if run.actor == actor]

    def _next_script(self, actor: str) -> Optional[ActorScript]:
        queue = self._scripts.get(actor)
        if not queue:
            return None
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        parts = [part for part in request.url.path.split("/") if part]

        if request.method == "POST" and len(parts) == 4 and parts[:2] == ["v2", "acts"] and parts[3] == "runs":
            return self._start(request, parts[2])
        if request.method == "GET" and len(parts) == 3 and parts[:2] == ["v2", "actor-runs"]:
            return self._status(request, parts[2])
        if request.method == "GET" and len(parts) == 5 and parts[3:] == ["dataset", "items"]:
            return self._dataset(request, parts[2])
        return httpx.Response(404, json={"error": {"message": "route not found"}}, request=request)

    def _start(self, request: httpx.Request, actor: str) -> httpx.Response:
        script = self._next_script(actor)
        if script is None:
            return httpx.Response(404, json={"error": {"message": f"unknown actor {actor}"}}, request=request)
        if script.connect_errors > 0:
            script.connect_errors -= 1
            raise httpx.ConnectError("mock connection refused", request=request)
        if script.start_status_code >= 400:
            return httpx.Response(
                script.start_status_code, json={"error": {"message": "start refused"}}, request=request
            )
        run_input = json.loads(request.content or b"{}")
        run = MockActorRun(
            run_id=f"run-{uuid.uuid4().hex[:10]}",
            actor=actor,
            run_input=run_input,
            script=script,
        )
        self.runs[run.run_id] = run
        return httpx.Response(
            script.start_status_code,
            json={"data": {"id": run.run_id, "actId": actor, "status": "READY"}},
            request=request,
        )

    def _status(self, request: httpx.Request, run_id: str) -> httpx.Response:
        run = self.runs.get(run_id)
        if run is None:
            return httpx.Response(404, json={"error": {"message": "run not found"}}, request=request)
        status = run.next_status()
        if status is None:
            return httpx.Response(500, json={"error": {"message": "status unavailable"}}, request=request)
        return httpx.Response(200, json={"data": {"id": run_id, "status": status}}, request=request)

    def _dataset(self, request: httpx.Request, run_id: str) -> httpx.Response:
        run = self.runs.get(run_id)
        if run is None:
            return httpx.Response(404, json={"error": {"message": "run not found"}}, request=request)
        if run.script.dataset_status_code >= 400:
            return httpx.Response(
                run.script.dataset_status_code, json={"error": {"message": "dataset unavailable"}}, request=request
            )
        return httpx.Response(200, json=run.script.items_for(run.run_input), request=request)
