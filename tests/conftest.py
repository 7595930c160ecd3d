"""
Shared pytest fixtures.

Provides a sample quality model, valid application metadata, results
payload builders and an in-memory transport double whose streams are fed
from queues, so orchestrator tests control exactly when each event arrives.
"""

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio

from assessment_client.assessment.models import AssessmentRequest, StartResponse
from assessment_client.assessment.orchestrator import SessionOrchestrator
from assessment_client.config import AssessmentClientConfig, reset_config
from assessment_client.goals import GoalTree
from assessment_client.streaming.channel import ChannelName

_END = object()


class FakeStream:
    """Async iterator fed from a queue; records whether it was started and released."""

    def __init__(self) -> None:
        self.queue: asyncio.Queue = asyncio.Queue()
        self.started = False
        self.released = 0

    def __aiter__(self) -> "FakeStream":
        return self

    async def __anext__(self) -> str:
        self.started = True
        item = await self.queue.get()
        if item is _END:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item

    async def aclose(self) -> None:
        self.released += 1


class FakeApi:
    """
    Transport double for SessionOrchestrator.

    ``start_assessment`` returns a StartResponse for ``assessment_id`` unless
    ``start_error`` is set; with ``start_gate`` set it waits for the gate
    first. ``event_source`` hands out one FakeStream per (session, channel).
    """

    def __init__(self, assessment_id: str = "assessment-1") -> None:
        self.assessment_id = assessment_id
        self.requests: List[AssessmentRequest] = []
        self.streams: Dict[Tuple[str, ChannelName], FakeStream] = {}
        self.start_error: Optional[BaseException] = None
        self.start_gate: Optional[asyncio.Event] = None
        self.forgotten: List[str] = []

    async def start_assessment(self, request: AssessmentRequest) -> StartResponse:
        self.requests.append(request)
        if self.start_gate is not None:
            await self.start_gate.wait()
        if self.start_error is not None:
            raise self.start_error
        return StartResponse(assessment_id=self.assessment_id)

    def event_source(self, session_id: str, channel: ChannelName) -> FakeStream:
        stream = FakeStream()
        self.streams[(session_id, ChannelName(channel))] = stream
        return stream

    def forget(self, session_id: str) -> None:
        self.forgotten.append(session_id)

    def stream(self, channel: ChannelName, session_id: Optional[str] = None) -> FakeStream:
        return self.streams[(session_id or self.assessment_id, channel)]

    def push(self, channel: ChannelName, payload: Any, session_id: Optional[str] = None) -> None:
        """Queue one raw payload; dicts are JSON-encoded, exceptions are raised by the stream."""
        if isinstance(payload, dict):
            payload = json.dumps(payload)
        self.stream(channel, session_id).queue.put_nowait(payload)

    def progress(self, message: str, session_id: Optional[str] = None) -> None:
        self.push(ChannelName.PROGRESS, {"type": "progress", "message": message}, session_id)

    def results(self, goals: List[Dict[str, Any]], session_id: Optional[str] = None) -> None:
        self.push(ChannelName.RESULTS, {"metadata": {}, "selectedGoals": goals}, session_id)

    def end(self, channel: ChannelName, session_id: Optional[str] = None) -> None:
        self.stream(channel, session_id).queue.put_nowait(_END)


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Yield to the event loop until ``predicate()`` holds."""
    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0)
    await asyncio.wait_for(poll(), timeout)


@pytest.fixture(autouse=True)
def _reset_global_config():
    """Keep the module-level config accessor isolated between tests."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def config() -> AssessmentClientConfig:
    """Default configuration, independent of the environment."""
    return AssessmentClientConfig()


@pytest.fixture
def quality_model() -> Dict[str, Any]:
    """Quality model as returned by GET /quality-model."""
    return {
        "goals": [
            {
                "name": "Performance",
                "description": "How fast the application responds",
                "weight": 0.6,
                "subGoals": [
                    {"name": "LoadTime", "description": "Initial load", "weight": 0.5},
                    {"name": "Interactivity", "description": "Input latency", "weight": 0.5},
                ],
            },
            {
                "name": "Reliability",
                "description": "Error-free operation",
                "weight": 0.4,
                "subGoals": [
                    {
                        "name": "Errors",
                        "weight": 1.0,
                        "subGoals": [{"name": "ConsoleErrors", "weight": 1.0}],
                    },
                ],
            },
        ]
    }


@pytest.fixture
def goal_tree(quality_model) -> GoalTree:
    return GoalTree.from_quality_model(quality_model)


@pytest.fixture
def selected_tree(goal_tree) -> GoalTree:
    """Tree with the Performance subtree selected."""
    goal_tree.toggle_selection(goal_tree.find("Performance"))
    return goal_tree


@pytest.fixture
def metadata() -> Dict[str, str]:
    return {
        "name": "shop",
        "type": "web",
        "technology": "angular",
        "path": "/srv/shop",
        "url": "http://localhost:4200",
    }


@pytest.fixture
def goal_entry() -> Callable[..., Dict[str, Any]]:
    """Build one results-channel goal entry."""

    def build(name: str, score: float = 0.5, timestamp: str = "2024-05-01T10:00:00Z") -> Dict[str, Any]:
        return {
            "name": name,
            "description": f"{name} goal",
            "weight": 0.5,
            "metrics": [
                {
                    "name": "Largest Contentful Paint",
                    "acronym": "LCP",
                    "description": "Time until the largest element is painted",
                    "value": 1200,
                    "unit": "ms",
                    "history": [{"timestamp": timestamp, "value": 1200}],
                }
            ],
            "assessments": [
                {
                    "timestamp": timestamp,
                    "globalScore": score,
                    "details": [{"metric": "LCP", "value": 0.4, "weight": 1.0, "timestamp": timestamp}],
                }
            ],
        }

    return build


@pytest.fixture
def fake_api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def settle():
    """``await settle(predicate)`` waits for pump tasks to catch up."""
    return wait_until


@pytest_asyncio.fixture
async def orchestrator(fake_api, config):
    """Orchestrator over the fake transport, torn down after the test."""
    updates: List[Any] = []
    orch = SessionOrchestrator(fake_api, config, observer=updates.append)
    orch.updates = updates
    yield orch
    await orch.aclose()
