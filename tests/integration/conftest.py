"""
Pytest configuration for integration tests.

Provides an in-process assessment server behind httpx.MockTransport, so the
real HTTP client, SSE decoding, channels and orchestrator run end to end.
"""

import json
from typing import Any, Dict, List, Optional

import httpx
import pytest

from assessment_client.config import ApiConfig, AssessmentClientConfig

BASE_URL = "http://testserver/api"


def sse_body(payloads: List[Any]) -> bytes:
    """Encode payloads as an SSE body with a keep-alive comment up front."""
    chunks = [": keep-alive\n\n"]
    for payload in payloads:
        data = payload if isinstance(payload, str) else json.dumps(payload)
        chunks.append(f"data: {data}\n\n")
    return "".join(chunks).encode("utf-8")


class MockAssessmentServer:
    """
    Minimal assessment server.

    Serves the quality model, accepts start requests and replays fixed
    progress and results streams for the started assessment.
    """

    def __init__(self, quality_model: Dict[str, Any], assessment_id: str = "srv-1"):
        self.quality_model = quality_model
        self.assessment_id = assessment_id
        self.progress_events: List[Any] = []
        self.results_events: List[Any] = []
        self.start_status = 200
        self.start_body: Optional[Dict[str, Any]] = None
        self.announce_endpoints = True
        self.failing_paths: Dict[str, int] = {}
        self.start_requests: List[Dict[str, Any]] = []
        self.requests: List[httpx.Request] = []

    @property
    def progress_path(self) -> str:
        if self.announce_endpoints:
            return f"/api/streams/{self.assessment_id}/progress"
        return f"/api/progress/{self.assessment_id}"

    @property
    def results_path(self) -> str:
        if self.announce_endpoints:
            return f"/api/streams/{self.assessment_id}/results"
        return f"/api/assessments/{self.assessment_id}/stream"

    def stream_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.headers.get("accept") == "text/event-stream"]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path in self.failing_paths:
            return httpx.Response(self.failing_paths[path], text="unavailable")

        if request.method == "GET" and path == "/api/quality-model":
            return httpx.Response(200, json=self.quality_model)

        if request.method == "POST" and path == "/api/assessments":
            self.start_requests.append(json.loads(request.content))
            if self.start_status != 200:
                return httpx.Response(self.start_status, text="busy")
            if self.start_body is not None:
                return httpx.Response(200, json=self.start_body)
            body: Dict[str, Any] = {"assessmentId": self.assessment_id}
            if self.announce_endpoints:
                # One relative, one absolute
                body["progressEndpoint"] = self.progress_path
                body["assessmentEndpoint"] = f"http://testserver{self.results_path}"
            return httpx.Response(200, json=body)

        if request.method == "GET" and path == self.progress_path:
            return httpx.Response(
                200,
                headers={"content-type": "text/event-stream"},
                content=sse_body(self.progress_events),
            )

        if request.method == "GET" and path == self.results_path:
            return httpx.Response(
                200,
                headers={"content-type": "text/event-stream"},
                content=sse_body(self.results_events),
            )

        return httpx.Response(404, json={"error": "not found"})


@pytest.fixture
def server(quality_model) -> MockAssessmentServer:
    return MockAssessmentServer(quality_model)


@pytest.fixture
def transport(server) -> httpx.MockTransport:
    return httpx.MockTransport(server)


@pytest.fixture
def client_config() -> AssessmentClientConfig:
    return AssessmentClientConfig(api=ApiConfig(base_url=BASE_URL))
