"""
Integration tests for a full assessment session over HTTP.

Runs AssessmentApiClient, SSE decoding, StreamChannel and SessionOrchestrator
against the mock assessment server.
"""

import asyncio

import httpx
import pytest

from assessment_client.api import AssessmentApiClient
from assessment_client.assessment.models import AppMetadata, AssessmentRequest, SessionPhase
from assessment_client.assessment.orchestrator import SessionOrchestrator
from assessment_client.streaming.channel import ChannelName
from assessment_client.utils.exceptions import StartRequestError

pytestmark = pytest.mark.integration


@pytest.fixture
def api(client_config, transport):
    return AssessmentApiClient(client_config.api, transport=transport)


class TestApiClient:
    """Tests for the HTTP transport."""

    @pytest.mark.asyncio
    async def test_fetch_goal_tree(self, api):
        """Test the quality model becomes a goal tree."""
        async with api:
            tree = await api.fetch_goal_tree()
        assert [n.name for n in tree.roots()] == ["Performance", "Reliability"]

    @pytest.mark.asyncio
    async def test_fetch_quality_model_error(self, api, server):
        """Test a failing quality model endpoint raises an HTTP error."""
        server.failing_paths["/api/quality-model"] = 500
        async with api:
            with pytest.raises(httpx.HTTPStatusError):
                await api.fetch_quality_model()

    @pytest.mark.asyncio
    async def test_start_rejected(self, api, server, metadata):
        """Test non-success status becomes StartRequestError."""
        server.start_status = 503
        request = AssessmentRequest(metadata=AppMetadata(**metadata), selected_goals=["Performance"])

        async with api:
            with pytest.raises(StartRequestError) as exc_info:
                await api.start_assessment(request)

        assert exc_info.value.details["status_code"] == 503
        assert exc_info.value.details["body"] == "busy"

    @pytest.mark.asyncio
    async def test_start_unreadable_response(self, api, server, metadata):
        """Test a response without assessment id becomes StartRequestError."""
        server.start_body = {"status": "ok"}
        request = AssessmentRequest(metadata=AppMetadata(**metadata), selected_goals=["Performance"])

        async with api:
            with pytest.raises(StartRequestError):
                await api.start_assessment(request)

    @pytest.mark.asyncio
    async def test_stream_urls(self, api, server, metadata):
        """Test announced endpoints win over the configured templates."""
        assert api.stream_url("other", ChannelName.PROGRESS) == "http://testserver/api/progress/other"
        assert api.stream_url("other", "results") == "http://testserver/api/assessments/other/stream"

        request = AssessmentRequest(metadata=AppMetadata(**metadata), selected_goals=["Performance"])
        async with api:
            await api.start_assessment(request)

        assert api.stream_url("srv-1", ChannelName.PROGRESS) == "http://testserver/api/streams/srv-1/progress"
        assert api.stream_url("srv-1", ChannelName.RESULTS) == "http://testserver/api/streams/srv-1/results"

        api.forget("srv-1")
        assert api.stream_url("srv-1", ChannelName.PROGRESS) == "http://testserver/api/progress/srv-1"

    @pytest.mark.asyncio
    async def test_event_source_yields_data(self, api, server):
        """Test the event source yields each SSE data payload."""
        server.announce_endpoints = False
        server.progress_events = [{"type": "progress", "message": "one"}, "plain text"]

        async with api:
            payloads = [p async for p in api.event_source("srv-1", ChannelName.PROGRESS)]

        assert payloads == ['{"type": "progress", "message": "one"}', "plain text"]


class TestSessionFlow:
    """End-to-end session tests."""

    @pytest.mark.asyncio
    async def test_full_session(self, api, server, client_config, metadata, goal_entry):
        """Test start, progress, completion and results over HTTP."""
        server.progress_events = [
            {"type": "progress", "message": "Cloning repository"},
            {"type": "progress", "message": "Instrumenting sources"},
            {"type": "progress", "message": "injection completed"},
        ]
        server.results_events = [
            {"metadata": {"_name": "shop"}, "selectedGoals": [goal_entry("LoadTime", 0.4)]},
            {"metadata": {"_name": "shop"}, "selectedGoals": [goal_entry("LoadTime", 0.6), goal_entry("Interactivity", 0.7)]},
        ]

        async with api:
            tree = await api.fetch_goal_tree()
            tree.toggle_selection(tree.find("Performance"))

            async with SessionOrchestrator(api, client_config) as orchestrator:
                response = await orchestrator.start(metadata, tree)
                await asyncio.wait_for(orchestrator.wait_closed(), 2.0)
                state = orchestrator.snapshot()

        assert response.assessment_id == "srv-1"
        assert server.start_requests == [
            {"metadata": metadata, "selectedGoals": ["Performance", "LoadTime", "Interactivity"]}
        ]
        assert state.phase == SessionPhase.COMPLETED
        assert state.application_url == metadata["url"]
        assert state.progress.snapshot() == ("Cloning repository", "Instrumenting sources", "injection completed")
        assert state.results["LoadTime"].latest_score() == 0.6
        assert state.results["Interactivity"].latest_score() == 0.7
        assert {r.url.path for r in server.stream_requests()} == {
            "/api/streams/srv-1/progress",
            "/api/streams/srv-1/results",
        }

    @pytest.mark.asyncio
    async def test_default_stream_paths(self, api, server, client_config, metadata, selected_tree):
        """Test streams use the configured paths when the server announces none."""
        server.announce_endpoints = False
        server.progress_events = [{"type": "progress", "message": "started"}]

        async with api:
            async with SessionOrchestrator(api, client_config) as orchestrator:
                await orchestrator.start(metadata, selected_tree)
                await asyncio.wait_for(orchestrator.wait_closed(), 2.0)

        assert {r.url.path for r in server.stream_requests()} == {
            "/api/progress/srv-1",
            "/api/assessments/srv-1/stream",
        }

    @pytest.mark.asyncio
    async def test_start_failure_opens_no_stream(self, api, server, client_config, metadata, selected_tree):
        """Test a rejected start returns to IDLE without touching the streams."""
        server.start_status = 500

        async with api:
            async with SessionOrchestrator(api, client_config) as orchestrator:
                with pytest.raises(StartRequestError):
                    await orchestrator.start(metadata, selected_tree)
                assert orchestrator.phase == SessionPhase.IDLE

        assert server.stream_requests() == []

    @pytest.mark.asyncio
    async def test_failing_progress_stream(self, api, server, client_config, metadata, selected_tree, goal_entry):
        """Test an HTTP error on one stream leaves the other working."""
        server.failing_paths[server.progress_path] = 502
        server.results_events = [{"selectedGoals": [goal_entry("LoadTime", 0.5)]}]

        async with api:
            async with SessionOrchestrator(api, client_config) as orchestrator:
                await orchestrator.start(metadata, selected_tree)
                await asyncio.wait_for(orchestrator.wait_closed(), 2.0)
                state = orchestrator.snapshot()

        assert state.phase == SessionPhase.RUNNING
        assert "LoadTime" in state.results
        assert state.last_error is not None

    @pytest.mark.asyncio
    async def test_garbage_between_events(self, api, server, client_config, metadata, selected_tree):
        """Test undecodable stream payloads are skipped."""
        server.progress_events = ["<html>", {"type": "progress", "message": "still here"}]

        async with api:
            async with SessionOrchestrator(api, client_config) as orchestrator:
                await orchestrator.start(metadata, selected_tree)
                await asyncio.wait_for(orchestrator.wait_closed(), 2.0)
                state = orchestrator.snapshot()

        assert state.progress.snapshot() == ("still here",)
        assert state.last_error.startswith("progress:")

    @pytest.mark.asyncio
    async def test_stop_during_start_forgets_endpoints(self, server, client_config, metadata, selected_tree):
        """Test endpoints announced for a discarded session are not kept."""
        gate, received = asyncio.Event(), asyncio.Event()

        async def gated(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                received.set()
                await gate.wait()
            return server(request)

        api = AssessmentApiClient(client_config.api, transport=httpx.MockTransport(gated))
        async with api:
            async with SessionOrchestrator(api, client_config) as orchestrator:
                pending = asyncio.create_task(orchestrator.start(metadata, selected_tree))
                await asyncio.wait_for(received.wait(), 1.0)

                assert orchestrator.stop() is True
                gate.set()
                response = await pending

        assert response.assessment_id == "srv-1"
        assert orchestrator.phase == SessionPhase.STOPPED
        assert api.stream_url("srv-1", ChannelName.PROGRESS) == "http://testserver/api/progress/srv-1"
        assert server.stream_requests() == []

