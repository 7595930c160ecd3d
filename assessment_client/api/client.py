"""
HTTP client for the assessment server.

Fetches the quality model, sends the start request and opens the two SSE
streams of a session over one shared ``httpx.AsyncClient``.
"""

from typing import Any, AsyncIterator, Dict, Optional

import httpx
from pydantic import ValidationError

from assessment_client.assessment.models import AssessmentRequest, StartResponse
from assessment_client.config import ApiConfig, get_config
from assessment_client.goals import GoalTree
from assessment_client.streaming.channel import ChannelName
from assessment_client.streaming.sse import aiter_sse
from assessment_client.utils.exceptions import StartRequestError
from assessment_client.utils.logging import get_logger

logger = get_logger(__name__)

SSE_HEADERS = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}


class AssessmentApiClient:
    """Client for the assessment server's REST and SSE endpoints."""

    def __init__(
        self,
        config: Optional[ApiConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize API client.

        Args:
            config: Endpoint configuration (defaults to the global config)
            client: Existing httpx client to use (not closed by ``close()``)
            transport: Custom httpx transport for a newly created client
        """
        self.config = config or get_config().api
        self._owns_client = client is None
        # Short connect timeout, no read timeout: streams stay idle for long stretches
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.config.connect_timeout, read=None),
            follow_redirects=True,
            transport=transport,
        )
        # Stream endpoints announced by start responses, per assessment id
        self._endpoints: Dict[str, Dict[ChannelName, str]] = {}

    def url(self, path: str) -> str:
        """Resolve an endpoint path against the API root; absolute URLs pass through."""
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.config.base_url}/{path.lstrip('/')}"

    async def fetch_quality_model(self) -> Dict[str, Any]:
        """
        Fetch the quality model definition.

        Returns:
            Raw quality model (``{"goals": [...]}``)

        Raises:
            httpx.HTTPError: On transport failure or non-success status
        """
        url = self.url(self.config.quality_model_path)
        logger.info(f"Fetching quality model from {url}")
        response = await self.client.get(url, timeout=self.config.start_timeout)
        response.raise_for_status()
        return response.json()

    async def fetch_goal_tree(self) -> GoalTree:
        """Fetch the quality model and build a fresh goal tree from it."""
        return GoalTree.from_quality_model(await self.fetch_quality_model())

    async def start_assessment(self, request: AssessmentRequest) -> StartResponse:
        """
        Send the start request.

        Args:
            request: Metadata and selected goal names

        Returns:
            Start response with the assessment id and stream endpoints

        Raises:
            StartRequestError: On transport failure, non-success status or
                an unreadable response
        """
        url = self.url(self.config.start_path)
        logger.info(f"Starting assessment for {len(request.selected_goals)} goal(s) at {url}")

        try:
            response = await self.client.post(
                url,
                json=request.to_payload(),
                headers={"Content-Type": "application/json"},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise StartRequestError(
                f"Start request rejected with status {e.response.status_code}",
                status_code=e.response.status_code,
                body=e.response.text[:500],
            ) from e
        except httpx.HTTPError as e:
            raise StartRequestError(f"Start request failed: {type(e).__name__}: {e}") from e

        try:
            result = StartResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise StartRequestError(
                "Start response is not a valid assessment descriptor",
                status_code=response.status_code,
            ) from e

        endpoints: Dict[ChannelName, str] = {}
        if result.progress_endpoint:
            endpoints[ChannelName.PROGRESS] = result.progress_endpoint
        if result.assessment_endpoint:
            endpoints[ChannelName.RESULTS] = result.assessment_endpoint
        self._endpoints[result.assessment_id] = endpoints

        logger.info(f"Assessment started: {result.assessment_id}")
        return result

    def stream_url(self, session_id: str, channel: ChannelName) -> str:
        """URL of a session's stream: the announced endpoint, else the configured template."""
        channel = ChannelName(channel)
        announced = self._endpoints.get(session_id, {}).get(channel)
        if announced:
            # A URL reference: "/api/..." is rooted at the server origin
            return str(httpx.URL(f"{self.config.base_url}/").join(announced))
        if channel == ChannelName.PROGRESS:
            template = self.config.progress_path_template
        else:
            template = self.config.results_path_template
        return self.url(template.format(assessment_id=session_id))

    async def event_source(self, session_id: str, channel: ChannelName) -> AsyncIterator[str]:
        """
        Yield the ``data`` payload of every SSE event on a session stream.

        Nothing is sent until the first iteration; leaving the iteration
        closes the HTTP response.
        """
        channel = ChannelName(channel)
        url = self.stream_url(session_id, channel)
        logger.debug(f"Connecting {channel.value} stream: {url}")
        async with self.client.stream("GET", url, headers=SSE_HEADERS) as response:
            response.raise_for_status()
            async for event in aiter_sse(response.aiter_lines()):
                yield event.data

    def forget(self, session_id: str) -> None:
        """Drop the stream endpoints remembered for a session."""
        self._endpoints.pop(session_id, None)

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "AssessmentApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


__all__ = ["AssessmentApiClient", "SSE_HEADERS"]
