"""
Assessment Session Orchestrator - drives one assessment session from the client.

Sends the start request, consumes the progress and results streams of the
returned assessment id, and folds their events into a single SessionState
that an observer (the UI) can render.

Lifecycle:
    IDLE -> STARTING -> RUNNING -> COMPLETED
                 |          |          |
                 v          +----------+--> STOPPED (user cancel)
               FAILED -> IDLE (retry allowed)

Usage:
    async with SessionOrchestrator(api, observer=render) as orchestrator:
        await orchestrator.start(metadata, goal_tree)
        ...
        orchestrator.stop()
"""

import asyncio
import copy
from typing import Any, Callable, Dict, Mapping, Optional, Set, Union

from pydantic import ValidationError

from assessment_client.assessment.models import (
    AppMetadata,
    AssessmentRequest,
    AssessmentsPayload,
    ProgressEvent,
    SessionPhase,
    SessionState,
    StartResponse,
)
from assessment_client.assessment.progress import ProgressBuffer
from assessment_client.assessment.reconciler import reconcile
from assessment_client.config import AssessmentClientConfig, get_config
from assessment_client.goals import GoalTree
from assessment_client.streaming.channel import (
    ChannelError,
    ChannelEvent,
    ChannelItem,
    ChannelName,
    StreamChannel,
)
from assessment_client.utils.exceptions import (
    InvalidRequestError,
    MalformedSnapshotError,
    SessionAlreadyActiveError,
    SessionIdMissingError,
    StartRequestError,
)
from assessment_client.utils.logging import current_session_id, get_logger, log_with_context

logger = get_logger(__name__)

Observer = Callable[[SessionState], None]


class SessionOrchestrator:
    """
    Owns the state machine and both stream channels of one session.

    The transport (``api``) must provide:
    - ``async start_assessment(request: AssessmentRequest) -> StartResponse``
    - ``event_source(session_id: str, channel: ChannelName) -> AsyncIterator[str]``

    All state changes happen on the event loop that runs ``start()``; stream
    events are applied by one pump task per channel. Every session gets a
    generation number, and a pump only applies events while its generation
    is current, so nothing reaches the state after ``stop()``.
    """

    def __init__(
        self,
        api: Any,
        config: Optional[AssessmentClientConfig] = None,
        observer: Optional[Observer] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            api: Transport with ``start_assessment`` and ``event_source``
            config: Client configuration (defaults to the global config)
            observer: Called with a copy of the state after every change
        """
        self._api = api
        self._config = config or get_config()
        self._observer = observer

        self._state = SessionState(progress=ProgressBuffer(self._config.stream.progress_capacity))
        self._generation = 0

        self._channels: Dict[ChannelName, StreamChannel] = {}
        self._tasks: Dict[ChannelName, asyncio.Task] = {}
        # Cancelled pumps still unwinding, with the channel each one owns
        self._retired_pumps: Dict[asyncio.Task, StreamChannel] = {}
        # Releases of channels whose pump was cancelled before it ran
        self._releases: Set[asyncio.Task] = set()

    # ========================================================================
    # State access
    # ========================================================================

    @property
    def state(self) -> SessionState:
        """The live session state (read-only for callers)."""
        return self._state

    @property
    def phase(self) -> SessionPhase:
        return self._state.phase

    def snapshot(self) -> SessionState:
        """Deep copy of the current state."""
        return copy.deepcopy(self._state)

    def channel_open(self, name: ChannelName) -> bool:
        """Whether the pump of a channel is still running."""
        task = self._tasks.get(name)
        return task is not None and not task.done()

    # ========================================================================
    # Start
    # ========================================================================

    async def start(
        self,
        metadata: Union[AppMetadata, Mapping[str, Any], None],
        goal_tree: Optional[GoalTree],
    ) -> StartResponse:
        """
        Start a new assessment session.

        Args:
            metadata: Application metadata (model or mapping)
            goal_tree: Tree whose selected goal names are assessed

        Returns:
            Start response of the server

        Raises:
            SessionAlreadyActiveError: A session is starting or running
            InvalidRequestError: Metadata incomplete or no goal selected
            StartRequestError: The start request failed (state is back to IDLE)
        """
        state = self._state
        if state.phase.is_active():
            raise SessionAlreadyActiveError(
                f"An assessment session is already {state.phase.value}",
                session_id=state.session_id,
                phase=state.phase.value,
            )

        app_metadata = self._validate_metadata(metadata)
        # Copy: the user may keep editing the tree while the session runs
        selected = list(goal_tree.selected_names()) if goal_tree is not None else []
        if not selected:
            raise InvalidRequestError("Select at least one goal to assess", missing=["selectedGoals"])

        if state.phase.has_streams():
            logger.info("Closing completed session before starting a new one")
            self._teardown()

        self._generation += 1
        generation = self._generation

        state.reset(SessionPhase.STARTING)
        state.metadata = app_metadata
        state.selected_goal_names = selected
        log_with_context(
            logger,
            "info",
            f"🚀 Starting assessment of '{app_metadata.name}' for goals: {', '.join(selected)}",
            application=app_metadata.name,
            goals=len(selected),
        )
        self._notify()

        request = AssessmentRequest(metadata=app_metadata, selected_goals=selected)
        timeout = self._config.api.start_timeout
        try:
            response = await asyncio.wait_for(self._api.start_assessment(request), timeout=timeout)
            if not isinstance(response, StartResponse):
                response = StartResponse.model_validate(response)
        except asyncio.TimeoutError as e:
            error = StartRequestError(
                f"Start request timed out after {timeout:g}s",
                timeout_seconds=timeout,
            )
            self._fail_start(generation, error)
            raise error from e
        except StartRequestError as e:
            self._fail_start(generation, e)
            raise
        except asyncio.CancelledError:
            if generation == self._generation:
                self._generation += 1
                state.reset(SessionPhase.IDLE)
                self._notify()
            raise
        except Exception as e:
            error = StartRequestError(f"Start request failed: {type(e).__name__}: {e}")
            self._fail_start(generation, error)
            raise error from e

        if generation != self._generation:
            logger.info("Session was stopped while the start request was in flight; response discarded")
            self._forget(response.assessment_id)
            return response

        try:
            self._open_channels(response.assessment_id, generation)
        except SessionIdMissingError as e:
            error = StartRequestError("Start response carried no assessment id")
            self._fail_start(generation, error)
            raise error from e

        state.session_id = response.assessment_id
        state.phase = SessionPhase.RUNNING
        log_with_context(
            logger, "info", f"Assessment {response.assessment_id} running, streams opened", session_id=response.assessment_id
        )
        self._notify()
        return response

    def _validate_metadata(self, metadata: Union[AppMetadata, Mapping[str, Any], None]) -> AppMetadata:
        if isinstance(metadata, AppMetadata):
            return metadata
        if metadata is not None and not isinstance(metadata, Mapping):
            raise InvalidRequestError(f"Metadata must be a mapping, got {type(metadata).__name__}")

        missing = AppMetadata.missing_fields(metadata)
        if missing:
            raise InvalidRequestError(
                f"Fill out the application metadata (missing: {', '.join(missing)})",
                missing=missing,
            )
        try:
            return AppMetadata.model_validate(metadata)
        except ValidationError as e:
            raise InvalidRequestError(f"Invalid application metadata: {e.error_count()} error(s)") from e

    def _fail_start(self, generation: int, error: StartRequestError) -> None:
        """Surface a start failure as FAILED, then return to IDLE."""
        if generation != self._generation:
            # stop() already reset the state
            return
        logger.error(f"❌ {error.message}")
        self._state.phase = SessionPhase.FAILED
        self._state.last_error = error.message
        self._notify()

        self._state.reset(SessionPhase.IDLE)
        self._state.last_error = error.message
        self._notify()

    # ========================================================================
    # Streams
    # ========================================================================

    def _open_channels(self, session_id: str, generation: int) -> None:
        max_failures = self._config.stream.max_consecutive_parse_failures
        channels = {
            ChannelName.PROGRESS: StreamChannel(
                ChannelName.PROGRESS, self._api.event_source, ProgressEvent, max_failures
            ),
            ChannelName.RESULTS: StreamChannel(
                ChannelName.RESULTS, self._api.event_source, AssessmentsPayload, max_failures
            ),
        }
        # Both ids are checked before either source is created
        if not session_id or not str(session_id).strip():
            raise SessionIdMissingError("Start response carried no assessment id")
        for channel in channels.values():
            channel.open(session_id)

        token = current_session_id.set(session_id)
        try:
            for name, channel in channels.items():
                task = asyncio.create_task(
                    self._pump(channel, generation),
                    name=f"assessment-{name.value}-{session_id}",
                )
                task.add_done_callback(self._on_pump_done)
                self._tasks[name] = task
        finally:
            current_session_id.reset(token)
        self._channels = channels

    async def _pump(self, channel: StreamChannel, generation: int) -> None:
        """Apply a channel's events in arrival order while the session is current."""
        events = channel.events()
        try:
            async for event in events:
                if generation != self._generation:
                    break
                self._handle_event(event)
        finally:
            await events.aclose()
            logger.debug(f"{channel.name.value} pump finished")

    def _on_pump_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Stream pump {task.get_name()} crashed: {exc!r}", exc_info=exc)

    def _handle_event(self, event: ChannelEvent) -> None:
        if isinstance(event, ChannelError):
            self._handle_channel_error(event)
        elif event.channel == ChannelName.PROGRESS:
            self._handle_progress(event)
        else:
            self._handle_results(event)

    def _handle_progress(self, event: ChannelItem) -> None:
        progress: ProgressEvent = event.item
        if progress.type != "progress":
            logger.debug(f"Ignoring progress-channel message of type '{progress.type}'")
            return
        if not progress.message:
            return

        state = self._state
        state.progress.append(progress.message)
        logger.debug(f"Progress: {progress.message}")

        sentinel = self._config.stream.completion_sentinel
        if sentinel in progress.message and state.phase == SessionPhase.RUNNING:
            state.phase = SessionPhase.COMPLETED
            state.application_url = state.metadata.url if state.metadata else None
            logger.info(
                f"✅ Instrumentation complete for {state.session_id}; "
                f"open {state.application_url} to interact with the application"
            )
        self._notify()

    def _handle_results(self, event: ChannelItem) -> None:
        payload: AssessmentsPayload = event.item
        try:
            self._state.results = reconcile(self._state.results, payload.selected_goals)
        except MalformedSnapshotError as e:
            logger.warning(f"Dropped results snapshot: {e.message}")
            self._state.last_error = e.message
        self._notify()

    def _handle_channel_error(self, event: ChannelError) -> None:
        if event.fatal:
            logger.error(f"{event.channel.value} channel closed after error: {event.message}")
        else:
            logger.warning(f"{event.channel.value} channel message dropped: {event.message}")
        self._state.last_error = f"{event.channel.value}: {event.message}"
        self._notify()

    # ========================================================================
    # Stop / teardown
    # ========================================================================

    def stop(self) -> bool:
        """
        Cancel the session: close both streams and reset the state.

        Safe to call at any time and any number of times.

        Returns:
            True if a session was stopped, False if there was nothing to stop
        """
        phase = self._state.phase
        if phase in (SessionPhase.IDLE, SessionPhase.STOPPED, SessionPhase.FAILED) and not self._tasks:
            return False

        session_id = self._state.session_id
        self._generation += 1
        self._teardown()
        self._state.reset(SessionPhase.STOPPED)
        log_with_context(
            logger,
            "info",
            f"⏹️ Assessment {session_id or '(starting)'} stopped; provide metadata and goals to start again",
            session_id=session_id,
            phase=phase.value,
        )
        self._notify()
        return True

    def _teardown(self) -> None:
        """Cancel pumps and close channels of the current session."""
        for name, task in self._tasks.items():
            channel = self._channels[name]
            channel.close()
            if task.done():
                # Finished pumps released their source on the way out
                continue
            task.cancel()
            self._retired_pumps[task] = channel
            task.add_done_callback(self._on_retired_done)
        self._tasks = {}
        self._channels = {}

        if self._state.session_id:
            self._forget(self._state.session_id)

    def _on_retired_done(self, task: asyncio.Task) -> None:
        channel = self._retired_pumps.pop(task, None)
        if channel is None or channel.is_released:
            return
        # The pump was cancelled before it ever iterated its channel
        release = asyncio.get_running_loop().create_task(
            channel.aclose(), name=f"release-{channel.name.value}-{channel.session_id}"
        )
        self._releases.add(release)
        release.add_done_callback(self._releases.discard)

    def _forget(self, session_id: str) -> None:
        """Drop per-session transport state such as announced endpoints."""
        forget = getattr(self._api, "forget", None)
        if callable(forget):
            forget(session_id)

    async def wait_closed(self) -> None:
        """Wait until both streams of the current session have ended."""
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def aclose(self) -> None:
        """
        Tear down: stop any session and wait until every source is released.
        """
        self.stop()
        # Retired pumps may still schedule releases while they unwind
        while self._retired_pumps or self._releases:
            await asyncio.gather(*self._retired_pumps, *self._releases, return_exceptions=True)

    async def __aenter__(self) -> "SessionOrchestrator":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ========================================================================
    # Observer
    # ========================================================================

    def _notify(self) -> None:
        if self._observer is None:
            return
        try:
            self._observer(self.snapshot())
        except Exception as e:
            logger.error(f"Session observer failed: {e}", exc_info=True)


__all__ = ["SessionOrchestrator", "Observer"]
