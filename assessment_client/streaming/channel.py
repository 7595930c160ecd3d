"""
Stream channels.

A StreamChannel is one server-push subscription (``progress`` or
``results``) scoped to an assessment id. It decodes every raw payload with a
pydantic model and hands the consumer an async sequence of events:

- ChannelItem: a decoded payload
- ChannelError(fatal=False): one payload could not be decoded; the channel
  keeps going
- ChannelError(fatal=True): transport failure, or too many undecodable
  payloads in a row; the channel closes right after

Usage:
    channel = StreamChannel(ChannelName.PROGRESS, api.event_source, ProgressEvent)
    channel.open(assessment_id)
    events = channel.events()
    try:
        async for event in events:
            ...
    finally:
        await events.aclose()
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Callable, Generic, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from assessment_client.utils.exceptions import ChannelTransportError, SessionIdMissingError
from assessment_client.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T", bound=BaseModel)


class ChannelName(str, Enum):
    """Logical stream of a session."""
    PROGRESS = "progress"
    RESULTS = "results"


# Opens the raw payload stream of one channel. Called only after the session
# id was validated; the returned iterator should not touch the network until
# it is first iterated.
EventSource = Callable[[str, ChannelName], AsyncIterator[str]]


@dataclass(frozen=True)
class ChannelItem(Generic[T]):
    """Successfully decoded payload."""
    channel: ChannelName
    item: T


@dataclass(frozen=True)
class ChannelError:
    """Decode or transport failure reported by a channel."""
    channel: ChannelName
    error: Exception
    fatal: bool = False

    @property
    def message(self) -> str:
        return str(self.error)


ChannelEvent = Union[ChannelItem, ChannelError]


class StreamChannel(Generic[T]):
    """
    Cancellable, decoding wrapper around one event source.

    Lifecycle: ``open()`` once, iterate ``events()`` once, then ``close()`` /
    ``aclose()`` any number of times. The underlying source is released
    exactly once.
    """

    def __init__(
        self,
        name: ChannelName,
        source: EventSource,
        model: Type[T],
        max_consecutive_parse_failures: int = 5,
    ):
        """
        Initialize channel.

        Args:
            name: Channel name
            source: Callable opening the raw payload stream
            model: Pydantic model every payload is decoded into
            max_consecutive_parse_failures: Undecodable payloads in a row
                tolerated before the channel gives up
        """
        self._name = name
        self._source = source
        self._model = model
        self._max_parse_failures = max_consecutive_parse_failures

        self._session_id: Optional[str] = None
        self._stream: Optional[AsyncIterator[str]] = None
        self._iterating = False
        self._consumed = False
        self._closed = False
        self._released = False

    @property
    def name(self) -> ChannelName:
        return self._name

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    @property
    def is_open(self) -> bool:
        return self._stream is not None and not self._closed

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def is_released(self) -> bool:
        """Whether the source stream was released (or never created)."""
        return self._released or self._stream is None

    def open(self, session_id: Optional[str]) -> "StreamChannel[T]":
        """
        Bind the channel to a session and create its source stream.

        Raises:
            SessionIdMissingError: If ``session_id`` is empty or absent
        """
        if not session_id or not str(session_id).strip():
            raise SessionIdMissingError(
                f"Cannot open {self._name.value} channel without a session id",
                channel=self._name.value,
            )
        if self._stream is not None:
            raise RuntimeError(f"{self._name.value} channel is already open")

        self._session_id = session_id
        self._stream = self._source(session_id, self._name)
        logger.debug(f"Opened {self._name.value} channel")
        return self

    def decode(self, raw: Union[str, bytes]) -> T:
        """Decode one raw JSON payload. Raises ValidationError on bad input."""
        return self._model.model_validate_json(raw)

    def __aiter__(self) -> AsyncIterator[ChannelEvent]:
        return self.events()

    async def events(self) -> AsyncIterator[ChannelEvent]:
        """
        Yield channel events until the source ends, a fatal error occurs or
        the channel is closed.
        """
        if self._stream is None:
            raise RuntimeError(f"{self._name.value} channel was never opened")
        if self._consumed:
            raise RuntimeError(f"{self._name.value} channel can only be iterated once")
        self._consumed = True
        self._iterating = True

        failures = 0
        fatal: Optional[ChannelError] = None
        iterator = self._stream.__aiter__()
        try:
            while not self._closed:
                try:
                    raw = await iterator.__anext__()
                except StopAsyncIteration:
                    logger.info(f"{self._name.value} stream ended by server")
                    break
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    logger.error(f"{self._name.value} stream failed: {exc}")
                    fatal = ChannelError(
                        channel=self._name,
                        error=self._transport_error(exc),
                        fatal=True,
                    )
                    break

                if self._closed:
                    break

                try:
                    item = self.decode(raw)
                except ValidationError as exc:
                    failures += 1
                    if failures > self._max_parse_failures:
                        logger.error(
                            f"{self._name.value} stream gave {failures} undecodable messages in a row, closing"
                        )
                        fatal = ChannelError(channel=self._name, error=exc, fatal=True)
                        break
                    logger.warning(
                        f"Dropped undecodable {self._name.value} message "
                        f"({failures}/{self._max_parse_failures}): {exc.error_count()} error(s)"
                    )
                    yield ChannelError(channel=self._name, error=exc, fatal=False)
                    continue

                failures = 0
                yield ChannelItem(channel=self._name, item=item)

            if fatal is not None and not self._closed:
                self._closed = True
                yield fatal
        finally:
            self._iterating = False
            self._closed = True
            await self._release()

    def close(self) -> None:
        """
        Stop delivering events. Idempotent.

        A consumer currently awaiting ``events()`` should be cancelled; the
        source is released when that iteration unwinds.
        """
        if not self._closed:
            self._closed = True
            logger.debug(f"Closed {self._name.value} channel")

    async def aclose(self) -> None:
        """Close and release the source now unless an iteration still owns it. Idempotent."""
        self.close()
        if not self._iterating:
            await self._release()

    async def _release(self) -> None:
        if self._released or self._stream is None:
            return
        self._released = True
        aclose = getattr(self._stream, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception as e:
            logger.warning(f"Error releasing {self._name.value} stream: {e}")

    def _transport_error(self, exc: Exception) -> ChannelTransportError:
        error = ChannelTransportError(
            f"{self._name.value} stream failed: {exc}",
            channel=self._name.value,
            session_id=self._session_id,
            cause=type(exc).__name__,
        )
        error.__cause__ = exc
        return error


__all__ = [
    "ChannelName",
    "EventSource",
    "ChannelItem",
    "ChannelError",
    "ChannelEvent",
    "StreamChannel",
]
