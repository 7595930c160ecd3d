"""
Server-push stream consumption.

Provides SSE decoding and the StreamChannel abstraction the session
orchestrator uses for its progress and results streams.
"""

from assessment_client.streaming.channel import (
    ChannelError,
    ChannelEvent,
    ChannelItem,
    ChannelName,
    EventSource,
    StreamChannel,
)
from assessment_client.streaming.sse import SSEDecoder, ServerSentEvent, aiter_sse, iter_sse

__all__ = [
    "ChannelError",
    "ChannelEvent",
    "ChannelItem",
    "ChannelName",
    "EventSource",
    "StreamChannel",
    "SSEDecoder",
    "ServerSentEvent",
    "aiter_sse",
    "iter_sse",
]
