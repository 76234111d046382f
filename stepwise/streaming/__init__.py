"""Lifecycle event streaming for workflow executions."""

from __future__ import annotations

from .adapter import encode_sse, stream_execution
from .base import EventChannel
from .inmemory import ChannelClosedError, InMemoryEventChannel

__all__ = [
    "EventChannel",
    "InMemoryEventChannel",
    "ChannelClosedError",
    "encode_sse",
    "stream_execution",
]
