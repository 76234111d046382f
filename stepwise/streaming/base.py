"""Base push-channel interface for execution events."""

from __future__ import annotations

import abc

from ..contracts import ExecutionEvent


class EventChannel(metaclass=abc.ABCMeta):
    """Abstract channel the streaming adapter publishes lifecycle events to."""

    @abc.abstractmethod
    async def publish(self, event: ExecutionEvent) -> None:
        """Push ``event`` to the consumer."""
        raise NotImplementedError

    @abc.abstractmethod
    async def close(self) -> None:
        """Signal that no further events will be published."""
        raise NotImplementedError

    @property
    @abc.abstractmethod
    def closed(self) -> bool:
        """``True`` once :meth:`close` has been called."""
        raise NotImplementedError
