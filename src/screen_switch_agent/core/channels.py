"""
Host <-> supervisor channels.

Two one-way queues connect the host controller and the supervisor thread:

  commands: host -> supervisor, bounded, HostCommand.START / STOP
  status:   supervisor -> host, unbounded, StatusEvent

Closing the command channel is how the host tells the supervisor to exit.
"""

from __future__ import annotations

import queue
from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")

DEFAULT_COMMAND_CAPACITY = 8


class ChannelClosed(Exception):
    """Raised by receive() once the channel is closed and drained."""


class HostCommand(str, Enum):
    START = "start"
    STOP = "stop"


class StatusKind(str, Enum):
    STARTED = "started"
    STOPPED = "stopped"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class StatusEvent:
    kind: StatusKind
    message: Optional[str] = None

    @classmethod
    def started(cls) -> "StatusEvent":
        return cls(StatusKind.STARTED)

    @classmethod
    def stopped(cls) -> "StatusEvent":
        return cls(StatusKind.STOPPED)

    @classmethod
    def error(cls, message: str) -> "StatusEvent":
        return cls(StatusKind.ERROR, message)


_CLOSED = object()


class Channel(Generic[T]):
    """
    Single-producer/single-consumer queue with close semantics.

    capacity=0 means unbounded. send() never blocks.
    """

    def __init__(self, capacity: int = 0) -> None:
        if capacity < 0:
            raise ValueError("capacity must be >= 0")
        self.capacity = capacity
        # Unbounded underneath so close() can always enqueue its marker.
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._closed = False
        self._drained = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, item: T) -> bool:
        """Enqueue item. Returns False if the channel is closed or full."""
        if self._closed:
            return False
        if self.capacity and self._queue.qsize() >= self.capacity:
            return False
        self._queue.put_nowait(item)
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    def receive(self, timeout: Optional[float] = None) -> Optional[T]:
        """
        Wait up to `timeout` seconds (None = forever) for the next item.

        Returns None on timeout. Raises ChannelClosed after the close marker
        has been consumed.
        """
        if self._drained:
            raise ChannelClosed()
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _CLOSED:
            self._drained = True
            raise ChannelClosed()
        return item  # type: ignore[return-value]


def command_channel(capacity: int = DEFAULT_COMMAND_CAPACITY) -> Channel[HostCommand]:
    return Channel(capacity)


def status_channel() -> Channel[StatusEvent]:
    return Channel()
