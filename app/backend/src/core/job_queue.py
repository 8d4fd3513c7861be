"""Job queue abstractions shared by the API producer and the report worker."""

from __future__ import annotations

import itertools
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Protocol
from uuid import uuid4


@dataclass(frozen=True)
class QueueMessage:
    """A received queue message; ``receipt_handle`` acknowledges this delivery."""

    message_id: str
    receipt_handle: str
    body: str | None


class JobQueue(Protocol):
    """Pull-based, at-least-once message queue."""

    def receive(self, max_messages: int, wait_seconds: int = 0) -> list[QueueMessage]:
        """Return up to ``max_messages`` messages, possibly none."""

    def delete(self, message: QueueMessage) -> None:
        """Acknowledge a message so it is not redelivered."""

    def send(self, body: str) -> str:
        """Enqueue a message body and return its message id."""


class InMemoryJobQueue:
    """Process-local queue with visibility semantics.

    Received messages stay invisible until they are deleted or released back
    with :meth:`release`, which mimics a visibility timeout expiring. Each
    delivery gets a fresh receipt handle, so deleting with a stale handle is a
    no-op just like SQS.
    """

    def __init__(self) -> None:
        self._condition = threading.Condition()
        self._visible: OrderedDict[str, str | None] = OrderedDict()
        self._in_flight: dict[str, tuple[str, str | None]] = {}
        self._receipts = itertools.count(1)
        self.deleted: list[str] = []
        self.receive_calls = 0

    def send(self, body: str | None) -> str:
        message_id = str(uuid4())
        with self._condition:
            self._visible[message_id] = body
            self._condition.notify_all()
        return message_id

    def receive(self, max_messages: int, wait_seconds: int = 0) -> list[QueueMessage]:
        deadline = time.monotonic() + max(wait_seconds, 0)
        with self._condition:
            self.receive_calls += 1
            while not self._visible:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return []
                self._condition.wait(remaining)

            messages: list[QueueMessage] = []
            while self._visible and len(messages) < max_messages:
                message_id, body = self._visible.popitem(last=False)
                receipt = f"{message_id}#{next(self._receipts)}"
                self._in_flight[receipt] = (message_id, body)
                messages.append(QueueMessage(message_id, receipt, body))
            return messages

    def delete(self, message: QueueMessage) -> None:
        with self._condition:
            entry = self._in_flight.pop(message.receipt_handle, None)
            if entry is not None:
                self.deleted.append(entry[0])

    def release(self) -> int:
        """Make every unacknowledged message visible again; return how many."""

        with self._condition:
            released = len(self._in_flight)
            for message_id, body in self._in_flight.values():
                self._visible[message_id] = body
            self._in_flight.clear()
            self._condition.notify_all()
            return released

    def pending(self) -> int:
        """Return the number of visible plus in-flight messages."""

        with self._condition:
            return len(self._visible) + len(self._in_flight)


__all__ = ["InMemoryJobQueue", "JobQueue", "QueueMessage"]
