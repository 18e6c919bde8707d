# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Typed in-process signals and the started/delta/ended text stream.

Callbacks are synchronous and run on the event loop thread in subscription
order. A failing callback is logged and skipped so that one broken renderer
cannot stall the agent that is producing the events.
"""

import logging

from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

T = TypeVar("T")


class Subscription:
    """Handle returned by ``Signal.subscribe``. Unsubscribing twice is a no-op."""

    def __init__(self, signal: "Signal", callback: Callable):
        self._signal = signal
        self._callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._signal._remove(self._callback)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.unsubscribe()


class Signal(Generic[T]):
    """A single typed event channel."""

    def __init__(self, name: str = "signal"):
        self.name = name
        self._subscribers: list[Callable[[T], None]] = []

    def subscribe(self, callback: Callable[[T], None]) -> Subscription:
        self._subscribers.append(callback)
        return Subscription(self, callback)

    def _remove(self, callback: Callable) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    @property
    def listener_count(self) -> int:
        return len(self._subscribers)

    def emit(self, value: T = None) -> None:
        # Copy, so callbacks may unsubscribe while we iterate
        for callback in list(self._subscribers):
            try:
                callback(value)
            except Exception as e:
                logger.error(f"Error in {self.name} subscriber {callback}: {e}")

    def __repr__(self) -> str:
        return f"Signal({self.name!r}, listeners={self.listener_count})"


class SubscriptionGroup:
    """Collects subscriptions made for the duration of one call.

    Use as a context manager: everything subscribed through the group is
    released on exit, whether the body returned or raised.
    """

    def __init__(self):
        self._subscriptions: list[Subscription] = []

    def subscribe(self, signal: Signal[T], callback: Callable[[T], None]) -> Subscription:
        sub = signal.subscribe(callback)
        self._subscriptions.append(sub)
        return sub

    def forward(self, source: Signal[T], target: Signal[T]) -> Subscription:
        return self.subscribe(source, target.emit)

    def __len__(self) -> int:
        return sum(1 for s in self._subscriptions if s.active)

    def close(self) -> None:
        while self._subscriptions:
            self._subscriptions.pop().unsubscribe()

    def __enter__(self) -> "SubscriptionGroup":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class DeltaStream:
    """An incrementally produced text field.

    At most one span (``started`` ... ``ended``) is open at a time. Chunks
    pushed inside a span are kept in order and joined by ``text``.
    """

    def __init__(self, name: str = "stream"):
        self.name = name
        self.started: Signal[None] = Signal(f"{name}.started")
        self.delta: Signal[str] = Signal(f"{name}.delta")
        self.ended: Signal[None] = Signal(f"{name}.ended")
        self._chunks: list[str] = []
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def text(self) -> str:
        return "".join(self._chunks)

    def start(self) -> None:
        if self._open:
            # A new span closes the previous one
            self.end()
        self._chunks = []
        self._open = True
        self.started.emit(None)

    def push(self, chunk: str) -> None:
        if not chunk:
            return
        if not self._open:
            self.start()
        self._chunks.append(chunk)
        self.delta.emit(chunk)

    def end(self) -> None:
        if not self._open:
            return
        self._open = False
        self.ended.emit(None)

    def reset(self) -> None:
        """Drop accumulated text. An open span is closed first."""
        self.end()
        self._chunks = []

    def pipe(self, target: "DeltaStream", group: SubscriptionGroup) -> None:
        """Proxy every event of this stream into ``target`` for the group's lifetime."""
        group.subscribe(self.started, lambda _: target.start())
        group.subscribe(self.delta, target.push)
        group.subscribe(self.ended, lambda _: target.end())

    def __repr__(self) -> str:
        return f"DeltaStream({self.name!r}, open={self._open}, chars={len(self.text)})"
