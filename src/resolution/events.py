"""Lifecycle event subscription."""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from constants import ResolutionEvent

from .models import DependencyResolutionResult, ResolutionRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolutionEventPayload:
    """What listeners receive.

    Attributes:
        event: Which lifecycle event fired.
        request: The request being resolved.
        result: Final result; None for ``resolution-started``.
        duration_ms: Elapsed time since the request started.
    """

    event: ResolutionEvent
    request: ResolutionRequest
    result: Optional[DependencyResolutionResult]
    duration_ms: float


Listener = Callable[[ResolutionEventPayload], None]


class Subscription:
    """Handle returned by ``subscribe``. Calling it (or ``unsubscribe()``) detaches."""

    def __init__(self, bus: "EventBus", event: ResolutionEvent, token: int):
        self._bus = bus
        self.event = event
        self._token = token
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._bus._remove(self.event, self._token)  # pylint: disable=protected-access
            self.active = False

    def __call__(self) -> None:
        self.unsubscribe()


class EventBus:
    """Per-event listener registry. Listener failures are logged, never raised."""

    def __init__(self):
        self._listeners: Dict[ResolutionEvent, Dict[int, Listener]] = {e: {} for e in ResolutionEvent}
        self._tokens = itertools.count()
        self._lock = threading.Lock()

    def subscribe(self, event, callback: Listener) -> Subscription:
        """Register ``callback`` for ``event``.

        Raises:
            ValueError: If ``event`` is not a known lifecycle event.
        """
        event = ResolutionEvent(event)
        with self._lock:
            token = next(self._tokens)
            self._listeners[event][token] = callback
        return Subscription(self, event, token)

    def _remove(self, event: ResolutionEvent, token: int) -> None:
        with self._lock:
            self._listeners[event].pop(token, None)

    def listener_count(self, event=None) -> int:
        with self._lock:
            if event is None:
                return sum(len(v) for v in self._listeners.values())
            return len(self._listeners[ResolutionEvent(event)])

    def emit(self, payload: ResolutionEventPayload) -> None:
        with self._lock:
            listeners = list(self._listeners[payload.event].values())
        for listener in listeners:
            try:
                listener(payload)
            except Exception:  # pylint: disable=broad-exception-caught
                logger.exception("Listener for %s failed", payload.event.value)
