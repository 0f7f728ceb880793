"""
Events - Synchronous notifications from the engine to renderers.

Each engine owns its own EventChannel; there is no global listener list.
``subscribe`` returns a Subscription handle that removes the listener when
``unsubscribe()`` is called or its ``with`` block exits.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Events emitted by the engine, in the order a renderer sees them."""
    NODE_ENTERED = "node_entered"
    CHOICE_SELECTED = "choice_selected"
    PUZZLE_STARTED = "puzzle_started"
    PUZZLE_COMPLETED = "puzzle_completed"
    EFFECTS_APPLIED = "effects_applied"
    STATE_CHANGED = "state_changed"
    GAME_ENDED = "game_ended"


@dataclass
class GameEvent:
    """
    A single engine notification.

    Only the fields relevant to the event type are set:
    - node_entered / game_ended: node
    - choice_selected: choice, choice_index
    - puzzle_started: puzzle
    - puzzle_completed: puzzle, result, success
    - effects_applied: effect_result
    - state_changed: state (a deep copy)
    """
    type: EventType
    node: Any | None = None
    choice: Any | None = None
    choice_index: int | None = None
    puzzle: Any | None = None
    result: Any | None = None
    success: bool | None = None
    effect_result: Any | None = None
    state: Any | None = None


Listener = Callable[[GameEvent], None]


class Subscription:
    """Handle for a registered listener."""

    def __init__(self, channel: EventChannel, listener: Listener):
        self._channel = channel
        self.listener = listener
        self.active = True

    def unsubscribe(self):
        if self.active:
            self._channel._remove(self.listener)
            self.active = False

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, exc_type, exc, tb):
        self.unsubscribe()


class EventChannel:
    """In-order fan-out to listeners. Listener errors are logged, not raised."""

    def __init__(self):
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Subscription:
        self._listeners.append(listener)
        return Subscription(self, listener)

    def _remove(self, listener: Listener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def emit(self, event: GameEvent):
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Listener failed while handling %s", event.type.value)
