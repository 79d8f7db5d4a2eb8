"""In-process change notifications.

An ``EventBus`` is created by whoever wires the data client together with its
subscribers and is passed to both. Handlers run synchronously on the emitting
thread, in registration order. A failing handler is logged and skipped so the
remaining subscribers still receive the event.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

ENTITY_TYPES = ("user", "product", "order")
EVENT_KINDS = ("created", "updated", "deleted")

Handler = Callable[..., Any]


def event_name(kind: str, entity_type: str) -> str:
    if kind not in EVENT_KINDS:
        raise ValueError(f"Unknown change kind: {kind!r}")
    if entity_type not in ENTITY_TYPES:
        raise ValueError(f"Unknown entity type: {entity_type!r}")
    return f"{entity_type}{kind.capitalize()}"


EVENT_NAMES = frozenset(
    event_name(kind, entity_type) for entity_type in ENTITY_TYPES for kind in EVENT_KINDS
)


@dataclass(frozen=True)
class ChangeEvent:
    kind: str
    entity_type: str
    payload: Dict[str, Any]

    @property
    def name(self) -> str:
        return event_name(self.kind, self.entity_type)


def _check_name(name: str) -> None:
    if name not in EVENT_NAMES:
        raise ValueError(f"Unknown event name: {name!r}")


class EventBus:
    def __init__(self):
        self._listeners: Dict[str, List[Handler]] = {}
        self._lock = threading.Lock()

    def on(self, name: str, handler: Handler) -> None:
        _check_name(name)
        with self._lock:
            self._listeners.setdefault(name, []).append(handler)

    def off(self, name: str, handler: Handler) -> None:
        _check_name(name)
        with self._lock:
            handlers = self._listeners.get(name)
            if not handlers:
                return
            self._listeners[name] = [
                registered for registered in handlers if registered != handler
            ]

    remove_listener = off

    def listener_count(self, name: str) -> int:
        with self._lock:
            return len(self._listeners.get(name, ()))

    def emit(self, name: str, *args: Any) -> None:
        _check_name(name)
        with self._lock:
            handlers = list(self._listeners.get(name, ()))
        for handler in handlers:
            try:
                handler(*args)
            except Exception:
                logger.exception("Handler %r failed while handling %s", handler, name)

    def publish(self, event: ChangeEvent) -> None:
        self.emit(event.name, event.payload)
