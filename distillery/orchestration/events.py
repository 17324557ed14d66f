"""
Cycle notifications.

Each orchestrator owns one ``EventDispatcher``; listeners are plain
callables registered on it. A failing listener is logged and never affects
the cycle or the other listeners.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, List

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Notifications emitted by the orchestrator."""

    DISTILLATION_COMPLETED = "distillation_completed"  # {agent_id, tier, metrics}
    DISTILLATION_FAILED = "distillation_failed"        # {agent_id, reason}
    COMPACTION_REQUESTED = "compaction_requested"      # {agent_id, occupancy}


@dataclass
class DistillationEvent:
    """One notification."""

    event_type: EventType
    agent_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        data = {"event_type": self.event_type.value, "agent_id": self.agent_id, "timestamp": self.timestamp}
        data.update(self.payload)
        return data


Listener = Callable[[DistillationEvent], None]


class EventDispatcher:
    """Observer registry delivering events synchronously in registration order."""

    def __init__(self, history_size: int = 100):
        self._listeners: List[Listener] = []
        self._history: Deque[DistillationEvent] = deque(maxlen=history_size)
        self._lock = threading.Lock()

    def add_listener(self, listener: Listener):
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> bool:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)
                return True
            return False

    def emit(self, event: DistillationEvent):
        """
        Deliver an event to every listener.

        Args:
            event: Event to deliver
        """
        with self._lock:
            listeners = list(self._listeners)
            self._history.append(event)

        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Listener error on {event.event_type.value}: {e}")

        logger.debug(f"Event emitted: {event.event_type.value} for {event.agent_id}")

    def get_history(self) -> List[DistillationEvent]:
        """Recently emitted events, oldest first."""
        with self._lock:
            return list(self._history)

    def get_event_order(self) -> List[EventType]:
        with self._lock:
            return [event.event_type for event in self._history]
