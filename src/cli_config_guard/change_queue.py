"""One actionable change per tool, plus the notification stream."""

import logging
import threading
from collections.abc import Callable
from enum import Enum

from .models import ExternalConfigChange
from .models import Tool

logger = logging.getLogger(__name__)

ChangeListener = Callable[[ExternalConfigChange], None]


class QueueState(Enum):
    """Per-tool state of the change queue."""

    NONE = "none"
    PENDING = "pending"
    RESOLVED = "resolved"


class ChangeQueue:
    """Holds the newest unresolved drift for each tool.

    A new change for a tool replaces whatever was pending for it, so only the
    latest drift is ever actionable. Listeners are called for every change
    pushed, outside the queue lock.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._pending: dict[Tool, ExternalConfigChange] = {}
        self._states: dict[Tool, QueueState] = {tool: QueueState.NONE for tool in Tool}
        self._listeners: list[ChangeListener] = []

    def push(self, change: ExternalConfigChange) -> ExternalConfigChange | None:
        """Make a change the pending one for its tool and notify listeners.

        Returns:
            The change it replaced, if one was pending
        """
        with self._lock:
            superseded = self._pending.get(change.tool)
            self._pending[change.tool] = change
            self._states[change.tool] = QueueState.PENDING
            listeners = list(self._listeners)

        if superseded is not None:
            logger.debug(f"Superseded pending change for {change.tool.value}")
        for listener in listeners:
            try:
                listener(change)
            except Exception:
                logger.exception(f"Change listener failed for {change.tool.value}")
        return superseded

    def pending(self, tool: Tool) -> ExternalConfigChange | None:
        with self._lock:
            return self._pending.get(tool)

    def state(self, tool: Tool) -> QueueState:
        with self._lock:
            return self._states[tool]

    def resolve(self, tool: Tool) -> ExternalConfigChange | None:
        """Mark the tool's pending change as handled.

        Returns:
            The change that was pending, if any
        """
        with self._lock:
            change = self._pending.pop(tool, None)
            if change is not None:
                self._states[tool] = QueueState.RESOLVED
            return change

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a listener for new changes.

        Returns:
            A callable that removes the listener again
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe
