"""
Event bus - one-directional mediator between the engine and its consumers.

Producers publish, consumers subscribe; neither holds a reference to the
other. The visual layer, for example, subscribes to "rhythm.changed" rather
than handing the rhythm engine a callback.

Topics published by the engine:
    behavior.executed    one Behavior was performed
    schedule.completed   a schedule() batch finished (or was cancelled)
    rhythm.changed       the rhythm mode switched
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger("companion.behavior.events")

BEHAVIOR_EXECUTED = "behavior.executed"
SCHEDULE_COMPLETED = "schedule.completed"
RHYTHM_CHANGED = "rhythm.changed"

WILDCARD = "*"


@dataclass
class Event:
    type: str
    payload: dict[str, Any] = field(default_factory=dict)
    ts: int = field(default_factory=lambda: int(time.time() * 1000))


class EventBus:
    """Topic-based publish/subscribe. Handlers may be plain or async functions."""

    def __init__(self):
        self._subscribers: dict[str, list[Callable[[Event], Any]]] = {}
        self._tasks: set[asyncio.Task] = set()  # Strong refs until async handlers finish

    def subscribe(self, event_type: str, handler: Callable[[Event], Any]) -> Callable[[], None]:
        """Register handler for event_type ("*" for everything). Returns an unsubscribe function."""
        self._subscribers.setdefault(event_type, []).append(handler)
        return lambda: self.unsubscribe(event_type, handler)

    def unsubscribe(self, event_type: str, handler: Callable[[Event], Any]) -> bool:
        handlers = self._subscribers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)
            return True
        return False

    def _handlers_for(self, event_type: str) -> list[Callable[[Event], Any]]:
        return list(self._subscribers.get(event_type, [])) + list(self._subscribers.get(WILDCARD, []))

    def publish(self, event_type: str, **payload) -> Event:
        """Deliver synchronously. Coroutine handlers are scheduled on the running loop."""
        event = Event(event_type, payload)
        for handler in self._handlers_for(event_type):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    self._schedule(result, event_type)
            except Exception as e:
                logger.error(f"Event handler for {event_type} raised {type(e).__name__}: {e}")
        return event

    def _schedule(self, awaitable, event_type: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"Async handler for {event_type} dropped: no running event loop")
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return
        task = loop.create_task(awaitable)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(lambda t: self._log_task_error(t, event_type))

    @staticmethod
    def _log_task_error(task: asyncio.Task, event_type: str) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Async event handler for {event_type} raised {type(exc).__name__}: {exc}")

    async def publish_async(self, event_type: str, **payload) -> Event:
        """Deliver and await every handler before returning."""
        event = Event(event_type, payload)
        for handler in self._handlers_for(event_type):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Event handler for {event_type} raised {type(e).__name__}: {e}")
        return event

    @property
    def pending_tasks(self) -> int:
        """Async handlers scheduled by publish() that have not finished yet."""
        return len(self._tasks)

    def clear(self) -> None:
        self._subscribers.clear()
