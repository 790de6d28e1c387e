"""In-process signal bus for trigger propagation.

Publish/subscribe over typed topics, owned by a pipeline runtime rather
than living as process-wide state. Subscriptions are scoped: a stage
subscribes when it is attached and unsubscribes on teardown.

Handlers may be plain callables or coroutine functions. Coroutine
handlers are scheduled as tasks on the running loop and tracked so the
runtime can wait for quiescence.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

__all__ = ["Signal", "SignalBus", "Subscription", "Topic"]

logger = logging.getLogger(__name__)


class Topic(str, Enum):
    RUN_REQUESTED = "run-requested"
    RUN_COMPLETED = "run-completed"
    DELETE_REQUESTED = "delete-requested"


@dataclass(frozen=True)
class Signal:
    """A trigger message.

    ``target_id`` is the stage the signal is addressed to (for
    ``run-completed`` it is the stage that completed). ``source_id`` names
    the stage that caused it, empty for host-originated signals.
    """

    topic: Topic
    target_id: str
    source_id: str = ""


class Subscription:
    """Handle returned by :meth:`SignalBus.subscribe`."""

    def __init__(
        self,
        bus: SignalBus,
        topic: Topic,
        handler: Callable[[Signal], Awaitable[None] | None],
        target_id: str | None,
    ) -> None:
        self._bus = bus
        self.topic = topic
        self.handler = handler
        self.target_id = target_id
        self.active = True

    def matches(self, signal: Signal) -> bool:
        return self.target_id is None or self.target_id == signal.target_id

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._bus._remove(self)


class SignalBus:
    """Topic-based publish/subscribe channel."""

    def __init__(self) -> None:
        self._subscriptions: dict[Topic, list[Subscription]] = {t: [] for t in Topic}
        self._tasks: set[asyncio.Task[None]] = set()

    def subscribe(
        self,
        topic: Topic,
        handler: Callable[[Signal], Awaitable[None] | None],
        *,
        target_id: str | None = None,
    ) -> Subscription:
        """Subscribe ``handler`` to ``topic``.

        Args:
            topic: Topic to listen on.
            handler: Called with each matching signal.
            target_id: Only deliver signals addressed to this id;
                ``None`` receives every signal on the topic.
        """
        sub = Subscription(self, topic, handler, target_id)
        self._subscriptions[topic].append(sub)
        return sub

    def _remove(self, sub: Subscription) -> None:
        subs = self._subscriptions[sub.topic]
        if sub in subs:
            subs.remove(sub)

    def subscriber_count(self, topic: Topic) -> int:
        return len(self._subscriptions[topic])

    def publish(self, signal: Signal) -> int:
        """Deliver ``signal`` to every matching subscriber.

        Handler exceptions are logged and do not reach the publisher or
        the other subscribers.

        Returns:
            Number of handlers the signal was delivered to.
        """
        delivered = 0
        for sub in list(self._subscriptions[signal.topic]):
            if not sub.active or not sub.matches(signal):
                continue
            delivered += 1
            try:
                result = sub.handler(signal)
            except Exception:
                logger.exception(
                    "Handler for %s on %s failed", signal.topic.value, signal.target_id
                )
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._task_done)
        logger.debug(
            "Published %s → %s (from %s) to %d handler(s)",
            signal.topic.value,
            signal.target_id,
            signal.source_id or "host",
            delivered,
        )
        return delivered

    def _task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Signal handler task failed: %s", exc, exc_info=exc)

    @property
    def pending(self) -> set[asyncio.Task[None]]:
        return set(self._tasks)

    async def drain(self) -> None:
        """Wait until every handler task scheduled so far has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def close(self) -> None:
        """Cancel outstanding handler tasks and drop all subscriptions."""
        for task in list(self._tasks):
            task.cancel()
        for subs in self._subscriptions.values():
            for sub in subs:
                sub.active = False
            subs.clear()
