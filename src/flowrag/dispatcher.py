"""Execution dispatcher: peer-to-peer run propagation along graph edges.

There is no central queue. ``run_stage`` runs one stage; on success it
flushes the stage's pending commits, announces ``run-completed`` and
calls ``propagate``, which broadcasts a ``run-requested`` signal to each
outbound target after a small per-target stagger. Each target decides
for itself whether to run (see ``BaseStage.on_run_requested``).
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from flowrag.bus import Signal, Topic
from flowrag.exceptions import GraphError

if TYPE_CHECKING:
    from flowrag.bus import SignalBus
    from flowrag.commit import CommitScheduler
    from flowrag.graph import GraphStore
    from flowrag.stages.base import BaseStage

__all__ = ["Dispatcher"]

logger = logging.getLogger(__name__)


class Dispatcher:
    """Runs stages and fans their completion out to downstream stages.

    Usage::

        dispatcher = Dispatcher(graph, bus, commits, stagger_seconds=0.5)
        dispatcher.register(stage)
        await dispatcher.run_stage("fetch-1")
        await dispatcher.wait_idle()
    """

    def __init__(
        self,
        graph: GraphStore,
        bus: SignalBus,
        commits: CommitScheduler,
        *,
        stagger_seconds: float = 0.5,
    ) -> None:
        self._graph = graph
        self._bus = bus
        self._commits = commits
        self._stagger = stagger_seconds
        self._stages: dict[str, BaseStage] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    def register(self, stage: BaseStage) -> None:
        """Make a stage runnable through the dispatcher.

        Raises:
            GraphError: If a stage with the same id is already registered.
        """
        if stage.id in self._stages:
            raise GraphError(f"Stage {stage.id!r} is already registered")
        self._stages[stage.id] = stage
        logger.debug("Registered stage %s (%s)", stage.id, stage.kind)

    def unregister(self, stage_id: str) -> BaseStage | None:
        return self._stages.pop(stage_id, None)

    def get(self, stage_id: str) -> BaseStage:
        """Return the registered stage.

        Raises:
            GraphError: If no stage with that id is registered.
        """
        try:
            return self._stages[stage_id]
        except KeyError:
            raise GraphError(f"No stage registered with id {stage_id!r}") from None

    @property
    def stages(self) -> dict[str, BaseStage]:
        return dict(self._stages)

    async def run_stage(self, stage_id: str) -> bool:
        """Run a stage and, on success, propagate to its downstream stages.

        A stage that is already running has its in-flight run cancelled and
        replaced by this one.

        Returns:
            ``True`` if the run succeeded (and propagation was scheduled).

        Raises:
            GraphError: If the stage is not registered.
        """
        stage = self.get(stage_id)
        if not await stage.run():
            return False
        self._commits.flush(stage_id)
        self._bus.publish(Signal(Topic.RUN_COMPLETED, stage_id))
        self.propagate(stage_id)
        return True

    def propagate(self, stage_id: str) -> list[str]:
        """Signal every target of ``stage_id``'s outbound edges.

        The broadcast to the i-th target is delayed by ``i * stagger_seconds``
        so upstream writes settle before downstream reads.

        Returns:
            Target stage ids, in edge order, each listed once.
        """
        targets = list(dict.fromkeys(e.target for e in self._graph.outbound_edges(stage_id)))
        for i, target in enumerate(targets):
            signal = Signal(Topic.RUN_REQUESTED, target, source_id=stage_id)
            task = asyncio.ensure_future(self._broadcast_later(signal, i * self._stagger))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        if targets:
            logger.info("Stage %s triggering %d downstream: %s", stage_id, len(targets), targets)
        return targets

    async def _broadcast_later(self, signal: Signal, delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        self._bus.publish(signal)

    @property
    def pending(self) -> set[asyncio.Task[None]]:
        return set(self._tasks)

    async def wait_idle(self) -> None:
        """Wait until no broadcast or signal handler task remains."""
        while True:
            pending = self.pending | self._bus.pending
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def close(self) -> None:
        """Cancel scheduled broadcasts and every stage's in-flight run."""
        for task in list(self._tasks):
            task.cancel()
        for stage in self._stages.values():
            stage.cancel()
