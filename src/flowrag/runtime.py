"""Pipeline runtime: owns the signal bus, commit scheduler, dispatcher and HTTP client.

Wires one stage instance per graph node of a known kind into a shared
:class:`~flowrag.stages.base.StageContext`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from flowrag.bus import Signal, SignalBus, Topic
from flowrag.commit import CommitScheduler
from flowrag.config import FlowragConfig
from flowrag.dispatcher import Dispatcher
from flowrag.exceptions import GraphError
from flowrag.registry import default_registry
from flowrag.resolver import UpstreamResolver
from flowrag.stages.base import StageContext

if TYPE_CHECKING:
    from types import TracebackType

    from flowrag.graph import GraphStore
    from flowrag.registry import ProviderRegistry
    from flowrag.stages.base import BaseStage

__all__ = ["PipelineRuntime"]

logger = logging.getLogger(__name__)


class PipelineRuntime:
    """Runs a stage graph.

    All collaborators are created in :meth:`start`; an HTTP client passed
    in is shared and left open, one created here is closed by :meth:`close`.

    Usage::

        async with PipelineRuntime(load_graph(path), config) as runtime:
            await runtime.run("repo")
            await runtime.wait_idle()
    """

    def __init__(
        self,
        graph: GraphStore,
        config: FlowragConfig | None = None,
        *,
        registry: ProviderRegistry = default_registry,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.graph = graph
        self.config = config or FlowragConfig()
        self.registry = registry
        self._client = client
        self._owns_client = client is None
        self._context: StageContext | None = None

    @property
    def context(self) -> StageContext:
        if self._context is None:
            raise GraphError("Pipeline runtime has not been started")
        return self._context

    @property
    def bus(self) -> SignalBus:
        return self.context.bus

    @property
    def dispatcher(self) -> Dispatcher:
        return self.context.dispatcher

    def start(self) -> None:
        """Create the shared collaborators and attach a stage for every known node."""
        if self._context is not None:
            return
        dispatch = self.config.dispatch
        if self._client is None:
            self._client = httpx.AsyncClient()
        bus = SignalBus()
        commits = CommitScheduler(self.graph, delay=dispatch.commit_delay_seconds)
        dispatcher = Dispatcher(self.graph, bus, commits, stagger_seconds=dispatch.stagger_seconds)
        self._context = StageContext(
            graph=self.graph,
            resolver=UpstreamResolver(self.graph, dispatch.poll_interval_seconds),
            commits=commits,
            dispatcher=dispatcher,
            bus=bus,
            config=self.config,
            client=self._client,
            registry=self.registry,
        )

        for node in self.graph.list_nodes():
            if not self.registry.has_provider("stage", node.kind):
                logger.warning("Skipping node %s of unknown kind %r", node.id, node.kind)
                continue
            stage: BaseStage = self.registry.create("stage", node.kind, node.id, self._context)
            dispatcher.register(stage)
            stage.attach()
        logger.info("Pipeline started with %d stage(s)", len(dispatcher.stages))

    def stage(self, stage_id: str) -> BaseStage:
        """Return the stage instance for ``stage_id``.

        Raises:
            GraphError: If no stage with that id is attached.
        """
        return self.dispatcher.get(stage_id)

    async def run(self, stage_id: str) -> bool:
        """Run one stage now; on success its downstream stages are triggered."""
        return await self.dispatcher.run_stage(stage_id)

    async def wait_idle(self) -> None:
        """Wait for propagation to settle, then write every pending commit."""
        await self.dispatcher.wait_idle()
        self.context.commits.flush_all()

    def request_delete(self, stage_id: str) -> int:
        """Ask a stage to tear itself down. Returns the number of handlers reached."""
        return self.bus.publish(Signal(Topic.DELETE_REQUESTED, stage_id))

    async def close(self) -> None:
        """Cancel outstanding work and release the HTTP client if owned."""
        if self._context is not None:
            self._context.dispatcher.close()
            self._context.commits.flush_all()
            self._context.bus.close()
            self._context = None
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> PipelineRuntime:
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> Any:
        await self.close()
        return None
