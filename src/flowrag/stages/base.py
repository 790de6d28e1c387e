"""Stage base class, shared run context and capability interfaces.

One ``BaseStage`` subclass exists per stage kind. A stage owns its own
node's data: it reads settings from it and writes results back through
the commit scheduler. Everything else it learns about the graph comes
from the upstream resolver.
"""

from __future__ import annotations

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, fields, replace
from typing import TYPE_CHECKING, Any, ClassVar, TypeVar

from flowrag.bus import Topic
from flowrag.exceptions import FlowragError, UpstreamDataAbsent
from flowrag.resolver import CredentialsOutput, Expect
from flowrag.types import ProviderConfig, StageStatus

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    import httpx

    from flowrag.bus import Signal, SignalBus, Subscription
    from flowrag.commit import CommitScheduler
    from flowrag.config import FlowragConfig
    from flowrag.dispatcher import Dispatcher
    from flowrag.fetch.base import FetchResult
    from flowrag.graph import GraphStore
    from flowrag.registry import ProviderRegistry
    from flowrag.resolver import UpstreamResolver
    from flowrag.types import Chunk, ConversationTurn, SourceFile, VectorizedFile

_S = TypeVar("_S")

__all__ = [
    "BaseStage",
    "Chunkable",
    "Embeddable",
    "Fetchable",
    "Queryable",
    "StageContext",
]

logger = logging.getLogger(__name__)


@dataclass
class StageContext:
    """Collaborators shared by every stage of one pipeline runtime."""

    graph: GraphStore
    resolver: UpstreamResolver
    commits: CommitScheduler
    dispatcher: Dispatcher
    bus: SignalBus
    config: FlowragConfig
    client: httpx.AsyncClient
    registry: ProviderRegistry


class BaseStage(ABC):
    """Base class for all stage kinds.

    Subclasses set ``kind`` and ``requires`` and implement :meth:`execute`,
    which returns the fields to write into the stage's node data.

    A run is triggered either directly (``Dispatcher.run_stage``) or by a
    ``run-requested`` signal from an upstream stage. Signal-triggered runs
    are refused while the stage is running, disabled or missing inputs.
    """

    kind: ClassVar[str] = ""
    requires: ClassVar[tuple[Expect, ...]] = ()

    def __init__(self, stage_id: str, context: StageContext) -> None:
        self.id = stage_id
        self.context = context
        self._inflight: asyncio.Task[Mapping[str, Any]] | None = None
        self._generation = 0
        self._subscriptions: list[Subscription] = []

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.id!r})"

    # -- node data ---------------------------------------------------------

    @property
    def data(self) -> Mapping[str, Any]:
        node = self.context.graph.get_node(self.id)
        return node.data if node is not None else {}

    @property
    def disabled(self) -> bool:
        return bool(self.data.get("disabled", False))

    @property
    def status(self) -> str:
        return str(self.data.get("status", StageStatus.IDLE.value))

    def settings(self, section: _S) -> _S:
        """Return a copy of a config section with this node's overrides applied.

        Any node data key that matches a field of the section wins, so
        ``data = {chunk_size = 500}`` overrides ``[chunk] chunk_size``.
        """
        names = {f.name for f in fields(section)}  # type: ignore[arg-type]
        overrides = {k: v for k, v in self.data.items() if k in names}
        return replace(section, **overrides) if overrides else section  # type: ignore[type-var]

    def commit(self, patch: Mapping[str, Any]) -> None:
        """Schedule a coalesced write of ``patch`` into this node's data."""
        self.context.commits.schedule(self.id, patch)

    def _record(self, patch: Mapping[str, Any]) -> None:
        self.commit(patch)
        self.context.commits.flush(self.id)

    # -- inputs ------------------------------------------------------------

    def required_inputs(self) -> tuple[Expect, ...]:
        return self.requires

    def provider_config(self) -> ProviderConfig | None:
        """Credentials from an upstream credential stage, else from ``[provider]``."""
        output = self.context.resolver.resolve(self.id, Expect.CREDENTIALS)
        if isinstance(output, CredentialsOutput):
            return output.config
        section = self.context.config.provider
        credential = os.environ.get(section.api_key_env, "") if section.api_key_env else ""
        if section.endpoint and credential:
            return ProviderConfig(
                endpoint=section.endpoint, credential=credential, provider=section.provider
            )
        return None

    def missing_inputs(self) -> list[str]:
        """Names of required upstream payloads that are not available yet."""
        missing: list[str] = []
        for expected in self.required_inputs():
            if expected is Expect.CREDENTIALS:
                present = self.provider_config() is not None
            else:
                present = self.context.resolver.resolve(self.id, expected) is not None
            if not present:
                missing.append(expected.value)
        return missing

    # -- lifecycle ---------------------------------------------------------

    def attach(self) -> None:
        """Subscribe to signals addressed to this stage."""
        bus = self.context.bus
        self._subscriptions = [
            bus.subscribe(Topic.RUN_REQUESTED, self.on_run_requested, target_id=self.id),
            bus.subscribe(Topic.DELETE_REQUESTED, self.on_delete_requested, target_id=self.id),
        ]

    @property
    def is_running(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    async def on_run_requested(self, signal: Signal) -> None:
        """Run in response to an upstream trigger if every guard passes."""
        source = signal.source_id or "host"
        if self.is_running:
            logger.info("Stage %s already running; ignoring trigger from %s", self.id, source)
            return
        if self.disabled:
            logger.info("Stage %s is disabled; ignoring trigger from %s", self.id, source)
            return
        missing = self.missing_inputs()
        if missing:
            logger.info(
                "Stage %s waiting for upstream %s; ignoring trigger from %s",
                self.id,
                ", ".join(missing),
                source,
            )
            return
        await self.context.dispatcher.run_stage(self.id)

    def on_delete_requested(self, signal: Signal) -> None:
        self.teardown()

    def teardown(self) -> None:
        """Cancel in-flight work and pending commits and leave the pipeline."""
        self.cancel()
        self.context.commits.cancel(self.id)
        for sub in self._subscriptions:
            sub.unsubscribe()
        self._subscriptions = []
        self.context.dispatcher.unregister(self.id)
        logger.info("Stage %s torn down", self.id)

    def cancel(self) -> None:
        """Cancel the in-flight run, if any."""
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()

    async def run(self) -> bool:
        """Execute the stage once and record the outcome in its node data.

        A run started while a previous one is in flight cancels the previous
        run's work first, so a stale result never overwrites a newer one.

        Returns:
            ``True`` if :meth:`execute` succeeded.
        """
        if self.is_running:
            logger.info("Stage %s restarted; cancelling in-flight run", self.id)
            self.cancel()

        self._generation += 1
        generation = self._generation
        logger.info("Running stage %s (%s)", self.id, self.kind)
        self._record({"status": StageStatus.RUNNING.value, "error": ""})

        task = asyncio.ensure_future(self.execute())
        self._inflight = task
        try:
            output = await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                task.cancel()
                raise
            if generation == self._generation:
                self._record({"status": StageStatus.CANCELLED.value})
            logger.info("Stage %s run cancelled", self.id)
            return False
        except UpstreamDataAbsent as e:
            logger.info("Stage %s: %s", self.id, e)
            self._record({"status": StageStatus.WAITING.value, "error": str(e)})
            return False
        except FlowragError as e:
            logger.error("Stage %s failed: %s", self.id, e)
            self._record({"status": StageStatus.FAILED.value, "error": str(e)})
            return False
        except Exception as e:
            logger.exception("Stage %s failed unexpectedly", self.id)
            self._record({"status": StageStatus.FAILED.value, "error": f"Unexpected error: {e}"})
            return False
        finally:
            if self._inflight is task:
                self._inflight = None

        self._record({**output, "status": StageStatus.SUCCEEDED.value, "error": ""})
        logger.info("Stage %s succeeded", self.id)
        return True

    @abstractmethod
    async def execute(self) -> Mapping[str, Any]:
        """Do the stage's work.

        Returns:
            Fields to merge into the stage's node data.

        Raises:
            FlowragError: On any failure; the run is recorded as failed.
        """


class Fetchable(ABC):
    """A stage that produces source files."""

    @abstractmethod
    async def fetch_files(self) -> FetchResult:
        """Fetch or produce the stage's source files."""


class Chunkable(ABC):
    """A stage that splits files into chunks."""

    @abstractmethod
    def chunk_files(self, files: Sequence[SourceFile]) -> list[Chunk]:
        """Split files into chunks."""


class Embeddable(ABC):
    """A stage that attaches embeddings to chunks."""

    @abstractmethod
    async def embed(self, chunks: Sequence[Chunk]) -> list[VectorizedFile]:
        """Embed chunks, grouped by originating file."""


class Queryable(ABC):
    """A stage that answers questions over a corpus."""

    @abstractmethod
    async def ask(self, query: str) -> ConversationTurn:
        """Answer ``query`` and return the assistant turn."""
