"""Coalescing, cancellable writes of stage output into the graph store.

Stages do not write to the graph on every state change. They schedule a
patch; patches for the same node are merged and written once after
``delay`` seconds of quiet. ``flush`` writes immediately and ``cancel``
drops the pending patch.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping

    from flowrag.graph import GraphStore

__all__ = ["CommitScheduler"]

logger = logging.getLogger(__name__)


class CommitScheduler:
    """Debounced per-node writer for :class:`~flowrag.graph.GraphStore` patches."""

    def __init__(self, graph: GraphStore, delay: float = 1.0) -> None:
        self._graph = graph
        self._delay = delay
        self._pending: dict[str, dict[str, Any]] = {}
        self._timers: dict[str, asyncio.Task[None]] = {}

    def schedule(self, node_id: str, patch: Mapping[str, Any]) -> None:
        """Merge ``patch`` into the node's pending write and restart its timer."""
        self._pending.setdefault(node_id, {}).update(patch)
        timer = self._timers.pop(node_id, None)
        if timer is not None:
            timer.cancel()
        self._timers[node_id] = asyncio.ensure_future(self._write_later(node_id))

    async def _write_later(self, node_id: str) -> None:
        await asyncio.sleep(self._delay)
        self._timers.pop(node_id, None)
        self._write(node_id)

    def _write(self, node_id: str) -> None:
        patch = self._pending.pop(node_id, None)
        if not patch:
            return
        self._graph.patch_node_data(node_id, patch)
        logger.debug("Committed %d field(s) for %s", len(patch), node_id)

    def flush(self, node_id: str) -> None:
        """Write the node's pending patch now."""
        timer = self._timers.pop(node_id, None)
        if timer is not None:
            timer.cancel()
        self._write(node_id)

    def flush_all(self) -> None:
        for node_id in list(self._pending):
            self.flush(node_id)

    def cancel(self, node_id: str) -> None:
        """Drop the node's pending patch without writing it."""
        timer = self._timers.pop(node_id, None)
        if timer is not None:
            timer.cancel()
        if self._pending.pop(node_id, None) is not None:
            logger.debug("Cancelled pending commit for %s", node_id)

    def has_pending(self, node_id: str) -> bool:
        return node_id in self._pending
