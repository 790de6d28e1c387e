"""Corpus-driven retrieval defaults.

Inspects what a corpus is made of (share of code-like sources, chunk
count) and picks ``top_k``/``similarity_threshold``: fewer results and a
lower threshold for code, more results and a higher threshold for prose,
and a floor threshold for very small corpora.

Settings the user changed are left alone. A setting counts as changed
when it differs both from the factory defaults and from the values
auto-configuration applied last.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from flowrag.parse.detect import is_code

if TYPE_CHECKING:
    from collections.abc import Sequence

    from flowrag.config import AutoConfigConfig
    from flowrag.types import VectorizedFile

__all__ = [
    "AutoConfigurator",
    "CorpusProfile",
    "RetrievalSettings",
    "auto_configure",
    "profile_corpus",
    "recommend",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetrievalSettings:
    top_k: int
    similarity_threshold: float


@dataclass(frozen=True)
class CorpusProfile:
    """Composition summary of a retrieval corpus."""

    file_count: int
    chunk_count: int
    code_files: int
    fingerprint: str

    @property
    def code_ratio(self) -> float:
        return self.code_files / self.file_count if self.file_count else 0.0


def _file_is_code(vf: VectorizedFile) -> bool:
    parser = vf.chunks[0].chunk.metadata.parser if vf.chunks else ""
    return is_code(vf.source.path or vf.source.name, parser or vf.source.format)


def profile_corpus(corpus: Sequence[VectorizedFile]) -> CorpusProfile:
    """Summarize ``corpus``; the fingerprint changes whenever its content does."""
    digest = hashlib.sha256()
    chunk_count = 0
    code_files = 0
    for vf in corpus:
        digest.update(vf.source.path.encode("utf-8"))
        digest.update(vf.model.encode("utf-8"))
        for ec in vf.chunks:
            digest.update(ec.chunk.content.encode("utf-8"))
        chunk_count += len(vf.chunks)
        if _file_is_code(vf):
            code_files += 1
    return CorpusProfile(
        file_count=len(corpus),
        chunk_count=chunk_count,
        code_files=code_files,
        fingerprint=digest.hexdigest()[:16],
    )


def recommend(profile: CorpusProfile, policy: AutoConfigConfig) -> RetrievalSettings:
    """Retrieval settings suited to the corpus composition."""
    if profile.code_ratio >= policy.code_ratio:
        settings = RetrievalSettings(policy.code_top_k, policy.code_threshold)
    else:
        settings = RetrievalSettings(policy.prose_top_k, policy.prose_threshold)
    if profile.chunk_count < policy.small_corpus_chunks:
        settings = RetrievalSettings(settings.top_k, policy.small_corpus_threshold)
    return settings


def auto_configure(
    profile: CorpusProfile,
    current: RetrievalSettings,
    defaults: RetrievalSettings,
    policy: AutoConfigConfig,
    last_applied: RetrievalSettings | None = None,
) -> RetrievalSettings | None:
    """Return new settings for ``profile``, or ``None`` to keep ``current``.

    ``current`` is kept when it differs from both ``defaults`` and
    ``last_applied`` (the user changed it).
    """
    if current != defaults and current != last_applied:
        logger.debug("Retrieval settings %s were set by the user; not auto-configuring", current)
        return None
    return recommend(profile, policy)


class AutoConfigurator:
    """Applies :func:`auto_configure` once per corpus change."""

    def __init__(self, policy: AutoConfigConfig, defaults: RetrievalSettings) -> None:
        self._policy = policy
        self._defaults = defaults
        self._fingerprint: str | None = None
        self._last_applied: RetrievalSettings | None = None

    @property
    def last_applied(self) -> RetrievalSettings | None:
        return self._last_applied

    def apply(
        self, corpus: Sequence[VectorizedFile], current: RetrievalSettings
    ) -> RetrievalSettings:
        """Return the settings to use for ``corpus``."""
        profile = profile_corpus(corpus)
        if profile.fingerprint == self._fingerprint:
            if self._last_applied is not None and current in (self._defaults, self._last_applied):
                return self._last_applied
            return current
        self._fingerprint = profile.fingerprint

        settings = auto_configure(
            profile, current, self._defaults, self._policy, self._last_applied
        )
        if settings is None:
            return current
        self._last_applied = settings
        logger.info(
            "Auto-configured retrieval for %d files / %d chunks (code ratio %.2f): "
            "top_k=%d, threshold=%.2f",
            profile.file_count,
            profile.chunk_count,
            profile.code_ratio,
            settings.top_k,
            settings.similarity_threshold,
        )
        return settings
