"""Retrieval engine — similarity scoring, adaptive ranking and auto-configuration."""

from flowrag.retrieval.autoconfig import (
    AutoConfigurator,
    CorpusProfile,
    RetrievalSettings,
    auto_configure,
    profile_corpus,
    recommend,
)
from flowrag.retrieval.engine import RetrievalEngine, corpus_size, flatten_corpus
from flowrag.retrieval.similarity import cosine_similarity, effective_threshold

__all__ = [
    "AutoConfigurator",
    "CorpusProfile",
    "RetrievalEngine",
    "RetrievalSettings",
    "auto_configure",
    "corpus_size",
    "cosine_similarity",
    "effective_threshold",
    "flatten_corpus",
    "profile_corpus",
    "recommend",
]
