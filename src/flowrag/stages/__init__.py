"""Stage kinds — one class per kind, registered under its kind string."""

from flowrag.registry import default_registry
from flowrag.stages.base import (
    BaseStage,
    Chunkable,
    Embeddable,
    Fetchable,
    Queryable,
    StageContext,
)
from flowrag.stages.chat import ChatStage
from flowrag.stages.credential import CredentialStage, detect_provider, list_models
from flowrag.stages.embed import EmbedStage, group_by_source
from flowrag.stages.processing import ChunkStage, ParseStage
from flowrag.stages.sources import ManualExecuteStage, SourceFetchStage, TextStage

__all__ = [
    "STAGE_CLASSES",
    "BaseStage",
    "ChatStage",
    "ChunkStage",
    "Chunkable",
    "CredentialStage",
    "EmbedStage",
    "Embeddable",
    "Fetchable",
    "ManualExecuteStage",
    "ParseStage",
    "Queryable",
    "SourceFetchStage",
    "StageContext",
    "TextStage",
    "detect_provider",
    "group_by_source",
    "list_models",
]

STAGE_CLASSES: tuple[type[BaseStage], ...] = (
    SourceFetchStage,
    TextStage,
    ParseStage,
    ChunkStage,
    EmbedStage,
    ChatStage,
    CredentialStage,
    ManualExecuteStage,
)

# Register built-in stage kinds
for _cls in STAGE_CLASSES:
    default_registry.register("stage", _cls.kind, _cls)
