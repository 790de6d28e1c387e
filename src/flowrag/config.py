"""Configuration system for flowrag.

Manages runtime configuration via a TOML file with typed dataclasses
and sensible defaults for all values. Per-stage settings stored in a
node's data override the matching values here.
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field, fields
from typing import TYPE_CHECKING, TypeVar

import tomli_w

from flowrag.exceptions import ConfigError

if TYPE_CHECKING:
    from pathlib import Path

_T = TypeVar("_T")

__all__ = [
    "AutoConfigConfig",
    "ChatConfig",
    "ChunkConfig",
    "DispatchConfig",
    "EmbeddingConfig",
    "FetchConfig",
    "FlowragConfig",
    "ParseConfig",
    "ProviderSection",
    "RetrievalConfig",
    "default_config",
    "load_config",
    "save_config",
]

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant with access to repository information. "
    "Use the provided context to answer questions accurately."
)


@dataclass
class ProviderSection:
    """[provider] section — default credentials for hosts without a credential stage."""

    provider: str = "custom"
    endpoint: str = ""
    api_key_env: str = "OPENAI_API_KEY"


@dataclass
class EmbeddingConfig:
    """[embedding] section."""

    model: str = ""
    model_pattern: str = "embed"
    batch_size: int = 10
    batch_delay_seconds: float = 0.1
    timeout_seconds: float = 60.0


@dataclass
class ChatConfig:
    """[chat] section."""

    model: str = ""
    temperature: float = 0.7
    max_tokens: int = 2000
    history_window: int = 6
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    context_delimiter: str = "\n\n---\n\n"
    template_dir: str = ""
    timeout_seconds: float = 120.0
    knowledge_wait_seconds: float = 0.0


@dataclass
class RetrievalConfig:
    """[retrieval] section.

    ``adaptive_scale`` and ``adaptive_floor`` define the adaptive threshold
    ``max(best * adaptive_scale, adaptive_floor)``.
    """

    top_k: int = 5
    similarity_threshold: float = 0.3
    adaptive_scale: float = 0.7
    adaptive_floor: float = 0.2
    auto_configure: bool = True


@dataclass
class AutoConfigConfig:
    """[autoconfig] section — corpus-composition heuristics for retrieval defaults."""

    code_ratio: float = 0.5
    code_top_k: int = 3
    code_threshold: float = 0.2
    prose_top_k: int = 8
    prose_threshold: float = 0.4
    small_corpus_chunks: int = 10
    small_corpus_threshold: float = 0.1


@dataclass
class ChunkConfig:
    """[chunk] section. Sizes are characters, or tokens for the ``token`` method."""

    method: str = "recursive"
    chunk_size: int = 1000
    chunk_overlap: int = 200
    min_chunk_size: int = 100
    separators: list[str] = field(default_factory=lambda: ["\n\n", "\n", ". ", " "])


@dataclass
class ParseConfig:
    """[parse] section."""

    remove_empty_lines: bool = True
    normalize_whitespace: bool = False
    pretty_json: bool = True
    max_file_size_kb: int = 10 * 1024


@dataclass
class FetchConfig:
    """[fetch] section."""

    platform: str = "github"
    endpoint: str = ""
    ref: str = "main"
    api_key_env: str = "GITHUB_TOKEN"
    allowed_extensions: list[str] = field(
        default_factory=lambda: [
            ".txt", ".md", ".rst", ".py", ".js", ".jsx", ".ts", ".tsx", ".json",
            ".yaml", ".yml", ".toml", ".html", ".css", ".xml", ".java", ".go",
            ".rs", ".c", ".h", ".cpp", ".sh",
        ]
    )
    denied_extensions: list[str] = field(
        default_factory=lambda: [
            ".png", ".jpg", ".jpeg", ".gif", ".ico", ".pdf", ".zip", ".gz",
            ".tar", ".exe", ".dll", ".so", ".woff", ".woff2", ".lock",
        ]
    )
    include_paths: list[str] = field(default_factory=list)
    max_file_size_kb: int = 500
    concurrency: int = 8
    timeout_seconds: float = 30.0


@dataclass
class DispatchConfig:
    """[dispatch] section — trigger stagger, commit coalescing and polling intervals."""

    stagger_seconds: float = 0.5
    commit_delay_seconds: float = 1.0
    poll_interval_seconds: float = 2.0


@dataclass
class FlowragConfig:
    """Root configuration combining all sections."""

    provider: ProviderSection = field(default_factory=ProviderSection)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    chat: ChatConfig = field(default_factory=ChatConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    autoconfig: AutoConfigConfig = field(default_factory=AutoConfigConfig)
    chunk: ChunkConfig = field(default_factory=ChunkConfig)
    parse: ParseConfig = field(default_factory=ParseConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    dispatch: DispatchConfig = field(default_factory=DispatchConfig)


_SECTIONS: dict[str, type] = {
    "provider": ProviderSection,
    "embedding": EmbeddingConfig,
    "chat": ChatConfig,
    "retrieval": RetrievalConfig,
    "autoconfig": AutoConfigConfig,
    "chunk": ChunkConfig,
    "parse": ParseConfig,
    "fetch": FetchConfig,
    "dispatch": DispatchConfig,
}


def default_config() -> FlowragConfig:
    """Return a config with all default values."""
    return FlowragConfig()


def _config_to_dict(config: FlowragConfig) -> dict[str, object]:
    """Convert FlowragConfig to a nested dict suitable for TOML serialization."""
    return {name: dict(vars(getattr(config, name))) for name in _SECTIONS}


def save_config(config: FlowragConfig, path: Path) -> None:
    """Save configuration to a TOML file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = _config_to_dict(config)
    try:
        with path.open("wb") as f:
            tomli_w.dump(data, f)
        logger.info("Saved config to %s", path)
    except OSError as e:
        logger.error("Failed to save config to %s: %s", path, e)
        raise ConfigError(f"Failed to save config to {path}: {e}") from e


def _load_section(cls: type[_T], data: dict[str, object]) -> _T:
    """Load a dataclass section from a dict, ignoring unknown keys."""
    known_fields = {f.name for f in fields(cls)}  # type: ignore[arg-type]
    filtered = {k: v for k, v in data.items() if k in known_fields}
    return cls(**filtered)


def load_config(path: Path) -> FlowragConfig:
    """Load configuration from a TOML file.

    Missing sections or keys get default values.
    """
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        data = tomllib.loads(path.read_bytes().decode("utf-8"))
    except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError) as e:
        logger.error("Failed to load config from %s: %s", path, e)
        raise ConfigError(f"Failed to load config from {path}: {e}") from e

    config = FlowragConfig()
    for name, cls in _SECTIONS.items():
        section = data.get(name)
        if isinstance(section, dict):
            setattr(config, name, _load_section(cls, section))

    logger.info("Loaded config from %s", path)
    return config
