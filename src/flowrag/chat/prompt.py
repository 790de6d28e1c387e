"""Jinja2 rendering of the chat system prompt.

Loads templates from a user-override directory and the built-in
templates shipped in ``flowrag/templates/``. A user template with the
same name takes precedence.
"""

from __future__ import annotations

import logging
from importlib.resources import files
from pathlib import Path
from typing import TYPE_CHECKING

import jinja2

from flowrag.exceptions import ConfigError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from flowrag.types import RetrievalResult

__all__ = ["SYSTEM_TEMPLATE", "PromptBuilder", "format_context"]

logger = logging.getLogger(__name__)

SYSTEM_TEMPLATE = "system_prompt.md.j2"


def format_context(retrieval: Sequence[RetrievalResult], delimiter: str) -> str:
    """Join retrieval hits into ``"Source: <file>\\n<content>"`` blocks."""
    return delimiter.join(f"Source: {r.source_file}\n{r.chunk.content}" for r in retrieval)


class PromptBuilder:
    """Renders the system message from instructions and retrieved context.

    Args:
        template_dir: Optional directory whose templates override the
            built-in ones.
    """

    def __init__(self, template_dir: str = "") -> None:
        search_paths: list[str] = []
        if template_dir:
            user_dir = Path(template_dir).expanduser()
            if user_dir.is_dir():
                search_paths.append(str(user_dir))
                logger.info("User template overrides enabled: %s", user_dir)
            else:
                logger.warning("Template directory %s does not exist; using built-ins", user_dir)

        builtin_dir = Path(str(files("flowrag") / "templates"))
        if not builtin_dir.is_dir():
            raise ConfigError("Built-in template directory not found — installation may be corrupted")
        search_paths.append(str(builtin_dir))

        self._env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(search_paths),
            autoescape=False,
            undefined=jinja2.StrictUndefined,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def render_system(
        self,
        system_prompt: str,
        retrieval: Sequence[RetrievalResult],
        delimiter: str,
    ) -> str:
        """Render the system message.

        Raises:
            ConfigError: If the template is missing or fails to render.
        """
        try:
            template = self._env.get_template(SYSTEM_TEMPLATE)
            rendered = template.render(
                system_prompt=system_prompt,
                context=format_context(retrieval, delimiter),
            )
        except jinja2.TemplateNotFound as e:
            raise ConfigError(f"Template not found: {SYSTEM_TEMPLATE}") from e
        except jinja2.TemplateError as e:
            raise ConfigError(f"Failed to render template {SYSTEM_TEMPLATE}: {e}") from e
        return rendered.strip()
