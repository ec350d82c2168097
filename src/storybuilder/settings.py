"""Configuration helpers for the story builder tools and editor service."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

DEFAULT_EXPORT_KEY = "9oj7k&7C@b@W"
"""Key used to obfuscate exported HTML players when none is configured."""

LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def _normalise_path(value: str | None) -> Path | None:
    if value is None:
        return None

    trimmed = value.strip()
    if not trimmed:
        return None

    return Path(trimmed).expanduser()


def _normalise_string(value: str | None, *, default: str) -> str:
    if value is None:
        return default

    trimmed = value.strip()
    return trimmed or default


def _normalise_log_level(value: str | None) -> str:
    level = _normalise_string(value, default="WARNING").upper()
    if level not in LOG_LEVELS:
        raise ValueError(
            "STORYBUILDER_LOG_LEVEL must be one of: " + ", ".join(LOG_LEVELS) + "."
        )
    return level


@dataclass(frozen=True)
class StoryBuilderSettings:
    """Runtime settings shared by the CLI and the HTTP editor.

    Values are read from environment variables so deployments can be
    configured without code changes. Empty strings are treated as unset and
    paths support ``~`` prefixes.
    """

    story_path: Path | None = None
    store_dir: Path | None = None
    start_scene: str = "start"
    export_key: str = DEFAULT_EXPORT_KEY
    log_level: str = "WARNING"

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None
    ) -> "StoryBuilderSettings":
        """Return settings populated from ``environ``.

        Args:
            environ: Optional mapping of environment variables. When omitted,
                :data:`os.environ` is used.

        Raises:
            ValueError: If ``STORYBUILDER_LOG_LEVEL`` names an unknown level.
        """

        source = environ if environ is not None else os.environ

        return cls(
            story_path=_normalise_path(source.get("STORYBUILDER_STORY_PATH")),
            store_dir=_normalise_path(source.get("STORYBUILDER_STORE_DIR")),
            start_scene=_normalise_string(
                source.get("STORYBUILDER_START_SCENE"), default="start"
            ),
            export_key=_normalise_string(
                source.get("STORYBUILDER_EXPORT_KEY"), default=DEFAULT_EXPORT_KEY
            ),
            log_level=_normalise_log_level(source.get("STORYBUILDER_LOG_LEVEL")),
        )


def configure_logging(level: str = "WARNING") -> None:
    """Configure the root logger for command-line use."""

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
    )


__all__ = [
    "DEFAULT_EXPORT_KEY",
    "LOG_LEVELS",
    "StoryBuilderSettings",
    "configure_logging",
]
