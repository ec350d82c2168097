"""Loading and saving stories as JSON documents."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Mapping

from .story import Story

logger = logging.getLogger(__name__)


class StoryFormatError(ValueError):
    """Raised when a document cannot be turned into a :class:`Story`."""


def load_story_from_mapping(payload: Mapping[str, Any]) -> Story:
    """Build a story from a parsed ``key -> scene`` mapping.

    Raises:
        StoryFormatError: If the payload is not an object, a scene is
            malformed or no scene is defined.
    """

    if not isinstance(payload, Mapping):
        raise StoryFormatError("Story files must contain an object at the top level.")

    story = Story.from_payload(payload)
    if story is None:
        raise StoryFormatError("Story payload does not describe a valid story.")
    return story


def load_story_from_file(path: str | Path) -> Story:
    """Load a story from a JSON file on disk."""

    data_path = Path(path)
    try:
        with data_path.open("r", encoding="utf-8") as handle:
            raw_data = json.load(handle)
    except json.JSONDecodeError as exc:
        raise StoryFormatError(f"'{data_path}' is not valid JSON: {exc}") from exc

    story = load_story_from_mapping(raw_data)
    logger.info("Loaded %d scenes from %s", len(story.scenes), data_path)
    return story


def dump_story(story: Story, *, indent: int | None = 2) -> str:
    """Return the JSON document describing ``story``."""

    return json.dumps(story.to_payload(), indent=indent, ensure_ascii=False)


def save_story_to_file(story: Story, path: str | Path, *, indent: int | None = 2) -> Path:
    """Write ``story`` to ``path`` as UTF-8 JSON and return the written path."""

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(dump_story(story, indent=indent), encoding="utf-8")
    logger.info("Saved %d scenes to %s", len(story.scenes), target)
    return target


def clone_story(story: Story) -> Story:
    """Return an independent copy of ``story`` rebuilt from its payload."""

    payload = story.to_payload()
    if not payload:
        return Story()
    return load_story_from_mapping(payload)


class StoryStore(ABC):
    """Interface describing how stories are persisted."""

    @abstractmethod
    def save(self, story_id: str, story: Story) -> None:
        """Persist the story for later retrieval."""

    @abstractmethod
    def load(self, story_id: str) -> Story:
        """Return the story stored under ``story_id``.

        Raises:
            KeyError: If the story cannot be found.
        """

    @abstractmethod
    def delete(self, story_id: str) -> None:
        """Remove the stored story if it exists."""

    @abstractmethod
    def list_stories(self) -> List[str]:
        """Return all story identifiers held by this store."""


class InMemoryStoryStore(StoryStore):
    """Keep story payloads in local process memory."""

    def __init__(self) -> None:
        self._stories: Dict[str, Dict[str, Any]] = {}

    def save(self, story_id: str, story: Story) -> None:
        self._stories[_validate_story_id(story_id)] = story.to_payload()

    def load(self, story_id: str) -> Story:
        key = _validate_story_id(story_id)
        try:
            payload = self._stories[key]
        except KeyError as exc:
            raise KeyError(f"Story '{story_id}' does not exist") from exc
        return load_story_from_mapping(payload)

    def delete(self, story_id: str) -> None:
        key = _validate_story_id(story_id)
        self._stories.pop(key, None)

    def list_stories(self) -> List[str]:
        return sorted(self._stories.keys())


class FileStoryStore(StoryStore):
    """Persist stories as JSON files inside a directory."""

    def __init__(self, storage_dir: Path) -> None:
        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    def save(self, story_id: str, story: Story) -> None:
        save_story_to_file(story, self._story_path(story_id))

    def load(self, story_id: str) -> Story:
        story_file = self._story_path(story_id)
        if not story_file.exists():
            raise KeyError(f"Story '{story_id}' does not exist")
        return load_story_from_file(story_file)

    def delete(self, story_id: str) -> None:
        story_file = self._story_path(story_id)
        if story_file.exists():
            story_file.unlink()

    def list_stories(self) -> List[str]:
        return sorted(
            story_path.stem
            for story_path in self.storage_dir.glob("*.json")
            if story_path.is_file()
        )

    def _story_path(self, story_id: str) -> Path:
        validated = _validate_story_id(story_id)
        return self.storage_dir / f"{validated}.json"


def _validate_story_id(story_id: str) -> str:
    if not isinstance(story_id, str):
        raise TypeError("story_id must be a string")
    stripped = story_id.strip()
    if not stripped:
        raise ValueError("story_id must be a non-empty string")
    if "/" in stripped or "\\" in stripped or stripped.startswith("."):
        raise ValueError("story_id must not contain path separators")
    return stripped


__all__ = [
    "FileStoryStore",
    "InMemoryStoryStore",
    "StoryFormatError",
    "StoryStore",
    "clone_story",
    "dump_story",
    "load_story_from_file",
    "load_story_from_mapping",
    "save_story_to_file",
]
