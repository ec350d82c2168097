"""Scene nodes used to build branching stories."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Sequence, Tuple, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Choice:
    """A labelled edge pointing from one scene to a target scene key."""

    label: str
    target: str

    def to_payload(self) -> dict[str, str]:
        return {"text": self.label, "next": self.target}


ChoicesInput = Union[
    None,
    Mapping[str, str],
    Sequence[Union[Choice, Tuple[str, str], Mapping[str, Any]]],
]
"""Accepted shapes for choice collections.

``None`` means "no choices", a mapping is read as ``target -> label`` and a
sequence is read as ordered pairs given as :class:`Choice` objects,
``(label, target)`` tuples or ``{"text": ..., "next": ...}`` mappings.
"""


def _iter_choice_pairs(entries: Iterable[Any]) -> Iterable[tuple[str, str]]:
    for entry in entries:
        if isinstance(entry, Choice):
            yield entry.label, entry.target
        elif isinstance(entry, Mapping):
            label = entry.get("text")
            target = entry.get("next")
            if isinstance(label, str) and isinstance(target, str):
                yield label, target
        elif isinstance(entry, tuple) and len(entry) == 2:
            label, target = entry
            if isinstance(label, str) and isinstance(target, str):
                yield label, target


def normalise_choices(choices: ChoicesInput) -> dict[str, str]:
    """Return ``choices`` as an ordered ``target -> label`` mapping.

    Mappings and sequences are filtered alike: pairs whose label or target is
    empty or not a string are dropped and the first label wins when a target
    is repeated.
    """

    if choices is None:
        return {}
    if isinstance(choices, Mapping):
        pairs: Iterable[tuple[Any, Any]] = (
            (label, target) for target, label in choices.items()
        )
    elif isinstance(choices, (str, bytes)):
        raise TypeError("choices must be a mapping or a sequence of pairs")
    else:
        pairs = _iter_choice_pairs(choices)

    normalised: dict[str, str] = {}
    for label, target in pairs:
        if not isinstance(label, str) or not isinstance(target, str):
            continue
        if not label or not target or target in normalised:
            continue
        normalised[target] = label
    return normalised


@dataclass(frozen=True)
class SceneContentChange:
    """Outcome of editing a scene's content.

    The record is truthy when either the text or the choices changed, which
    lets callers use it wherever a plain success flag is expected while still
    inspecting the previous and current state.
    """

    key: str
    previous_text: str
    text: str
    previous_choices: Mapping[str, str]
    choices: Mapping[str, str]
    text_changed: bool
    choices_changed: bool

    @property
    def changed(self) -> bool:
        return self.text_changed or self.choices_changed

    def __bool__(self) -> bool:
        return self.changed


class Scene:
    """A single node of a story.

    Each scene carries narrative ``text``, an ordered ``choices`` mapping from
    target scene key to the label shown to the reader and a ``parent``
    back-reference. The parent is a plain attribute: it records the most
    recent link established by a :class:`~storybuilder.story.Story`, it does
    not own the scene and several scenes may offer choices to the same key.
    """

    def __init__(
        self,
        key: str,
        text: str = "",
        parent: Scene | None = None,
        choices: ChoicesInput = None,
    ) -> None:
        self.key = key
        self.text = text
        self.parent = parent
        self.choices: dict[str, str] = normalise_choices(choices)

    def __repr__(self) -> str:
        parent_key = self.parent.key if self.parent is not None else None
        return (
            f"Scene(key={self.key!r}, parent={parent_key!r}, "
            f"choices={list(self.choices)!r})"
        )

    def add_choice(self, label: str, target: str) -> bool:
        """Add a choice leading to ``target``.

        Returns:
            ``True`` when the choice was added, ``False`` if the scene already
            offers a choice to ``target``. Existing labels are never replaced.
        """

        if target in self.choices:
            return False
        self.choices[target] = label
        return True

    def update_choice_text(self, target: str, label: str) -> bool:
        """Replace the label of the choice leading to ``target``."""

        if target not in self.choices:
            return False
        self.choices[target] = label
        return True

    def remove_choice(self, target: str) -> bool:
        """Remove the choice leading to ``target`` if it exists."""

        if target not in self.choices:
            return False
        del self.choices[target]
        return True

    def get_all_choices(self) -> list[Choice]:
        """Return a snapshot of the scene's choices in display order."""

        return [Choice(label, target) for target, label in self.choices.items()]

    def choices_equal(self, choices: ChoicesInput) -> bool:
        """Return ``True`` if ``choices`` matches the current choices key for key."""

        candidate = normalise_choices(choices)
        if len(candidate) != len(self.choices):
            return False
        return all(
            target in candidate and candidate[target] == label
            for target, label in self.choices.items()
        )

    def apply_content(
        self, text: str | None, choices: ChoicesInput = None
    ) -> SceneContentChange:
        """Update the text and choices, reporting what changed.

        Args:
            text: New narrative text. ``None``, empty or whitespace-only values
                leave the current text untouched.
            choices: Replacement choices. ``None`` clears every choice. The
                current mapping is only replaced when the new one differs.
        """

        previous_text = self.text
        previous_choices = dict(self.choices)

        text_changed = False
        if isinstance(text, str) and text.strip() and text != self.text:
            self.text = text
            text_changed = True

        choices_changed = False
        if not self.choices_equal(choices):
            self.choices = normalise_choices(choices)
            choices_changed = True

        return SceneContentChange(
            key=self.key,
            previous_text=previous_text,
            text=self.text,
            previous_choices=MappingProxyType(previous_choices),
            choices=MappingProxyType(dict(self.choices)),
            text_changed=text_changed,
            choices_changed=choices_changed,
        )

    def update_content(self, text: str | None, choices: ChoicesInput = None) -> bool:
        """Update the text and choices, returning ``True`` if anything changed."""

        return self.apply_content(text, choices).changed

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON-compatible representation of the scene.

        The ``choices`` field is left out for scenes without choices.
        """

        if not self.choices:
            return {"text": self.text}
        return {
            "text": self.text,
            "choices": [choice.to_payload() for choice in self.get_all_choices()],
        }

    @classmethod
    def from_payload(cls, key: str, payload: Any) -> Scene | None:
        """Build a scene from its stored representation.

        ``payload`` may be a mapping or a JSON document. ``None`` is returned
        when the payload cannot describe a scene; individual malformed
        choices are skipped.
        """

        if not key or payload is None:
            logger.warning("Cannot load scene %r: missing key or payload", key)
            return None

        if isinstance(payload, str):
            try:
                payload = json.loads(payload)
            except ValueError as exc:
                logger.warning("Failed to parse JSON for scene %r: %s", key, exc)
                return None

        if not isinstance(payload, Mapping):
            logger.warning("Scene %r must be an object definition", key)
            return None

        text = payload.get("text")
        if not isinstance(text, str):
            logger.warning("Scene %r is missing a text property", key)
            return None

        scene = cls(key, text)
        raw_choices = payload.get("choices")
        if isinstance(raw_choices, list):
            for entry in raw_choices:
                if not isinstance(entry, Mapping):
                    continue
                label = entry.get("text")
                target = entry.get("next")
                if not isinstance(label, str) or not isinstance(target, str):
                    continue
                scene.add_choice(label, target)

        return scene


__all__ = [
    "Choice",
    "ChoicesInput",
    "Scene",
    "SceneContentChange",
    "normalise_choices",
]
