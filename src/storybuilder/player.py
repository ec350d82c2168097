"""Walk through a story the way a reader would."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence, Tuple

from .scene import Choice
from .story import Story


@dataclass(frozen=True)
class PlayEvent:
    """What the reader sees at one step of a play session."""

    key: str
    text: str
    choices: Sequence[Choice] = field(default_factory=tuple)
    missing: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "choices", tuple(self.choices))

    @property
    def has_choices(self) -> bool:
        """Return ``True`` when the event offers at least one choice."""

        return bool(self.choices)

    @property
    def is_ending(self) -> bool:
        """Return ``True`` when the reader cannot continue from here."""

        return not self.choices

    def iter_choice_targets(self) -> Tuple[str, ...]:
        return tuple(choice.target for choice in self.choices)


class StoryPlayer:
    """Keep track of a reader's position inside a :class:`Story`.

    The player never mutates the story. Choices that lead to keys without a
    scene produce a ``missing`` event so authors can spot unfinished branches
    while play-testing.
    """

    def __init__(self, story: Story, start_key: str | None = None) -> None:
        if start_key is None:
            if story.root is None:
                raise ValueError("Cannot play a story without scenes.")
            start_key = story.root.key
        self.story = story
        self.start_key = start_key
        self.current_key = start_key
        self._history: list[str] = []

    @property
    def history(self) -> Tuple[str, ...]:
        """Keys visited before the current scene, oldest first."""

        return tuple(self._history)

    def current_event(self) -> PlayEvent:
        scene = self.story.get_scene(self.current_key)
        if scene is None:
            return PlayEvent(
                key=self.current_key,
                text=f"Scene '{self.current_key}' not found.",
                missing=True,
            )
        return PlayEvent(
            key=scene.key, text=scene.text, choices=scene.get_all_choices()
        )

    def resolve_choice(self, selection: str) -> Choice | None:
        """Match ``selection`` against the current choices.

        A selection may be a 1-based index, a target key or a label; labels
        are compared case-insensitively.
        """

        choices = self.current_event().choices
        cleaned = selection.strip()
        if not cleaned:
            return None

        if cleaned.isdecimal():
            index = int(cleaned)
            if 1 <= index <= len(choices):
                return choices[index - 1]
            return None

        for choice in choices:
            if choice.target == cleaned:
                return choice
        lowered = cleaned.lower()
        for choice in choices:
            if choice.label.strip().lower() == lowered:
                return choice
        return None

    def choose(self, selection: str) -> PlayEvent | None:
        """Follow the matching choice and return the new event.

        Returns ``None`` and stays in place when nothing matches.
        """

        choice = self.resolve_choice(selection)
        if choice is None:
            return None
        self._history.append(self.current_key)
        self.current_key = choice.target
        return self.current_event()

    def back(self) -> PlayEvent | None:
        """Return to the previously visited scene, if any."""

        if not self._history:
            return None
        self.current_key = self._history.pop()
        return self.current_event()

    def restart(self) -> PlayEvent:
        self._history.clear()
        self.current_key = self.start_key
        return self.current_event()


def format_event(event: PlayEvent) -> str:
    """Create a printable representation of a play event."""

    lines = [f"== {event.key} ==", event.text]
    if event.choices:
        lines.append("")
        for index, choice in enumerate(event.choices, start=1):
            lines.append(f"[{index}] {choice.label}")
    elif not event.missing:
        lines.append("")
        lines.append("The End.")
    return "\n".join(lines)


__all__ = ["PlayEvent", "StoryPlayer", "format_event"]
