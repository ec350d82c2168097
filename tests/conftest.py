"""Test configuration for the story builder project."""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import json
from typing import Any

import pytest

from storybuilder import Scene, Story


def build_forest_story() -> Story:
    """Return a small branching story used across the test-suite.

    The structure is ``start -> (left -> cave, right)``.
    """

    story = Story()
    start = Scene("start", "You wake up at a fork in the forest.")
    story.add_scene(start)
    left = Scene("left", "Take the left path", start)
    story.add_scene(left)
    story.add_scene(Scene("cave", "Enter the cave", left))
    story.add_scene(Scene("right", "Take the right path", start))
    return story


FOREST_PAYLOAD: dict[str, Any] = {
    "start": {
        "text": "You wake up at a fork in the forest.",
        "choices": [
            {"text": "Take the left path", "next": "left"},
            {"text": "Take the right path", "next": "right"},
        ],
    },
    "left": {
        "text": "Take the left path",
        "choices": [{"text": "Enter the cave", "next": "cave"}],
    },
    "cave": {"text": "Enter the cave"},
    "right": {"text": "Take the right path"},
}


@pytest.fixture
def forest_story() -> Story:
    return build_forest_story()


@pytest.fixture
def forest_story_path(tmp_path: Path) -> Path:
    path = tmp_path / "forest.json"
    path.write_text(json.dumps(FOREST_PAYLOAD, indent=2), encoding="utf-8")
    return path
