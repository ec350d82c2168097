"""The story graph: a collection of scenes linked by choices."""

from __future__ import annotations

import logging
from typing import Any, Iterator, Mapping, NamedTuple

from .scene import ChoicesInput, Scene

logger = logging.getLogger(__name__)


class SceneRef(NamedTuple):
    """Entry produced by depth-first traversal of a story."""

    key: str
    scene: Scene
    depth: int


def _default_label(scene: Scene) -> str:
    return scene.text or f"to {scene.key}"


class Story:
    """Own every scene of a story and keep their links consistent.

    Scenes are stored in creation order and the first scene added becomes the
    ``root``. Choices form a general directed graph: they may point at keys
    that do not exist yet and they may form cycles. Traversals therefore never
    assume the graph is a tree and visit each key at most once.

    Failures (duplicate keys, unknown keys, malformed payloads) are reported
    through ``False``/``None`` return values and a logged warning instead of
    exceptions.
    """

    def __init__(self) -> None:
        self.scenes: dict[str, Scene] = {}
        self.root: Scene | None = None

    def __len__(self) -> int:
        return len(self.scenes)

    def __contains__(self, key: object) -> bool:
        return key in self.scenes

    def __iter__(self) -> Iterator[Scene]:
        return iter(list(self.scenes.values()))

    def add_scene(self, scene: Scene) -> bool:
        """Insert ``scene`` and link it into the story.

        The first scene becomes the root. Any later scene without a parent is
        attached to the first scene whose choices already reference it, or to
        the root when none does. A parent that is part of the story always
        ends up with a choice leading to the new scene.

        Returns:
            ``False`` when a scene with the same key already exists.
        """

        if scene.key in self.scenes:
            logger.warning("Scene %r already exists", scene.key)
            return False

        if self.root is None:
            self.scenes[scene.key] = scene
            self.root = scene
            return True

        if scene.parent is None:
            parent = self.find_parent(scene.key)
            if parent is not None:
                scene.parent = parent
                parent.add_choice(_default_label(scene), scene.key)
            else:
                self.root.add_choice(_default_label(scene), scene.key)
                scene.parent = self.root

        self.scenes[scene.key] = scene

        if scene.parent is not None and scene.parent.key in self.scenes:
            held_parent = self.scenes[scene.parent.key]
            held_parent.add_choice(_default_label(scene), scene.key)

        return True

    def find_parent(self, key: str) -> Scene | None:
        """Return the first scene, in creation order, offering a choice to ``key``."""

        for scene in self.scenes.values():
            if key in scene.choices:
                return scene
        return None

    def get_scene(self, key: str) -> Scene | None:
        return self.scenes.get(key)

    def get_scene_depth(self, scene: Scene) -> int:
        """Count the parent hops between ``scene`` and a parentless scene.

        Returns ``-1`` when the scene's key is not part of the story. Parent
        links are trusted: a cycle of parents never terminates.
        """

        if scene.key not in self.scenes:
            return -1

        depth = 0
        current = scene
        while current.parent is not None:
            depth += 1
            current = current.parent
        return depth

    def get_scenes_dfs(self, start: Scene | None = None) -> list[SceneRef]:
        """Return the scenes reachable from ``start`` in depth-first order.

        ``start`` defaults to the root. Depths are relative to the root: a
        traversal starting elsewhere begins at the start scene's own depth.
        Each key is emitted once even when several choices (or a cycle) lead
        back to it, and choice targets without a scene are skipped.
        """

        if start is None:
            start = self.root
        if start is None:
            return []

        base_depth = 0 if start is self.root else self.get_scene_depth(start)

        result: list[SceneRef] = []
        visited: set[str] = set()
        stack: list[tuple[Scene, int]] = [(start, base_depth)]

        while stack:
            scene, depth = stack.pop()
            if scene.key in visited:
                continue
            visited.add(scene.key)
            result.append(SceneRef(scene.key, scene, depth))

            children = [
                child
                for child in (self.get_scene(key) for key in scene.choices)
                if child is not None and child.key not in visited
            ]
            # Reversed so the first choice is popped first.
            for child in reversed(children):
                stack.append((child, depth + 1))

        return result

    def has_circle(self) -> bool:
        """Return ``True`` when a choice leads back to an already completed scene.

        Scenes are scanned in depth-first order from the root and each one is
        marked complete only after its own choices were checked. This flags
        back-edges such as ``A -> B -> A`` but it is not an exhaustive cycle
        search.
        """

        completed: set[str] = set()
        for ref in self.get_scenes_dfs():
            for target in ref.scene.choices:
                next_scene = self.get_scene(target)
                if next_scene is not None and next_scene.key in completed:
                    return True
            completed.add(ref.key)
        return False

    def edit_scene(
        self, key: str, text: str | None, choices: ChoicesInput
    ) -> bool:
        """Update a scene's text and choices, returning ``True`` if anything changed."""

        scene = self.scenes.get(key)
        if scene is None:
            logger.warning("Scene %r not found", key)
            return False
        return scene.update_content(text, choices)

    def change_scene_parent(self, key: str, new_parent_key: str) -> bool:
        """Move the choice leading to ``key`` from its parent to ``new_parent_key``.

        The label of the old edge is kept. When ``new_parent_key`` is unknown
        the scene is detached: its parent becomes ``None`` and ``False`` is
        returned. Scenes that are unknown or have no parent are left untouched
        and ``False`` is returned as well.
        """

        scene = self.scenes.get(key)
        if scene is None:
            logger.warning("Scene %r not found", key)
            return False

        old_parent = scene.parent
        if old_parent is None:
            logger.warning("Scene %r has no parent to move away from", key)
            return False

        label = old_parent.choices.get(scene.key, "")
        old_parent.remove_choice(scene.key)

        new_parent = self.scenes.get(new_parent_key)
        if new_parent is None:
            logger.warning(
                "New parent %r for scene %r not found; scene detached",
                new_parent_key,
                key,
            )
            scene.parent = None
            return False

        scene.parent = new_parent
        new_parent.add_choice(label or f"to {scene.key}", scene.key)
        return True

    def remove_scene(self, key: str) -> bool:
        """Delete a scene together with every scene reachable from it.

        The parent's choice to the scene is removed first. Reachable scenes are
        collected before anything is deleted and removed deepest first.
        Choices in other scenes that pointed at removed keys are left dangling.
        """

        scene = self.scenes.get(key)
        if scene is None:
            logger.warning("Scene %r not found", key)
            return False

        if scene.parent is not None:
            scene.parent.remove_choice(scene.key)

        below = self.get_scenes_dfs(scene)
        for ref in reversed(below):
            self.scenes.pop(ref.key, None)

        if self.root is not None and self.root.key not in self.scenes:
            self.root = None
        return True

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON-compatible representation of every scene."""

        return {key: scene.to_payload() for key, scene in self.scenes.items()}

    @classmethod
    def from_payload(cls, payload: Any) -> Story | None:
        """Build a story from a ``key -> scene payload`` mapping.

        Returns ``None`` for anything other than a mapping, as soon as one
        scene fails to load, or when the mapping holds no scenes.
        """

        if not isinstance(payload, Mapping):
            logger.warning("Story payload must be an object, got %s", type(payload).__name__)
            return None

        story = cls()
        for key, value in payload.items():
            scene = Scene.from_payload(key, value)
            if scene is None:
                logger.warning("Failed to load scene %r", key)
                return None
            story.add_scene(scene)

        if not story.scenes:
            logger.warning("No scenes found in story payload")
            return None
        return story


__all__ = ["SceneRef", "Story"]
