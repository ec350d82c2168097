"""Plain-text views of stories for terminals and logs."""

from __future__ import annotations

from .story import Story

EMPTY_TREE_MESSAGE = "(no tree created yet)"


def render_ascii_tree(story: Story) -> str:
    """Return the depth-first scene listing as an indented ASCII tree.

    Each line shows one scene key. The deepest level of indentation is drawn
    as ``|_``. Choice targets without a scene are listed as
    ``[key](MISSING)`` directly below the scene offering them.
    """

    if story.root is None:
        return EMPTY_TREE_MESSAGE

    def _prefix(depth: int) -> str:
        return "".join(
            "|_ " if level == depth - 1 else "   " for level in range(depth)
        )

    lines: list[str] = []
    for ref in story.get_scenes_dfs(story.root):
        lines.append(f"{_prefix(ref.depth)}{ref.key}")
        for target in ref.scene.choices:
            if target not in story:
                lines.append(f"{_prefix(ref.depth + 1)}[{target}](MISSING)")
    return "\n".join(lines)


def render_story_outline(story: Story) -> str:
    """Return a nested outline that follows every choice edge.

    Unlike :func:`render_ascii_tree` the outline labels every edge and points
    out targets without a scene. Each scene is expanded once; later edges to
    it are shown as ``key (see above)``, or ``key (cycle)`` when the scene is
    on the path leading to the edge.
    """

    if story.root is None:
        return EMPTY_TREE_MESSAGE

    lines: list[str] = []
    expanded: set[str] = set()
    path: list[str] = []
    stack: list[tuple[str, str | None, int]] = [(story.root.key, None, 0)]

    while stack:
        key, label, depth = stack.pop()
        del path[depth:]
        indent = "     " * depth
        if label is not None:
            lines.append(f"{indent[:-5]}  -> {label}")

        scene = story.get_scene(key)
        if scene is None:
            lines.append(f"{indent}{key} (MISSING)")
        elif key in path:
            lines.append(f"{indent}{key} (cycle)")
        elif key in expanded:
            lines.append(f"{indent}{key} (see above)")
        else:
            lines.append(f"{indent}{key}")
            expanded.add(key)
            path.append(key)
            for target, choice_label in reversed(list(scene.choices.items())):
                stack.append((target, choice_label, depth + 1))

    return "\n".join(lines)


def render_scene(story: Story, key: str) -> str:
    """Return a printable view of a single scene and its numbered choices."""

    scene = story.get_scene(key)
    if scene is None:
        return f"Scene '{key}' not found."

    lines = [f"{key}: {scene.text}"]
    for index, choice in enumerate(scene.get_all_choices(), start=1):
        marker = "" if choice.target in story else " (MISSING)"
        lines.append(f"  {index}. {choice.label} [{choice.target}]{marker}")
    return "\n".join(lines)


__all__ = [
    "EMPTY_TREE_MESSAGE",
    "render_ascii_tree",
    "render_scene",
    "render_story_outline",
]
