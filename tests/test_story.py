from __future__ import annotations

import json
import logging

import pytest

from storybuilder import Scene, SceneRef, Story


def _chain(*keys: str) -> Story:
    """Build a story whose scenes each lead to the next key."""

    story = Story()
    for index, key in enumerate(keys):
        scene = Scene(key, f"Scene {key}")
        if index + 1 < len(keys):
            scene.add_choice(f"Go to {keys[index + 1]}", keys[index + 1])
        story.add_scene(scene)
    return story


def _keys(refs: list[SceneRef]) -> list[str]:
    return [ref.key for ref in refs]


def test_first_scene_becomes_root() -> None:
    story = Story()
    scene_a = Scene("A", "Root Scene")

    assert story.add_scene(scene_a) is True
    assert story.root is scene_a
    assert list(story.scenes) == ["A"]
    assert scene_a.parent is None
    assert scene_a.choices == {}


def test_unreferenced_scene_is_attached_to_root() -> None:
    story = Story()
    scene_a = Scene("A", "Root Scene")
    scene_b = Scene("B", "Child Scene")
    story.add_scene(scene_a)
    story.add_scene(scene_b)

    assert scene_b.parent is scene_a
    assert scene_a.choices == {"B": "Child Scene"}


def test_default_label_falls_back_to_key() -> None:
    story = Story()
    story.add_scene(Scene("A", "Root Scene"))
    story.add_scene(Scene("B"))

    assert story.root.choices == {"B": "to B"}


def test_referenced_scene_is_attached_to_first_referencing_scene() -> None:
    story = Story()
    scene_a = Scene("A", "Root")
    scene_b = Scene("B", "Middle", choices={"C": "Climb"})
    scene_x = Scene("X", "Other", choices={"C": "Crawl"})
    story.add_scene(scene_a)
    story.add_scene(scene_b)
    story.add_scene(scene_x)

    scene_c = Scene("C", "Top")
    story.add_scene(scene_c)

    assert scene_c.parent is scene_b
    assert scene_b.choices == {"C": "Climb"}
    assert "C" not in scene_a.choices


def test_explicit_parent_receives_choice() -> None:
    story = Story()
    scene_a = Scene("A", "Root Scene")
    story.add_scene(scene_a)
    scene_b = Scene("B", "Child Scene", scene_a)
    story.add_scene(scene_b)

    assert scene_b.parent is scene_a
    assert scene_a.choices == {"B": "Child Scene"}


def test_duplicate_key_is_rejected(caplog) -> None:
    story = Story()
    original = Scene("A", "Root")
    story.add_scene(original)

    with caplog.at_level(logging.WARNING, logger="storybuilder.story"):
        assert story.add_scene(Scene("A", "Impostor")) is False

    assert story.scenes["A"] is original
    assert "already exists" in caplog.text


def test_scene_depth_follows_parent_links() -> None:
    story = Story()
    scene_a = Scene("A", "Root Scene")
    scene_b = Scene("B", "Child Scene")
    scene_c = Scene("C", "Grandchild Scene")
    scene_d = Scene("D", "Great-grandchild Scene")
    scene_b.parent = scene_a
    scene_c.parent = scene_b
    scene_d.parent = scene_c
    for scene in (scene_a, scene_b, scene_c, scene_d):
        story.add_scene(scene)

    assert [story.get_scene_depth(s) for s in (scene_a, scene_b, scene_c, scene_d)] == [
        0,
        1,
        2,
        3,
    ]


def test_scene_depth_of_unknown_scene_is_negative() -> None:
    story = Story()
    story.add_scene(Scene("A", "Root Scene"))

    assert story.get_scene_depth(Scene("Z", "Scene Not In Story")) == -1


def test_dfs_on_chain_returns_scenes_in_order() -> None:
    story = _chain("A", "B", "C")

    refs = story.get_scenes_dfs()

    assert _keys(refs) == ["A", "B", "C"]
    assert [ref.depth for ref in refs] == [0, 1, 2]
    assert refs[1].scene is story.get_scene("B")


def test_dfs_on_empty_story_is_empty() -> None:
    assert Story().get_scenes_dfs() == []


def test_dfs_visits_each_scene_once_with_back_edge() -> None:
    story = _chain("A", "B", "C")
    story.get_scene("C").add_choice("Go to A", "A")

    assert _keys(story.get_scenes_dfs()) == ["A", "B", "C"]


def test_dfs_preserves_choice_order_for_siblings(forest_story: Story) -> None:
    refs = forest_story.get_scenes_dfs()

    assert _keys(refs) == ["start", "left", "cave", "right"]
    assert [ref.depth for ref in refs] == [0, 1, 2, 1]


def test_dfs_skips_dangling_targets() -> None:
    story = Story()
    root = Scene("A", "Root", choices={"ghost": "Follow the ghost"})
    story.add_scene(root)
    story.add_scene(Scene("B", "Real"))

    assert _keys(story.get_scenes_dfs()) == ["A", "B"]


def test_dfs_from_inner_scene_uses_its_depth(forest_story: Story) -> None:
    refs = forest_story.get_scenes_dfs(forest_story.get_scene("left"))

    assert [(ref.key, ref.depth) for ref in refs] == [("left", 1), ("cave", 2)]


@pytest.mark.parametrize(
    ("edges", "expected"),
    [
        ({"A": ["B"], "B": ["C"], "C": ["A"]}, True),
        ({"A": ["B"], "B": ["A"]}, True),
        ({"A": ["B"], "B": ["C"], "C": []}, False),
        ({"A": []}, False),
        # Edges into an already scanned scene count, even without a cycle.
        ({"A": ["B", "C"], "B": [], "C": ["B"]}, True),
        ({"A": ["B", "C"], "B": ["D"], "C": ["D"], "D": []}, True),
        # Converging on a scene that is scanned later does not count.
        ({"A": ["B", "C"], "B": ["C"], "C": []}, False),
    ],
)
def test_has_circle(edges, expected) -> None:
    story = Story()
    for key, targets in edges.items():
        story.add_scene(
            Scene(key, f"Scene {key}", choices=[(f"Go to {t}", t) for t in targets])
        )

    assert story.has_circle() is expected


def test_has_circle_on_empty_story() -> None:
    assert Story().has_circle() is False


def test_has_circle_ignores_scenes_unreachable_from_root() -> None:
    story = Story()
    root = Scene("A", "Root")
    story.add_scene(root)
    story.add_scene(Scene("B", "Island", choices={"C": "Across"}))
    story.add_scene(Scene("C", "Shore", choices={"B": "Back"}))
    root.remove_choice("B")

    assert story.has_circle() is False


def test_edit_scene_replaces_choices() -> None:
    story = Story()
    scene_a = Scene("A", "Root Scene")
    story.add_scene(scene_a)

    new_choices = {"choice1": "option1", "choice2": "option2"}

    assert story.edit_scene("A", None, new_choices) is True
    assert scene_a.choices == new_choices


def test_edit_scene_unknown_key_returns_false() -> None:
    assert Story().edit_scene("Z", None, {"choice1": "option1"}) is False


def test_edit_scene_with_none_clears_choices(forest_story: Story) -> None:
    assert forest_story.edit_scene("left", None, None) is True
    assert forest_story.get_scene("left").choices == {}


def test_edit_scene_with_equal_choices_depends_on_text(forest_story: Story) -> None:
    current = dict(forest_story.get_scene("left").choices)

    assert forest_story.edit_scene("left", "Take the left path", current) is False
    assert forest_story.edit_scene("left", "A narrow trail", current) is True
    assert forest_story.get_scene("left").text == "A narrow trail"


def test_change_scene_parent_to_same_parent_keeps_label() -> None:
    story = Story()
    scene_a = Scene("A", "Root Scene")
    scene_b = Scene("B", "Child Scene")
    scene_a.add_choice("to B", "B")
    story.add_scene(scene_a)
    story.add_scene(scene_b)

    assert story.change_scene_parent("B", "A") is True
    assert scene_b.parent is scene_a
    assert scene_a.choices == {"B": "to B"}


def test_change_scene_parent_moves_edge_and_preserves_label() -> None:
    story = Story()
    scene_a = Scene("A", "Root Scene")
    scene_b = Scene("B", "Child Scene")
    scene_c = Scene("C", "Grandchild Scene")
    scene_a.add_choice("to B", "B")
    scene_b.add_choice("Climb to C", "C")
    story.add_scene(scene_a)
    story.add_scene(scene_b)
    story.add_scene(scene_c)

    assert story.change_scene_parent("C", "A") is True
    assert scene_c.parent is scene_a
    assert scene_a.choices["C"] == "Climb to C"
    assert "C" not in scene_b.choices


def test_change_scene_parent_to_unknown_scene_detaches() -> None:
    story = Story()
    scene_a = Scene("A", "Root Scene")
    scene_b = Scene("B", "Child Scene")
    story.add_scene(scene_a)
    story.add_scene(scene_b)

    assert story.change_scene_parent("B", "Z") is False
    assert scene_b.parent is None
    assert "B" not in scene_a.choices


def test_change_scene_parent_without_parent_is_a_no_op(caplog) -> None:
    story = Story()
    scene_a = Scene("A", "Root Scene")
    story.add_scene(scene_a)
    story.add_scene(Scene("B", "Child Scene"))

    with caplog.at_level(logging.WARNING, logger="storybuilder.story"):
        assert story.change_scene_parent("A", "B") is False
        assert story.change_scene_parent("missing", "A") is False

    assert scene_a.parent is None
    assert scene_a.choices == {"B": "Child Scene"}
    assert len(caplog.records) == 2


def test_remove_root_removes_chained_descendants() -> None:
    story = _chain("A", "B", "C")

    assert story.remove_scene("A") is True
    assert story.scenes == {}
    assert story.root is None


def test_remove_scene_cascades_and_unlinks_parent(forest_story: Story) -> None:
    assert forest_story.remove_scene("left") is True

    assert list(forest_story.scenes) == ["start", "right"]
    assert forest_story.get_scene("start").choices == {"right": "Take the right path"}


def test_remove_scene_unknown_key_mutates_nothing(forest_story: Story) -> None:
    before = forest_story.to_payload()

    assert forest_story.remove_scene("nowhere") is False
    assert forest_story.to_payload() == before


def test_remove_scene_leaves_other_references_dangling() -> None:
    story = Story()
    story.add_scene(Scene("A", "Root"))
    story.add_scene(Scene("B", "Branch"))
    story.add_scene(Scene("C", "Shortcut", choices={"B": "Back to B"}))

    story.remove_scene("B")

    assert "B" not in story
    assert story.get_scene("C").choices == {"B": "Back to B"}


def test_story_payload_round_trip(forest_story: Story) -> None:
    first = json.dumps(forest_story.to_payload())
    restored = Story.from_payload(json.loads(first))

    assert restored is not None
    assert json.dumps(restored.to_payload()) == first
    assert restored.root.key == "start"
    assert restored.get_scene("cave").parent is restored.get_scene("left")


@pytest.mark.parametrize(
    "payload",
    [
        None,
        [],
        {},
        {"start": {"text": "Fine"}, "broken": {"choices": []}},
    ],
)
def test_story_from_payload_rejects_invalid_payloads(payload) -> None:
    assert Story.from_payload(payload) is None


def test_story_container_protocol(forest_story: Story) -> None:
    assert len(forest_story) == 4
    assert "cave" in forest_story
    assert "ghost" not in forest_story
    assert [scene.key for scene in forest_story] == ["start", "left", "cave", "right"]
