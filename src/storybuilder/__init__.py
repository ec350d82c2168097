"""Core package for building branching choose-your-own-adventure stories."""

from .scene import Choice, Scene, SceneContentChange, normalise_choices
from .story import SceneRef, Story
from .persistence import (
    FileStoryStore,
    InMemoryStoryStore,
    StoryFormatError,
    StoryStore,
    load_story_from_file,
    load_story_from_mapping,
    save_story_to_file,
)
from .html_export import (
    deobfuscate_story_text,
    export_story_html,
    obfuscate_story_text,
    render_obfuscated_story_html,
    render_story_html,
)
from .rendering import render_ascii_tree, render_scene, render_story_outline
from .player import PlayEvent, StoryPlayer, format_event
from .settings import StoryBuilderSettings, configure_logging

__all__ = [
    "Choice",
    "Scene",
    "SceneContentChange",
    "normalise_choices",
    "SceneRef",
    "Story",
    "StoryStore",
    "InMemoryStoryStore",
    "FileStoryStore",
    "StoryFormatError",
    "load_story_from_file",
    "load_story_from_mapping",
    "save_story_to_file",
    "render_story_html",
    "render_obfuscated_story_html",
    "obfuscate_story_text",
    "deobfuscate_story_text",
    "export_story_html",
    "render_ascii_tree",
    "render_story_outline",
    "render_scene",
    "PlayEvent",
    "StoryPlayer",
    "format_event",
    "StoryBuilderSettings",
    "configure_logging",
]
