"""Export stories as standalone HTML players."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from string import Template
from typing import Any

from .story import Story

logger = logging.getLogger(__name__)


_VIEWER_STYLE = """
    body { font-family: system-ui, sans-serif; }
    h2 { color: #0f172a; margin-bottom: 0.25rem; }
    #game {
        background: #f1f5f9;
        border: 1px solid #cbd5e1;
        padding: 1rem;
        border-radius: 8px;
        margin: 0 auto;
        max-width: 800px;
        white-space: pre-wrap;
        box-shadow: 0 4px 12px rgba(0,0,0,0.06);
    }
    #game button {
        background-color: #3b82f6;
        width: 100%;
        color: white;
        border: none;
        padding: 0.6rem 1rem;
        border-radius: 6px;
        cursor: pointer;
        margin-top: 0.5rem;
        font-weight: 500;
    }
"""

_SHOW_SCENE_SCRIPT = """
    function showScene(key) {
        const container = document.getElementById("game");
        container.innerHTML = "";
        const scene = story ? story[key] : null;

        const title = document.createElement("h2");
        title.textContent = key;
        container.appendChild(title);

        if (!scene) {
            const missing = document.createElement("p");
            missing.textContent = "Scene '" + key + "' not found.";
            container.appendChild(missing);
            return;
        }

        const text = document.createElement("p");
        text.textContent = scene.text;
        container.appendChild(text);

        for (const choice of scene.choices || []) {
            const button = document.createElement("button");
            button.textContent = choice.text;
            button.addEventListener("click", () => showScene(choice.next));
            container.appendChild(button);
            container.appendChild(document.createElement("br"));
        }
    }
"""

_PLAIN_TEMPLATE = Template(
    """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>$title</title>
    <style>$style</style>
</head>
<body>
<div id="game"></div>
<script>
    const story = $story_json;
$show_scene
    showScene($start_json);
</script>
</body>
</html>
"""
)

_OBFUSCATED_TEMPLATE = Template(
    """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>$title</title>
    <style>$style</style>
</head>
<body>
<div id="game"></div>
<script>
    const ENCODED_STORY = $encoded_json;
    const DECODING_KEY = $key_json;
    let story = null;
$show_scene
    function decodeStory(encodedHex, key) {
        const encoded = new Uint8Array(encodedHex.length / 2);
        for (let i = 0; i < encodedHex.length; i += 2) {
            encoded[i / 2] = parseInt(encodedHex.slice(i, i + 2), 16);
        }
        const keyBytes = new TextEncoder().encode(key);
        const decoded = new Uint8Array(encoded.length);
        for (let i = 0; i < encoded.length; i++) {
            decoded[i] = encoded[i] ^ keyBytes[i % keyBytes.length] ^ (i & 0xFF);
        }
        return JSON.parse(new TextDecoder().decode(decoded));
    }

    try {
        story = decodeStory(ENCODED_STORY, DECODING_KEY);
    } catch (error) {
        console.error("Decoding the story failed:", error);
    }
    showScene($start_json);
</script>
</body>
</html>
"""
)


def _script_json(value: Any) -> str:
    """Serialise ``value`` for inclusion inside an inline ``<script>`` block."""

    return json.dumps(value, ensure_ascii=False).replace("</", "<\\/")


def _resolve_start_key(story: Story, start_key: str | None) -> str:
    if start_key is not None:
        return start_key
    if story.root is None:
        raise ValueError("Cannot export a story without scenes.")
    return story.root.key


def _xor_bytes(data: bytes, key: str) -> bytes:
    key_bytes = key.encode("utf-8")
    if not key_bytes:
        raise ValueError("Obfuscation key must be a non-empty string.")
    return bytes(
        byte ^ key_bytes[index % len(key_bytes)] ^ (index & 0xFF)
        for index, byte in enumerate(data)
    )


def obfuscate_story_text(text: str, key: str) -> str:
    """Scramble ``text`` with ``key`` and return the result as a hex string.

    This is a deterrent against casual scraping, not encryption.
    """

    return _xor_bytes(text.encode("utf-8"), key).hex()


def deobfuscate_story_text(encoded: str, key: str) -> str:
    """Reverse :func:`obfuscate_story_text`."""

    try:
        raw = bytes.fromhex(encoded)
    except ValueError as exc:
        raise ValueError("Encoded story must be a hex string.") from exc
    return _xor_bytes(raw, key).decode("utf-8")


def render_story_html(story: Story, *, start_key: str | None = None) -> str:
    """Return a self-contained HTML page that plays ``story``."""

    start = _resolve_start_key(story, start_key)
    return _PLAIN_TEMPLATE.substitute(
        title="Story Viewer",
        style=_VIEWER_STYLE,
        story_json=_script_json(story.to_payload()),
        show_scene=_SHOW_SCENE_SCRIPT,
        start_json=_script_json(start),
    )


def render_obfuscated_story_html(
    story: Story, key: str, *, start_key: str | None = None
) -> str:
    """Return an HTML player whose story data is obfuscated with ``key``."""

    start = _resolve_start_key(story, start_key)
    story_text = json.dumps(story.to_payload(), ensure_ascii=False)
    return _OBFUSCATED_TEMPLATE.substitute(
        title="Story Viewer",
        style=_VIEWER_STYLE,
        encoded_json=_script_json(obfuscate_story_text(story_text, key)),
        key_json=_script_json(key),
        show_scene=_SHOW_SCENE_SCRIPT,
        start_json=_script_json(start),
    )


def export_story_html(
    story: Story,
    path: str | Path,
    *,
    obfuscation_key: str | None = None,
    start_key: str | None = None,
) -> Path:
    """Write an HTML player for ``story`` to ``path``.

    The story data is obfuscated when ``obfuscation_key`` is provided.
    """

    if obfuscation_key is None:
        document = render_story_html(story, start_key=start_key)
    else:
        document = render_obfuscated_story_html(
            story, obfuscation_key, start_key=start_key
        )

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(document, encoding="utf-8")
    logger.info("Exported story to %s", target)
    return target


__all__ = [
    "deobfuscate_story_text",
    "export_story_html",
    "obfuscate_story_text",
    "render_obfuscated_story_html",
    "render_story_html",
]
