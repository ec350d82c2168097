"""Command-line entry point for the branching story builder."""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Sequence, TextIO

from storybuilder import (
    PlayEvent,
    Story,
    StoryBuilderSettings,
    StoryFormatError,
    StoryPlayer,
    configure_logging,
    export_story_html,
    format_event,
    load_story_from_file,
    render_ascii_tree,
    render_story_outline,
)
from storybuilder.settings import LOG_LEVELS

logger = logging.getLogger("storybuilder.cli")


class TranscriptLogger:
    """Structured writer that records play sessions for review."""

    def __init__(self, stream: TextIO) -> None:
        self._stream = stream
        self._turn = 0

    def log_player_input(self, text: str) -> None:
        """Record the reader's latest command."""

        formatted = text if text else "(empty)"
        self._write(f"Reader input: {formatted}")
        self._stream.flush()

    def log_event(self, event: PlayEvent) -> None:
        """Record the scene shown to the reader and its choices."""

        self._turn += 1
        self._write("")
        self._write(f"=== Turn {self._turn} ===")
        self._write(f"Scene: {event.key}" + (" (missing)" if event.missing else ""))
        self._write("Text:")
        for line in event.text.splitlines() or ("",):
            self._write(f"  {line}")

        if event.choices:
            self._write("Choices:")
            for choice in event.choices:
                self._write(f"  [{choice.target}] {choice.label}")
        else:
            self._write("Choices: (none)")

        self._stream.flush()

    def _write(self, line: str) -> None:
        self._stream.write(f"{line}\n")


_PLAY_HELP = (
    "Commands:\n"
    "  <number>, <scene key> or <choice text>  follow a choice\n"
    "  back      return to the previous scene\n"
    "  restart   start again from the first scene\n"
    "  help      show this overview\n"
    "  quit      leave the story"
)


def run_play(
    player: StoryPlayer,
    *,
    transcript_logger: TranscriptLogger | None = None,
) -> None:
    """Drive a small interactive reading loop using ``input``/``print``."""

    print("Type 'help' for the available commands or 'quit' to stop reading.")
    print()

    def _show(event: PlayEvent) -> None:
        if transcript_logger is not None:
            transcript_logger.log_event(event)
        print(format_event(event))

    _show(player.current_event())

    while True:
        try:
            raw = input("> ")
        except EOFError:
            print()
            break

        if transcript_logger is not None:
            transcript_logger.log_player_input(raw)

        command = raw.strip()
        lowered = command.lower()
        if lowered in {"quit", "q", "exit"}:
            break
        if not command:
            continue
        if lowered in {"help", "?"}:
            print(_PLAY_HELP)
            continue
        if lowered == "back":
            event = player.back()
            if event is None:
                print("You are already at the beginning.")
                continue
            _show(event)
            continue
        if lowered == "restart":
            _show(player.restart())
            continue

        event = player.choose(command)
        if event is None:
            targets = ", ".join(player.current_event().iter_choice_targets())
            if targets:
                print(f"'{command}' is not one of the choices. Try one of: {targets}.")
            else:
                print("This path ends here. Type 'back', 'restart' or 'quit'.")
            continue
        _show(event)

    print("Thanks for reading!")


def _resolve_story_path(path: Path | None, settings: StoryBuilderSettings) -> Path:
    resolved = path if path is not None else settings.story_path
    if resolved is None:
        print("No story file given. Pass a path or set STORYBUILDER_STORY_PATH.")
        raise SystemExit(2)
    return resolved


def _load_story(path: Path) -> Story:
    try:
        return load_story_from_file(path)
    except (OSError, StoryFormatError) as exc:
        print(f"Failed to load story from '{path}': {exc}")
        raise SystemExit(2) from exc


def _command_tree(args: argparse.Namespace, settings: StoryBuilderSettings) -> int:
    story = _load_story(_resolve_story_path(args.story, settings))
    print(render_ascii_tree(story))
    return 0


def _command_outline(args: argparse.Namespace, settings: StoryBuilderSettings) -> int:
    story = _load_story(_resolve_story_path(args.story, settings))
    print(render_story_outline(story))
    return 0


def _command_check(args: argparse.Namespace, settings: StoryBuilderSettings) -> int:
    story = _load_story(_resolve_story_path(args.story, settings))

    reachable = {ref.key for ref in story.get_scenes_dfs()}
    unreachable = [key for key in story.scenes if key not in reachable]
    dangling = [
        (scene.key, target)
        for scene in story
        for target in scene.choices
        if target not in story
    ]

    lines = [
        "Story Check",
        "===========",
        f"Root scene: {story.root.key if story.root is not None else '(none)'}",
        f"Scenes: {len(story)} ({len(reachable)} reachable)",
        "Cycle detected: " + ("yes" if story.has_circle() else "no"),
    ]
    if dangling:
        lines.append("Choices leading to missing scenes:")
        lines.extend(f"- {source} -> {target}" for source, target in dangling)
    if unreachable:
        lines.append("Scenes not reachable from the root:")
        lines.extend(f"- {key}" for key in unreachable)
    if not dangling and not unreachable:
        lines.append("No structural issues detected.")

    print("\n".join(lines))
    return 1 if dangling or unreachable else 0


def _command_play(args: argparse.Namespace, settings: StoryBuilderSettings) -> int:
    story = _load_story(_resolve_story_path(args.story, settings))

    start_key = args.start
    if start_key is None and settings.start_scene in story:
        start_key = settings.start_scene
    player = StoryPlayer(story, start_key=start_key)

    if args.log_file is None:
        run_play(player)
        return 0

    args.log_file.parent.mkdir(parents=True, exist_ok=True)
    with args.log_file.open("a", encoding="utf-8") as log_handle:
        run_play(player, transcript_logger=TranscriptLogger(log_handle))
    return 0


def _command_export_html(
    args: argparse.Namespace, settings: StoryBuilderSettings
) -> int:
    story = _load_story(_resolve_story_path(args.story, settings))

    key: str | None = None
    if args.obfuscate:
        key = args.key if args.key else settings.export_key
    elif args.key:
        print("--key only applies together with --obfuscate.")
        return 2

    try:
        target = export_story_html(
            story, args.output, obfuscation_key=key, start_key=args.start
        )
    except ValueError as exc:
        print(f"Failed to export story: {exc}")
        return 2
    print(f"Exported story to '{target}'.")
    return 0


def _command_serve(args: argparse.Namespace, settings: StoryBuilderSettings) -> int:
    import uvicorn

    from storybuilder.api import create_app

    if args.story is not None:
        settings = replace(settings, story_path=args.story)
    app = create_app(settings=settings)
    uvicorn.run(app, host=args.host, port=args.port, log_level=settings.log_level.lower())
    return 0


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Branching story builder")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        help="Logging level (defaults to STORYBUILDER_LOG_LEVEL or WARNING).",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def _story_argument(subparser: argparse.ArgumentParser) -> None:
        subparser.add_argument(
            "story",
            nargs="?",
            type=Path,
            help=(
                "Path to a JSON story file. Defaults to STORYBUILDER_STORY_PATH "
                "when omitted."
            ),
        )

    tree_parser = subparsers.add_parser("tree", help="Print the story as an ASCII tree.")
    _story_argument(tree_parser)
    tree_parser.set_defaults(handler=_command_tree)

    outline_parser = subparsers.add_parser(
        "outline", help="Print every choice edge as a nested outline."
    )
    _story_argument(outline_parser)
    outline_parser.set_defaults(handler=_command_outline)

    check_parser = subparsers.add_parser(
        "check", help="Report cycles, missing scenes and unreachable scenes."
    )
    _story_argument(check_parser)
    check_parser.set_defaults(handler=_command_check)

    play_parser = subparsers.add_parser("play", help="Read the story interactively.")
    _story_argument(play_parser)
    play_parser.add_argument("--start", help="Scene key to start reading from.")
    play_parser.add_argument(
        "--log-file",
        type=Path,
        help="Path to a transcript log capturing scenes and reader input.",
    )
    play_parser.set_defaults(handler=_command_play)

    export_parser = subparsers.add_parser(
        "export-html", help="Write a standalone HTML player for the story."
    )
    _story_argument(export_parser)
    export_parser.add_argument(
        "-o", "--output", type=Path, default=Path("story.html"),
        help="Destination HTML file (default: ./story.html).",
    )
    export_parser.add_argument(
        "--obfuscate",
        action="store_true",
        help="Scramble the embedded story data to deter scraping.",
    )
    export_parser.add_argument(
        "--key",
        help="Obfuscation key (defaults to STORYBUILDER_EXPORT_KEY).",
    )
    export_parser.add_argument("--start", help="Scene key the player starts at.")
    export_parser.set_defaults(handler=_command_export_html)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP story editor.")
    serve_parser.add_argument(
        "--story",
        type=Path,
        help="Story file loaded on startup and saved after every edit.",
    )
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)
    serve_parser.set_defaults(handler=_command_serve)

    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command selected on the command line."""

    args = _parse_args(argv)
    try:
        settings = StoryBuilderSettings.from_env()
    except ValueError as exc:
        print(f"Invalid configuration: {exc}")
        return 2

    if args.log_level:
        settings = replace(settings, log_level=args.log_level)
    configure_logging(settings.log_level)
    logger.debug("Running command %s", args.command)

    return args.handler(args, settings)


if __name__ == "__main__":
    sys.exit(main())
