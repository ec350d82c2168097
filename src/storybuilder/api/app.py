"""FastAPI application exposing story editing endpoints."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Iterable, Mapping

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, Field

from ..html_export import render_obfuscated_story_html, render_story_html
from ..persistence import (
    FileStoryStore,
    InMemoryStoryStore,
    StoryFormatError,
    StoryStore,
    load_story_from_file,
    load_story_from_mapping,
    save_story_to_file,
)
from ..rendering import render_ascii_tree, render_story_outline
from ..scene import Scene, SceneContentChange
from ..settings import StoryBuilderSettings
from ..story import Story

logger = logging.getLogger(__name__)


class ChoiceModel(BaseModel):
    """A choice as stored in story files."""

    text: str = Field(..., description="Label shown to the reader.")
    next: str = Field(..., description="Key of the scene the choice leads to.")


class ChoiceResource(ChoiceModel):
    """A choice annotated with whether its target scene exists."""

    exists: bool


class SceneResource(BaseModel):
    """Detailed view of a single scene."""

    key: str
    text: str
    parent: str | None
    depth: int
    choices: list[ChoiceResource]


class SceneRefResource(BaseModel):
    """Entry of the depth-first scene listing."""

    key: str
    depth: int
    text: str


class StoryResponse(BaseModel):
    """Full story in its persisted representation."""

    root: str | None
    scene_count: int
    scenes: dict[str, Any]


class StoryImportRequest(BaseModel):
    """Request payload replacing the whole story."""

    scenes: dict[str, Any] = Field(
        ...,
        description="Mapping of scene keys to scene definitions.",
    )


class StoryTreeResponse(BaseModel):
    """Structural overview of the story."""

    entries: list[SceneRefResource]
    ascii: str
    outline: str
    has_cycle: bool


class SceneCreateRequest(BaseModel):
    """Request payload for adding a scene."""

    key: str = Field(..., min_length=1, description="Identifier for the new scene.")
    text: str = Field("", description="Narrative text of the scene.")
    parent: str | None = Field(
        None,
        description=(
            "Optional key of the scene that should lead to the new scene. When "
            "omitted the first scene already referencing the key, or the root, "
            "becomes the parent."
        ),
    )
    choices: list[ChoiceModel] = Field(default_factory=list)


class SceneUpdateRequest(BaseModel):
    """Request payload for editing a scene.

    Omitting ``choices`` keeps the current choices while an explicit ``null``
    removes them all.
    """

    text: str | None = None
    choices: list[ChoiceModel] | None = None


class SceneEditResponse(BaseModel):
    """Result of a scene edit including the state before the change."""

    scene: SceneResource
    changed: bool
    text_changed: bool
    choices_changed: bool
    previous_text: str
    previous_choices: list[ChoiceModel]


class SceneParentRequest(BaseModel):
    """Request payload for moving a scene under another parent."""

    parent: str = Field(..., description="Key of the new parent scene.")


class SceneParentResponse(BaseModel):
    """Outcome of a parent change."""

    scene: SceneResource
    reparented: bool


class SceneDeleteResponse(BaseModel):
    """Keys removed by a cascading delete."""

    deleted: str
    removed: list[str]


class StoryListResponse(BaseModel):
    """Identifiers of the stories saved in the story store."""

    stories: list[str]


class StorySavedResponse(BaseModel):
    """Confirmation that the edited story was written to the store."""

    story_id: str
    scene_count: int


class SceneAlreadyExistsError(ValueError):
    """Raised when attempting to create a scene with a duplicate key."""


class SceneParentError(RuntimeError):
    """Raised when a scene cannot be moved under the requested parent."""


class SceneParentCycleError(SceneParentError):
    """Raised when a move would make a scene its own ancestor."""


class EmptyStoryError(ValueError):
    """Raised when an operation needs at least one scene."""


def _choice_models(choices: Mapping[str, str]) -> list[ChoiceModel]:
    return [ChoiceModel(text=label, next=target) for target, label in choices.items()]


def _choice_pairs(choices: Iterable[ChoiceModel]) -> list[dict[str, str]]:
    return [{"text": choice.text, "next": choice.next} for choice in choices]


class StoryService:
    """Coordinate access to the story being edited.

    Mutations are serialised with a lock and written back to ``path`` when
    one is configured.
    """

    def __init__(
        self,
        story: Story | None = None,
        *,
        path: Path | None = None,
        store: StoryStore | None = None,
    ) -> None:
        self.story = story if story is not None else Story()
        self.path = path
        self.store = store if store is not None else InMemoryStoryStore()
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: StoryBuilderSettings) -> "StoryService":
        store: StoryStore | None = None
        if settings.store_dir is not None:
            store = FileStoryStore(settings.store_dir)

        path = settings.story_path
        if path is not None and path.exists():
            return cls(load_story_from_file(path), path=path, store=store)
        return cls(path=path, store=store)

    def _persist(self) -> None:
        if self.path is None:
            return
        if not self.story.scenes:
            # An empty story has no valid file representation.
            if self.path.exists():
                self.path.unlink()
                logger.info("Story is empty; removed %s", self.path)
            return
        save_story_to_file(self.story, self.path)

    def _require_scene(self, key: str) -> Scene:
        scene = self.story.get_scene(key)
        if scene is None:
            raise KeyError(f"Scene '{key}' not found.")
        return scene

    def _scene_resource(self, scene: Scene) -> SceneResource:
        return SceneResource(
            key=scene.key,
            text=scene.text,
            parent=scene.parent.key if scene.parent is not None else None,
            depth=self.story.get_scene_depth(scene),
            choices=[
                ChoiceResource(
                    text=choice.label,
                    next=choice.target,
                    exists=choice.target in self.story,
                )
                for choice in scene.get_all_choices()
            ],
        )

    def get_story(self) -> StoryResponse:
        with self._lock:
            root = self.story.root
            return StoryResponse(
                root=root.key if root is not None else None,
                scene_count=len(self.story),
                scenes=self.story.to_payload(),
            )

    def replace_story(self, scenes: Mapping[str, Any]) -> StoryResponse:
        story = load_story_from_mapping(scenes)
        with self._lock:
            self.story = story
            self._persist()
        return self.get_story()

    def get_tree(self) -> StoryTreeResponse:
        with self._lock:
            entries = [
                SceneRefResource(
                    key=ref.key,
                    depth=ref.depth,
                    text=ref.scene.text,
                )
                for ref in self.story.get_scenes_dfs()
            ]
            return StoryTreeResponse(
                entries=entries,
                ascii=render_ascii_tree(self.story),
                outline=render_story_outline(self.story),
                has_cycle=self.story.has_circle(),
            )

    def get_scene(self, key: str) -> SceneResource:
        with self._lock:
            return self._scene_resource(self._require_scene(key))

    def create_scene(self, request: SceneCreateRequest) -> SceneResource:
        with self._lock:
            parent: Scene | None = None
            if request.parent is not None:
                parent = self.story.get_scene(request.parent)
                if parent is None:
                    raise KeyError(f"Parent scene '{request.parent}' not found.")

            scene = Scene(
                request.key,
                request.text,
                parent,
                _choice_pairs(request.choices),
            )
            if not self.story.add_scene(scene):
                raise SceneAlreadyExistsError(
                    f"Scene '{request.key}' already exists."
                )
            self._persist()
            return self._scene_resource(scene)

    def update_scene(self, key: str, request: SceneUpdateRequest) -> SceneEditResponse:
        with self._lock:
            scene = self._require_scene(key)
            if "choices" in request.model_fields_set:
                choices: Any = (
                    None if request.choices is None else _choice_pairs(request.choices)
                )
            else:
                choices = dict(scene.choices)

            change: SceneContentChange = scene.apply_content(request.text, choices)
            if change:
                self._persist()
            return SceneEditResponse(
                scene=self._scene_resource(scene),
                changed=change.changed,
                text_changed=change.text_changed,
                choices_changed=change.choices_changed,
                previous_text=change.previous_text,
                previous_choices=_choice_models(change.previous_choices),
            )

    def change_parent(self, key: str, parent_key: str) -> SceneParentResponse:
        with self._lock:
            scene = self._require_scene(key)
            if scene.parent is None:
                raise SceneParentError(f"Scene '{key}' has no parent to move from.")
            if self._is_ancestor_or_self(key, parent_key):
                raise SceneParentCycleError(
                    f"Scene '{parent_key}' lies below '{key}'; moving it there "
                    "would create a parent cycle."
                )
            reparented = self.story.change_scene_parent(key, parent_key)
            self._persist()
            return SceneParentResponse(
                scene=self._scene_resource(scene), reparented=reparented
            )

    def _is_ancestor_or_self(self, key: str, candidate_key: str) -> bool:
        """Return ``True`` if ``key`` is on the parent chain of ``candidate_key``."""

        seen: set[str] = set()
        current = self.story.get_scene(candidate_key)
        while current is not None and current.key not in seen:
            if current.key == key:
                return True
            seen.add(current.key)
            current = current.parent
        return False

    def delete_scene(self, key: str) -> SceneDeleteResponse:
        with self._lock:
            scene = self._require_scene(key)
            removed = [ref.key for ref in self.story.get_scenes_dfs(scene)]
            self.story.remove_scene(key)
            self._persist()
            return SceneDeleteResponse(deleted=key, removed=removed)

    def export_html(self, *, obfuscation_key: str | None, start_key: str | None) -> str:
        with self._lock:
            if obfuscation_key is None:
                return render_story_html(self.story, start_key=start_key)
            return render_obfuscated_story_html(
                self.story, obfuscation_key, start_key=start_key
            )

    def list_saved_stories(self) -> StoryListResponse:
        return StoryListResponse(stories=self.store.list_stories())

    def save_to_store(self, story_id: str) -> StorySavedResponse:
        """Write a snapshot of the edited story to the store."""

        with self._lock:
            if not self.story.scenes:
                raise EmptyStoryError("Cannot save a story without scenes.")
            self.store.save(story_id, self.story)
            return StorySavedResponse(story_id=story_id, scene_count=len(self.story))

    def load_from_store(self, story_id: str) -> StoryResponse:
        """Replace the edited story with the one saved as ``story_id``.

        Raises:
            KeyError: If no story is saved under ``story_id``.
        """

        story = self.store.load(story_id)
        with self._lock:
            self.story = story
            self._persist()
        return self.get_story()

    def delete_from_store(self, story_id: str) -> StoryListResponse:
        self.store.delete(story_id)
        return self.list_saved_stories()


def create_app(
    service: StoryService | None = None,
    *,
    settings: StoryBuilderSettings | None = None,
) -> FastAPI:
    """Create a FastAPI app exposing the story editing endpoints."""

    resolved_settings = settings or StoryBuilderSettings.from_env()
    story_service = service or StoryService.from_settings(resolved_settings)

    tags_metadata = [
        {
            "name": "Story",
            "description": (
                "Import, inspect and export the whole story graph, including "
                "its depth-first structure and cycle report."
            ),
        },
        {
            "name": "Scenes",
            "description": (
                "Create, edit, move and delete individual scenes of the "
                "branching story."
            ),
        },
        {
            "name": "Stories",
            "description": (
                "Save the edited story under a name, list saved stories and "
                "load one back into the editor."
            ),
        },
    ]

    app = FastAPI(
        title="Story Builder API",
        version="0.1.0",
        description=(
            "HTTP API powering the branching story editor. The service exposes "
            "endpoints for scenes, the story structure and HTML export."
        ),
        openapi_tags=tags_metadata,
    )
    app.state.story_service = story_service

    @app.get("/api/story", response_model=StoryResponse, tags=["Story"])
    def get_story() -> StoryResponse:
        return story_service.get_story()

    @app.put("/api/story", response_model=StoryResponse, tags=["Story"])
    def replace_story(payload: StoryImportRequest) -> StoryResponse:
        try:
            return story_service.replace_story(payload.scenes)
        except StoryFormatError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.get("/api/story/tree", response_model=StoryTreeResponse, tags=["Story"])
    def get_story_tree() -> StoryTreeResponse:
        return story_service.get_tree()

    @app.get("/api/scenes/{key}", response_model=SceneResource, tags=["Scenes"])
    def get_scene(key: str) -> SceneResource:
        try:
            return story_service.get_scene(key)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=exc.args[0]) from exc

    @app.post(
        "/api/scenes",
        response_model=SceneResource,
        status_code=201,
        tags=["Scenes"],
    )
    def create_scene(payload: SceneCreateRequest) -> SceneResource:
        try:
            return story_service.create_scene(payload)
        except SceneAlreadyExistsError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=exc.args[0]) from exc

    @app.put(
        "/api/scenes/{key}", response_model=SceneEditResponse, tags=["Scenes"]
    )
    def update_scene(key: str, payload: SceneUpdateRequest) -> SceneEditResponse:
        try:
            return story_service.update_scene(key, payload)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=exc.args[0]) from exc

    @app.put(
        "/api/scenes/{key}/parent",
        response_model=SceneParentResponse,
        tags=["Scenes"],
    )
    def change_scene_parent(
        key: str, payload: SceneParentRequest
    ) -> SceneParentResponse:
        try:
            return story_service.change_parent(key, payload.parent)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=exc.args[0]) from exc
        except SceneParentError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc

    @app.delete(
        "/api/scenes/{key}", response_model=SceneDeleteResponse, tags=["Scenes"]
    )
    def delete_scene(key: str) -> SceneDeleteResponse:
        try:
            return story_service.delete_scene(key)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=exc.args[0]) from exc

    @app.get("/api/export/html", response_class=HTMLResponse, tags=["Story"])
    def export_html(
        obfuscate: bool = Query(
            False, description="Obfuscate the embedded story data."
        ),
        start: str | None = Query(
            None, description="Scene key the player starts at. Defaults to the root."
        ),
    ) -> HTMLResponse:
        key = resolved_settings.export_key if obfuscate else None
        try:
            document = story_service.export_html(obfuscation_key=key, start_key=start)
        except ValueError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return HTMLResponse(content=document)

    @app.get("/api/stories", response_model=StoryListResponse, tags=["Stories"])
    def list_saved_stories() -> StoryListResponse:
        return story_service.list_saved_stories()

    @app.put(
        "/api/stories/{story_id}",
        response_model=StorySavedResponse,
        tags=["Stories"],
    )
    def save_story(story_id: str) -> StorySavedResponse:
        try:
            return story_service.save_to_store(story_id)
        except EmptyStoryError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.post(
        "/api/stories/{story_id}/load",
        response_model=StoryResponse,
        tags=["Stories"],
    )
    def load_story(story_id: str) -> StoryResponse:
        try:
            return story_service.load_from_store(story_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=exc.args[0]) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.delete(
        "/api/stories/{story_id}",
        response_model=StoryListResponse,
        tags=["Stories"],
    )
    def delete_saved_story(story_id: str) -> StoryListResponse:
        try:
            return story_service.delete_from_store(story_id)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    return app


__all__ = [
    "EmptyStoryError",
    "SceneAlreadyExistsError",
    "SceneParentCycleError",
    "SceneParentError",
    "StoryService",
    "create_app",
]
