"""FastAPI application exposing story editing endpoints."""

from .app import StoryService, create_app

__all__ = ["StoryService", "create_app"]
