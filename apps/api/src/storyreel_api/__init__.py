"""StoryReel HTTP API."""

from storyreel_api.app import create_app

__all__ = ["create_app"]
