"""API dependencies."""

import os
import threading
from pathlib import Path
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, status

from storyreel_generators import SceneGenerator
from storyreel_services import (
    DetailService,
    EntityService,
    SceneService,
    SceneSession,
    WorkspaceService,
)


# Configuration
class Settings:
    """API settings."""

    workspace_dir: Path = Path(os.environ.get("STORYREEL_ROOT", "./workspace"))
    api_keys: set[str] = set()  # Empty = no auth required
    require_auth: bool = False
    log_level: str = os.environ.get("STORYREEL_LOG_LEVEL", "INFO")
    generator: Optional[SceneGenerator] = None  # None = Gemini generator on first use


settings = Settings()


def get_settings() -> Settings:
    """Get API settings."""
    return settings


# Authentication
async def verify_token(
    authorization: Annotated[Optional[str], Header()] = None,
    settings: Settings = Depends(get_settings),
) -> Optional[str]:
    """Verify bearer token if auth is required.

    Returns:
        The token if valid, None if auth not required
    """
    if not settings.require_auth:
        return None

    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = parts[1]
    if settings.api_keys and token not in settings.api_keys:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )

    return token


# Workspace and sessions
class SessionRegistry:
    """Editing sessions kept across requests, one per document.

    Detection state and the active container live on the session, so a session
    must outlive the request that opened it. Busy flags are shared through the
    workspace service.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._workspace: Optional[WorkspaceService] = None
        self._sessions: dict[str, SceneSession] = {}
        self._active: Optional[str] = None  # container focused last

    def workspace(self) -> WorkspaceService:
        """Workspace service for the configured directory, created if missing."""
        with self._lock:
            if self._workspace is None:
                service = WorkspaceService(settings.workspace_dir)
                if service.exists():
                    service.load()
                else:
                    service.create()
                self._workspace = service
            return self._workspace

    def session(self, document_id: str) -> SceneSession:
        """Session for a document, opened on first use.

        Raises:
            NotFoundError: If document not found
        """
        workspace = self.workspace()
        with self._lock:
            if document_id not in self._sessions:
                session = workspace.open_session(document_id)
                if self._active is not None:
                    session.focus(self._active)
                self._sessions[document_id] = session
            return self._sessions[document_id]

    def focus(self, document_id: str) -> SceneSession:
        """Make one document's container the active one in every session."""
        target = self.session(document_id)
        with self._lock:
            self._active = target.container_id
            for session in self._sessions.values():
                session.focus(target.container_id)
        return target

    def close(self, document_id: str) -> None:
        """Drop a session so the next request re-selects its store."""
        with self._lock:
            session = self._sessions.pop(document_id, None)
            if session is not None and session.container_id == self._active:
                self._active = None

    def reset(self) -> None:
        with self._lock:
            self._workspace = None
            self._active = None
            self._sessions.clear()


registry = SessionRegistry()


# Service factories
def get_workspace_service() -> WorkspaceService:
    """Get the workspace service."""
    return registry.workspace()


def get_scene_service(document_id: str) -> SceneService:
    """Get scene service for a document."""
    return SceneService(registry.session(document_id), generator=settings.generator)


def get_entity_service(document_id: str) -> EntityService:
    """Get entity service for a document."""
    return EntityService(registry.session(document_id), generator=settings.generator)


def get_detail_service(document_id: str) -> DetailService:
    """Get detail service for a document."""
    return DetailService(registry.session(document_id), generator=settings.generator)
