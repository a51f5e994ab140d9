"""Global FastAPI dependencies for settings, storage and the recorder.

This module provides:
- get_app_settings: The Settings instance built at startup
- get_attachment_storage: The attachment storage adapter built at startup
- get_recorder: A CommunicationRecorder bound to the request's DB session

Components are constructed once in the application lifespan and stored on
app.state; endpoints receive them through Depends so tests can override them.
"""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from config import Settings, get_settings
from database import get_db
from communications.ports import AttachmentStoragePort
from communications.recorder import CommunicationRecorder


def get_app_settings(request: Request) -> Settings:
    """Return the settings the application was started with."""
    return getattr(request.app.state, "settings", None) or get_settings()


def get_attachment_storage(request: Request) -> AttachmentStoragePort:
    """Return the attachment storage adapter built in the lifespan handler."""
    return request.app.state.attachment_storage


def get_recorder(
    db: Annotated[Session, Depends(get_db)],
    storage: Annotated[AttachmentStoragePort, Depends(get_attachment_storage)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> CommunicationRecorder:
    """Build a recorder for the current request."""
    return CommunicationRecorder(db=db, storage=storage, settings=settings)
