"""Shared API dependencies."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from content_guard.services.processor import FlaggingEngine


def get_engine(request: Request) -> FlaggingEngine:
    """Return the flagging engine created at application startup.

    Raises:
        HTTPException: If the engine has not been started
    """
    engine: FlaggingEngine | None = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Moderation engine is not running",
        )
    return engine


# Type alias for the engine dependency
EngineDep = Annotated[FlaggingEngine, Depends(get_engine)]
