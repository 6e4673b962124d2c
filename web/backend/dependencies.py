#!/usr/bin/env python3
"""
FastAPI dependencies for dependency injection.
"""

from typing import Optional

from fastapi import Header, HTTPException, Request

from core.app_context import AppContext


def get_app_context(request: Request) -> AppContext:
    """
    FastAPI dependency that returns the wired application context.

    The context is built once in the app lifespan and stored on app.state.

    Usage:
        @router.post("")
        async def my_endpoint(ctx: AppContext = Depends(get_app_context)):
            ...
    """
    ctx = getattr(request.app.state, "ctx", None)
    if ctx is None:
        raise HTTPException(status_code=503, detail="Scoring service is not ready")
    return ctx


def get_organization_id(x_organization_id: Optional[str] = Header(default=None)) -> str:
    """Organization of the caller, set by the upstream gateway."""
    if not x_organization_id:
        raise HTTPException(status_code=401, detail="Missing X-Organization-Id header")
    return x_organization_id


def get_user_id(x_user_id: Optional[str] = Header(default=None)) -> Optional[str]:
    return x_user_id
