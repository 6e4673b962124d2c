#!/usr/bin/env python3
"""
Custom exceptions and error handlers for the web application.
"""

import logging
from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse

from core.exceptions import (
    BatchTooLarge,
    OpportunityNotFound,
    ProfileNotFound,
    ScoringInputError,
)

logger = logging.getLogger(__name__)


class ServiceException(Exception):
    """Base exception for service layer errors."""
    pass


class DispatcherUnavailableException(ServiceException):
    """Raised when background scoring is requested but no queue is configured."""
    pass


async def service_exception_handler(
    request: Request,
    exc: ServiceException
) -> JSONResponse:
    """
    Handle service layer exceptions.

    Args:
        request: The FastAPI request.
        exc: The service exception.

    Returns:
        JSONResponse with error details.
    """
    logger.error(f"Service error in {request.url.path}: {exc}", exc_info=True)

    status_code = 500
    if isinstance(exc, DispatcherUnavailableException):
        status_code = 503

    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": str(exc),
            "type": exc.__class__.__name__
        }
    )


async def scoring_input_exception_handler(
    request: Request,
    exc: ScoringInputError
) -> JSONResponse:
    """
    Handle rejected score requests.

    Unknown profiles and opportunities are 404; everything else the caller
    sent wrong (oversized or empty batch, bad method) is 400.
    """
    logger.info(f"Rejected request to {request.url.path}: {exc}")

    status_code = 400
    if isinstance(exc, (ProfileNotFound, OpportunityNotFound)):
        status_code = 404

    content = {
        "success": False,
        "error": str(exc),
        "type": exc.__class__.__name__
    }
    if isinstance(exc, BatchTooLarge):
        content["limit"] = exc.limit

    return JSONResponse(status_code=status_code, content=content)


async def http_exception_handler(
    request: Request,
    exc: HTTPException
) -> JSONResponse:
    """
    Handle FastAPI HTTP exceptions with consistent format.

    Args:
        request: The FastAPI request.
        exc: The HTTP exception.

    Returns:
        JSONResponse with error details.
    """
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.detail,
            "type": "HTTPException"
        }
    )


async def general_exception_handler(
    request: Request,
    exc: Exception
) -> JSONResponse:
    """
    Handle unexpected exceptions.

    Args:
        request: The FastAPI request.
        exc: The exception.

    Returns:
        JSONResponse with error details.
    """
    logger.exception(f"Unexpected error in {request.url.path}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
            "type": "InternalError"
        }
    )
