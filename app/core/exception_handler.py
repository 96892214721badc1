"""
DRF exception handler for application errors.

Views let BaseApplicationError subclasses propagate; this handler turns them
into the standard error body with the status code the exception class
declares. Everything else falls through to DRF's default handler.

Configured in settings:
    REST_FRAMEWORK = {
        "EXCEPTION_HANDLER": "core.exception_handler.api_exception_handler",
    }
"""

from __future__ import annotations

import logging

from rest_framework.response import Response
from rest_framework.views import exception_handler

from core.exceptions import BaseApplicationError

logger = logging.getLogger(__name__)


def api_exception_handler(exc, context):
    """Render BaseApplicationError as its to_dict() body."""
    if isinstance(exc, BaseApplicationError):
        view = context.get("view")
        logger.info(
            f"API request failed: {exc}",
            extra={
                "error_code": exc.error_code,
                "status_code": exc.http_status,
                "view": view.__class__.__name__ if view is not None else None,
            },
        )
        return Response(exc.to_dict(), status=exc.http_status)
    return exception_handler(exc, context)
