"""
HTTP middlewares.

Request logging and translation of engine errors into JSON responses.
"""

from collections.abc import Awaitable, Callable

from aiohttp import web
from loguru import logger
from pydantic import ValidationError

from contempla.utils.exceptions import (
    ExpectedCondition,
    GroupNotFound,
    ParticipantNotFound,
    PlanNotFound,
    is_transient,
)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

_NOT_FOUND = (PlanNotFound, GroupNotFound, ParticipantNotFound)


def error_response(status: int, error: str, message: str) -> web.Response:
    return web.json_response({"error": error, "message": message}, status=status)


@web.middleware
async def error_middleware(
    request: web.Request, handler: Handler
) -> web.StreamResponse:
    """Map exceptions to status codes."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except ValidationError as e:
        return error_response(400, "invalid_payload", str(e))
    except _NOT_FOUND as e:
        return error_response(404, e.code, e.message)
    except ExpectedCondition as e:
        return error_response(409, e.code, e.message)
    except Exception as e:
        if is_transient(e):
            logger.warning(f"{request.method} {request.path}: transient error {e}")
            return error_response(
                503, "temporarily_unavailable", "Please retry shortly"
            )
        logger.exception(f"{request.method} {request.path} failed: {e}")
        return error_response(500, "internal_error", "Internal error")


@web.middleware
async def logging_middleware(
    request: web.Request, handler: Handler
) -> web.StreamResponse:
    """Log each request with its status."""
    response = await handler(request)
    logger.debug(f"{request.method} {request.path} -> {response.status}")
    return response
