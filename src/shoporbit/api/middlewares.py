"""
aiohttp middlewares: error rendering and CORS.
"""

import json

import pydantic
from aiohttp import web
from loguru import logger

from ..auth.errors import AuthError
from .responses import error_response


def _first_validation_message(error: pydantic.ValidationError) -> str:
    errors = error.errors()
    if not errors:
        return "Validation failed"
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()))
    return f"{field}: {first.get('msg')}" if field else first.get("msg", "Validation failed")


@web.middleware
async def error_middleware(request: web.Request, handler):
    """
    Render failures as JSON.

    AuthError subclasses keep their status and kind; request validation
    problems become 400; anything unexpected is logged and returned as a
    generic 500.
    """
    try:
        return await handler(request)
    except AuthError as e:
        return error_response(e.message, e.kind, e.status_code, e.detail)
    except pydantic.ValidationError as e:
        return error_response(
            _first_validation_message(e),
            "validation_failure",
            400,
            [{"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]} for err in e.errors()],
        )
    except (json.JSONDecodeError, UnicodeDecodeError):
        return error_response("Request body must be valid JSON", "validation_failure", 400)
    except web.HTTPException as e:
        if e.status_code == 404:
            return error_response(f"Route {request.method} {request.path} not found", "not_found", 404)
        if e.status_code == 405:
            return error_response(f"Method {request.method} not allowed", "method_not_allowed", 405)
        raise
    except Exception:
        logger.exception(f"Unhandled error on {request.method} {request.path}")
        return error_response("Internal server error", "internal_error", 500)


def cors_middleware(allowed_origin: str):
    """
    Build a middleware adding CORS headers to all responses.

    Args:
        allowed_origin: Value for Access-Control-Allow-Origin
    """

    @web.middleware
    async def middleware(request: web.Request, handler):
        if request.method == "OPTIONS":
            # Preflight request
            response = web.Response()
        else:
            response = await handler(request)

        response.headers["Access-Control-Allow-Origin"] = allowed_origin
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, DELETE, PATCH, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization"
        response.headers["Access-Control-Allow-Credentials"] = "true"
        return response

    return middleware
