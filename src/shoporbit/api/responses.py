"""
Standard JSON envelopes.
"""

from typing import Any, Dict, Optional

from aiohttp import web


def success_response(data: Any = None, status: int = 200, message: Optional[str] = None) -> web.Response:
    body: Dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    return web.json_response(body, status=status)


def paginated_response(items: list, pagination: Dict[str, int]) -> web.Response:
    return web.json_response({
        "success": True,
        "data": items,
        "pagination": pagination,
    })


def error_response(message: str, kind: str, status: int, details: Any = None) -> web.Response:
    body: Dict[str, Any] = {
        "success": False,
        "error": message,
        "kind": kind,
    }
    if details:
        body["details"] = details
    return web.json_response(body, status=status)
