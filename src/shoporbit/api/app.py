"""
aiohttp application factory.
"""

from datetime import datetime, timezone

from aiohttp import web

from .. import __version__
from ..auth.bootstrap import AuthServices
from . import auth_routes, role_routes, user_routes
from .guards import SERVICES_KEY
from .middlewares import cors_middleware, error_middleware


API_PREFIX = "/api/v1"


async def health_check(request: web.Request) -> web.Response:
    """Health check endpoint."""
    return web.json_response({
        "status": "ok",
        "service": "shoporbit-auth",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    })


def create_app(services: AuthServices) -> web.Application:
    """
    Build the web application around a set of auth services.

    Args:
        services: Wired auth components (see build_auth_services)

    Returns:
        Configured aiohttp Application
    """
    app = web.Application(middlewares=[
        cors_middleware(services.config.cors_origin),
        error_middleware,
    ])
    app[SERVICES_KEY] = services

    app.router.add_get("/health", health_check)
    auth_routes.register(app, API_PREFIX)
    user_routes.register(app, API_PREFIX)
    role_routes.register(app, API_PREFIX)

    return app
