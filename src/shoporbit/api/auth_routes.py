"""
Authentication endpoints: login, refresh, logout and current user.
"""

from aiohttp import web

from .guards import current_context, login_required, run_blocking, services
from .responses import success_response
from .schemas import LoginRequest, RefreshRequest


async def handle_login(request: web.Request) -> web.Response:
    """
    Handle login request.

    POST /api/v1/auth/login
    Body: {"email": "...", "password": "..."}
    Returns: {"success": true, "data": {"token", "refreshToken", "user"}}
    """
    body = LoginRequest.model_validate(await request.json())
    pair = await run_blocking(services(request).auth.login, body.email, body.password)

    return success_response({
        "token": pair.access_token,
        "refreshToken": pair.refresh_token,
        "user": pair.user_snapshot(),
    })


async def handle_refresh(request: web.Request) -> web.Response:
    """
    Exchange a refresh token for a new token pair.

    POST /api/v1/auth/refresh
    Body: {"refreshToken": "..."}
    Returns: {"success": true, "data": {"token", "refreshToken"}}
    """
    body = RefreshRequest.model_validate(await request.json())
    pair = await run_blocking(services(request).auth.refresh, body.refresh_token)

    return success_response({
        "token": pair.access_token,
        "refreshToken": pair.refresh_token,
    })


@login_required
async def handle_logout(request: web.Request) -> web.Response:
    """
    Revoke a refresh token.

    POST /api/v1/auth/logout
    Headers: Authorization: Bearer <token>
    Body: {"refreshToken": "..."}
    """
    body = RefreshRequest.model_validate(await request.json())
    await run_blocking(services(request).auth.logout, body.refresh_token, current_context(request).user_id)
    return success_response(message="Logged out successfully")


@login_required
async def handle_me(request: web.Request) -> web.Response:
    """
    GET /api/v1/auth/me

    Returns the caller's current profile, role and permissions.
    """
    user = await run_blocking(services(request).auth.current_user, current_context(request).user_id)
    return success_response(user)


def register(app: web.Application, prefix: str) -> None:
    app.router.add_post(f"{prefix}/auth/login", handle_login)
    app.router.add_post(f"{prefix}/auth/refresh", handle_refresh)
    app.router.add_post(f"{prefix}/auth/logout", handle_logout)
    app.router.add_get(f"{prefix}/auth/me", handle_me)
