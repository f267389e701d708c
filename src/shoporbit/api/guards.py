"""
Route decorators for authentication and authorization.

Provides:
- login_required: Require a valid bearer access token
- permission_required: Require a valid token carrying any of the given permissions
- admin_required: Require a valid token for the administrator role
- optional_auth: Attach the caller when a valid token is present
"""

import asyncio
from functools import wraps
from typing import Optional, Union

from aiohttp import web

from ..auth.bootstrap import AuthServices
from ..auth.middleware import (
    AuthContext,
    authenticate,
    authorize,
    authorize_any,
    optional_authenticate,
    require_admin,
)
from ..auth.permissions import PermissionKey


SERVICES_KEY = web.AppKey("services", AuthServices)
AUTH_CONTEXT = "auth_context"


def services(request: web.Request) -> AuthServices:
    return request.app[SERVICES_KEY]


def current_context(request: web.Request) -> Optional[AuthContext]:
    return request[AUTH_CONTEXT]


async def run_blocking(func, *args, **kwargs):
    """Run storage or bcrypt work off the event loop."""
    return await asyncio.to_thread(func, *args, **kwargs)


def login_required(handler):
    """
    Decorator to require a valid access token.

    Sets request["auth_context"] on success; raises AuthenticationError otherwise.
    """
    @wraps(handler)
    async def decorated(request: web.Request):
        result = authenticate(services(request).tokens, request.headers.get("Authorization"))
        request[AUTH_CONTEXT] = result.unwrap()
        return await handler(request)
    return decorated


def permission_required(*permissions: Union[PermissionKey, str]):
    """
    Decorator factory to require permissions.

    With several keys the caller needs any one of them.

    Usage:
        @permission_required(PermissionKey.VIEW_USERS)
        async def list_users(request):
            ...

        @permission_required(PermissionKey.EDIT_USERS, PermissionKey.CREATE_USERS)
        async def import_users(request):
            ...
    """
    if not permissions:
        raise ValueError("permission_required needs at least one permission")

    def decorator(handler):
        @wraps(handler)
        async def decorated(request: web.Request):
            context = authenticate(services(request).tokens, request.headers.get("Authorization")).unwrap()
            if len(permissions) == 1:
                result = authorize(context, permissions[0])
            else:
                result = authorize_any(context, permissions)
            request[AUTH_CONTEXT] = result.unwrap()
            return await handler(request)
        return decorated
    return decorator


def admin_required(handler):
    """Decorator to require an authenticated administrator."""
    @wraps(handler)
    async def decorated(request: web.Request):
        context = authenticate(services(request).tokens, request.headers.get("Authorization")).unwrap()
        request[AUTH_CONTEXT] = require_admin(context).unwrap()
        return await handler(request)
    return decorated


def optional_auth(handler):
    """
    Decorator that identifies the caller when it can.

    request["auth_context"] is the AuthContext for a valid token and None otherwise.
    """
    @wraps(handler)
    async def decorated(request: web.Request):
        request[AUTH_CONTEXT] = optional_authenticate(
            services(request).tokens, request.headers.get("Authorization")
        )
        return await handler(request)
    return decorated
