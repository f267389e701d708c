"""
User management endpoints.
"""

from aiohttp import web

from ..auth.permissions import PermissionKey
from .guards import current_context, permission_required, run_blocking, services
from .responses import paginated_response, success_response
from .schemas import ChangePasswordRequest, CreateUserRequest, UpdateUserRequest, UserListQuery


@permission_required(PermissionKey.VIEW_USERS)
async def list_users(request: web.Request) -> web.Response:
    """
    GET /api/v1/users?page=&limit=&search=&status=&role_id=
    """
    query = UserListQuery.model_validate(dict(request.query))
    users, pagination = await run_blocking(
        services(request).users.list_users,
        page=query.page,
        limit=query.limit,
        search=query.search,
        status=query.status.value if query.status else None,
        role_id=query.role_id,
    )
    return paginated_response([user.to_dict() for user in users], pagination)


@permission_required(PermissionKey.VIEW_USERS)
async def get_user(request: web.Request) -> web.Response:
    user = await run_blocking(services(request).users.get_user, request.match_info["user_id"])
    return success_response(user.to_dict())


@permission_required(PermissionKey.CREATE_USERS)
async def create_user(request: web.Request) -> web.Response:
    """
    POST /api/v1/users
    Body: {"email", "password", "full_name", "role_id"}
    """
    body = CreateUserRequest.model_validate(await request.json())
    user = await run_blocking(
        services(request).users.create_user,
        body.email,
        body.password,
        body.full_name,
        body.role_id,
    )
    return success_response(user.to_dict(), status=201, message="User created successfully")


@permission_required(PermissionKey.EDIT_USERS)
async def update_user(request: web.Request) -> web.Response:
    """
    PUT /api/v1/users/{user_id}
    Body: any of {"email", "full_name", "role_id", "status"}
    """
    body = UpdateUserRequest.model_validate(await request.json())
    patch = body.model_dump(exclude_none=True, mode="json")
    user = await run_blocking(
        services(request).users.update_user,
        request.match_info["user_id"],
        patch,
        current_context(request).user_id,
    )
    return success_response(user.to_dict(), message="User updated successfully")


@permission_required(PermissionKey.EDIT_USERS)
async def change_password(request: web.Request) -> web.Response:
    """
    PUT /api/v1/users/{user_id}/password
    Body: {"password": "..."}
    """
    body = ChangePasswordRequest.model_validate(await request.json())
    await run_blocking(services(request).users.change_password, request.match_info["user_id"], body.password)
    return success_response(message="Password updated successfully")


@permission_required(PermissionKey.DELETE_USERS)
async def delete_user(request: web.Request) -> web.Response:
    await run_blocking(
        services(request).users.delete_user,
        request.match_info["user_id"],
        current_context(request).user_id,
    )
    return success_response(message="User deleted successfully")


def register(app: web.Application, prefix: str) -> None:
    app.router.add_get(f"{prefix}/users", list_users)
    app.router.add_post(f"{prefix}/users", create_user)
    app.router.add_get(f"{prefix}/users/{{user_id}}", get_user)
    app.router.add_put(f"{prefix}/users/{{user_id}}", update_user)
    app.router.add_delete(f"{prefix}/users/{{user_id}}", delete_user)
    app.router.add_put(f"{prefix}/users/{{user_id}}/password", change_password)
