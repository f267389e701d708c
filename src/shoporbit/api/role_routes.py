"""
Role management endpoints.
"""

from aiohttp import web

from ..auth.permissions import PermissionKey
from .guards import permission_required, run_blocking, services
from .responses import success_response
from .schemas import CreateRoleRequest, UpdateRoleRequest


@permission_required(PermissionKey.VIEW_ROLES)
async def list_roles(request: web.Request) -> web.Response:
    """GET /api/v1/roles with permission and user counts."""
    roles = await run_blocking(services(request).roles.list_roles)
    return success_response([role.to_dict(include_permissions=False) for role in roles])


@permission_required(PermissionKey.VIEW_ROLES)
async def list_permissions(request: web.Request) -> web.Response:
    """GET /api/v1/roles/permissions/all grouped by resource."""
    groups = await run_blocking(services(request).roles.list_permissions)
    return success_response(groups)


@permission_required(PermissionKey.VIEW_ROLES)
async def get_role(request: web.Request) -> web.Response:
    role = await run_blocking(services(request).roles.get_role, request.match_info["role_id"])
    return success_response(role.to_dict())


@permission_required(PermissionKey.CREATE_ROLES)
async def create_role(request: web.Request) -> web.Response:
    """
    POST /api/v1/roles
    Body: {"role_name", "description", "permission_ids"}
    """
    body = CreateRoleRequest.model_validate(await request.json())
    role = await run_blocking(
        services(request).roles.create_role,
        body.role_name,
        body.permission_ids,
        body.description,
    )
    return success_response(role.to_dict(), status=201, message="Role created successfully")


@permission_required(PermissionKey.EDIT_ROLES)
async def update_role(request: web.Request) -> web.Response:
    """
    PUT /api/v1/roles/{role_id}
    Body: any of {"role_name", "description", "permission_ids"}
    """
    body = UpdateRoleRequest.model_validate(await request.json())
    patch = {}
    if body.role_name is not None:
        patch["name"] = body.role_name
    if "description" in body.model_fields_set:
        patch["description"] = body.description
    if body.permission_ids is not None:
        patch["permission_ids"] = body.permission_ids

    role = await run_blocking(services(request).roles.update_role, request.match_info["role_id"], patch)
    return success_response(role.to_dict(), message="Role updated successfully")


@permission_required(PermissionKey.DELETE_ROLES)
async def delete_role(request: web.Request) -> web.Response:
    await run_blocking(services(request).roles.delete_role, request.match_info["role_id"])
    return success_response(message="Role deleted successfully")


def register(app: web.Application, prefix: str) -> None:
    app.router.add_get(f"{prefix}/roles", list_roles)
    app.router.add_post(f"{prefix}/roles", create_role)
    app.router.add_get(f"{prefix}/roles/permissions/all", list_permissions)
    app.router.add_get(f"{prefix}/roles/{{role_id}}", get_role)
    app.router.add_put(f"{prefix}/roles/{{role_id}}", update_role)
    app.router.add_delete(f"{prefix}/roles/{{role_id}}", delete_role)
