"""
Request body models.

Field names follow the wire format used by the web client: snake_case for
user and role payloads, camelCase ``refreshToken`` for auth payloads.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..auth.models import UserStatus


class RequestModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class LoginRequest(RequestModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class RefreshRequest(RequestModel):
    refresh_token: str = Field(alias="refreshToken", min_length=1)


class CreateUserRequest(RequestModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)
    full_name: str = Field(min_length=1)
    role_id: str = Field(min_length=1)


class UpdateUserRequest(RequestModel):
    email: Optional[str] = None
    full_name: Optional[str] = Field(default=None, min_length=1)
    role_id: Optional[str] = Field(default=None, min_length=1)
    status: Optional[UserStatus] = None


class ChangePasswordRequest(RequestModel):
    password: str = Field(min_length=1)


class CreateRoleRequest(RequestModel):
    role_name: str = Field(min_length=1)
    description: Optional[str] = None
    permission_ids: List[str] = Field(min_length=1)


class UpdateRoleRequest(RequestModel):
    role_name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    permission_ids: Optional[List[str]] = Field(default=None, min_length=1)


class UserListQuery(RequestModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)
    search: str = ""
    status: Optional[UserStatus] = None
    role_id: Optional[str] = None
