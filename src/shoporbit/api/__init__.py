"""
HTTP API for Shop Orbit authentication, users and roles.
"""

from .app import API_PREFIX, create_app
from .guards import SERVICES_KEY, admin_required, login_required, optional_auth, permission_required

__all__ = [
    "API_PREFIX",
    "create_app",
    "SERVICES_KEY",
    "admin_required",
    "login_required",
    "optional_auth",
    "permission_required",
]
