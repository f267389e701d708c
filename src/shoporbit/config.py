"""
Server configuration.

Loads settings from a YAML file and applies SHOPORBIT_* environment overrides.
"""

import os
import secrets
from pathlib import Path
from typing import Optional, Union

import yaml
from loguru import logger
from pydantic import BaseModel, Field


ENV_PREFIX = "SHOPORBIT_"


class ServerConfig(BaseModel):
    """
    Runtime configuration for the auth API.

    Attributes:
        database_path: SQLite database file
        jwt_secret: HMAC secret for signing access tokens
        jwt_algorithm: JWT signing algorithm
        access_token_expire_minutes: Access token lifetime
        refresh_token_expire_days: Refresh token lifetime
        bcrypt_rounds: bcrypt cost factor
        min_password_length: Minimum accepted password length
        revoke_sessions_on_password_change: Revoke live refresh tokens when a password changes
        seed_admin_email: Email of the admin account created on first start
        seed_admin_password: Password of the admin account created on first start
        host: Bind address
        port: Bind port
        cors_origin: Allowed CORS origin
        log_level: loguru level name
        log_file: Optional log file path
    """
    database_path: Path = Path("data/shoporbit.db")
    jwt_secret: Optional[str] = None
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = Field(default=60, gt=0)
    refresh_token_expire_days: int = Field(default=7, gt=0)
    bcrypt_rounds: int = Field(default=10, ge=4, le=31)
    min_password_length: int = Field(default=8, ge=1, le=72)
    revoke_sessions_on_password_change: bool = False
    seed_admin_email: str = "admin@shop.test"
    seed_admin_password: str = "admin123"
    host: str = "0.0.0.0"
    port: int = 3001
    cors_origin: str = "http://localhost:5173"
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "ServerConfig":
        """
        Load configuration from a YAML file.

        The file may either hold the settings at top level or nest them
        under an ``auth`` key.

        Args:
            path: Path to YAML file

        Returns:
            ServerConfig with environment overrides applied
        """
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if "auth" in data and isinstance(data["auth"], dict):
            data = data["auth"]

        return cls.model_validate(_apply_env_overrides(data))

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Build configuration from defaults and environment only."""
        return cls.model_validate(_apply_env_overrides({}))

    def resolved_secret(self) -> str:
        """
        Return the signing secret, generating an ephemeral one if unset.

        An ephemeral secret invalidates every access token on restart.
        """
        if not self.jwt_secret:
            logger.warning(
                "No JWT secret configured; generated an ephemeral one. "
                f"Set {ENV_PREFIX}JWT_SECRET to keep tokens valid across restarts."
            )
            self.jwt_secret = secrets.token_urlsafe(64)
        return self.jwt_secret


def _apply_env_overrides(data: dict) -> dict:
    """Overlay SHOPORBIT_<FIELD> environment variables onto raw settings."""
    merged = dict(data)
    for name in ServerConfig.model_fields:
        value = os.environ.get(ENV_PREFIX + name.upper())
        if value is not None:
            merged[name] = value
    return merged


def load_config(path: Optional[Union[str, Path]] = None) -> ServerConfig:
    """
    Load configuration from ``path`` if given, else from the environment.

    Args:
        path: Optional YAML config path

    Returns:
        ServerConfig instance
    """
    if path is None:
        return ServerConfig.from_env()

    config = ServerConfig.from_yaml(path)
    logger.info(f"Configuration loaded from {path}")
    return config
