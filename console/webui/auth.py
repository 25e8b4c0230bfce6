from __future__ import annotations

import os
import hmac
from dataclasses import dataclass
from typing import Optional, Callable, Dict, Any

import bcrypt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from console.config import dlog


security = HTTPBasic(auto_error=False, realm="Display Console")


def _truthy(val: Optional[str]) -> bool:
    if val is None:
        return False
    return val.strip().lower() in {"1", "true", "yes", "on"}


def _env(*names: str) -> Optional[str]:
    for name in names:
        value = os.environ.get(name)
        if value is not None:
            return value
    return None


@dataclass(frozen=True)
class Operator:
    """The authenticated console operator (recorded as uploader of videos)."""

    username: str
    auth_mode: str


@dataclass(frozen=True)
class OperatorAuthConfig:
    enabled: bool
    username: str
    password_hash: Optional[str]
    password_plain: Optional[str]
    allow_reset: bool
    allow_user_mgmt: bool
    allow_uploads: bool
    disabled_reason: Optional[str] = None

    @property
    def auth_mode(self) -> str:
        if not self.enabled:
            return "disabled"
        if self.password_hash:
            return "hash"
        if self.password_plain:
            return "password"
        return "unknown"


def load_operator_auth_config() -> OperatorAuthConfig:
    """Read operator auth and permission flags from env (CONSOLE_* first, ADMIN_* as fallback)."""
    enabled = _truthy(_env("CONSOLE_ENABLED", "ENABLE_ADMIN", "ADMIN_ENABLED"))
    username = (_env("CONSOLE_USERNAME", "ADMIN_USERNAME") or "admin").strip() or "admin"
    password_hash = _env("CONSOLE_PASSWORD_HASH", "ADMIN_PASSWORD_HASH")
    password_plain = _env("CONSOLE_PASSWORD", "ADMIN_PASSWORD")
    uploads_flag = _env("CONSOLE_ALLOW_UPLOADS")

    disabled_reason = None
    if enabled and not (password_hash or password_plain):
        disabled_reason = "Console disabled: enabled but no CONSOLE_PASSWORD(_HASH) or ADMIN_PASSWORD(_HASH) provided."
        enabled = False

    cfg = OperatorAuthConfig(
        enabled=enabled,
        username=username,
        password_hash=password_hash,
        password_plain=password_plain,
        allow_reset=_truthy(_env("ENABLE_ADMIN_RESET", "ADMIN_ALLOW_RESET")),
        allow_user_mgmt=_truthy(_env("ENABLE_ADMIN_USER_MGMT", "ADMIN_ALLOW_USER_MGMT")),
        allow_uploads=True if uploads_flag is None else _truthy(uploads_flag),
        disabled_reason=disabled_reason,
    )
    dlog(
        "operator_auth_config",
        {
            "enabled": cfg.enabled,
            "username": cfg.username,
            "auth_mode": cfg.auth_mode,
            "allow_user_mgmt": cfg.allow_user_mgmt,
            "allow_uploads": cfg.allow_uploads,
            "disabled_reason": cfg.disabled_reason,
        },
    )
    return cfg


def check_credentials(config: OperatorAuthConfig, username: Optional[str], password: Optional[str]) -> bool:
    if not hmac.compare_digest(config.username or "", username or ""):
        return False
    if config.password_hash:
        try:
            return bcrypt.checkpw((password or "").encode("utf-8"), config.password_hash.encode("utf-8"))
        except ValueError:
            # Malformed hash in env.
            return False
    if config.password_plain:
        return hmac.compare_digest(config.password_plain, password or "")
    return False


def require_operator(config: OperatorAuthConfig) -> Callable[[HTTPBasicCredentials], Operator]:
    def dependency(credentials: HTTPBasicCredentials = Depends(security)) -> Operator:
        if not config.enabled:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")

        challenge = {"WWW-Authenticate": 'Basic realm="Display Console"'}
        if credentials is None or not credentials.username or credentials.password is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Authentication required",
                headers=challenge,
            )
        if not check_credentials(config, credentials.username, credentials.password):
            dlog("operator_auth_failed", {"username": credentials.username})
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid credentials",
                headers=challenge,
            )
        return Operator(username=config.username, auth_mode=config.auth_mode)

    return dependency


def public_auth_config(config: OperatorAuthConfig) -> Dict[str, Any]:
    """Redacted view of the auth config for status endpoints."""
    return {
        "enabled": config.enabled,
        "username": config.username if config.enabled else None,
        "auth_mode": config.auth_mode,
        "allow_reset": config.allow_reset,
        "allow_user_mgmt": config.allow_user_mgmt,
        "allow_uploads": config.allow_uploads,
        "disabled_reason": config.disabled_reason,
    }
