"""Authentication and authorization.

Tokens are issued by the upstream user service. This service only verifies
them and derives the caller identity from the claims; there is no local
user table.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional
import logging
import time

from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from .config import settings

logger = logging.getLogger(__name__)

# Bearer token scheme
security = HTTPBearer()


@dataclass(frozen=True)
class CurrentUser:
    """Caller identity extracted from an access token."""

    id: str
    username: str
    role: str
    roles: tuple[str, ...] = field(default_factory=tuple)

    @property
    def all_roles(self) -> tuple[str, ...]:
        if self.role in self.roles:
            return self.roles
        return (self.role, *self.roles)

    def has_role(self, role: str) -> bool:
        return role in self.all_roles


def _credentials_error(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token (used by tooling and tests)."""
    to_encode = data.copy()
    now = int(time.time())
    ttl = int(expires_delta.total_seconds()) if expires_delta else 3600
    to_encode.update({"exp": now + ttl, "iat": now, "type": "access"})
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode JWT token with leeway-aware expiry."""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_exp": False},
        )
    except JWTError:
        raise _credentials_error()

    now = int(time.time())
    exp = payload.get("exp")
    if exp is None:
        raise _credentials_error()
    try:
        exp_int = int(exp)
    except (TypeError, ValueError):
        raise _credentials_error()
    if now > exp_int + int(settings.JWT_LEEWAY_SECONDS):
        raise _credentials_error("Token expired")
    return payload


def user_from_claims(payload: dict) -> CurrentUser:
    """Build caller identity from verified claims."""
    sub = payload.get("sub")
    role = payload.get("role")
    if not sub or not role:
        raise _credentials_error()

    extra_roles = payload.get("roles") or []
    if not isinstance(extra_roles, list):
        raise _credentials_error()

    return CurrentUser(
        id=str(sub),
        username=str(payload.get("username") or sub),
        role=str(role),
        roles=tuple(str(r) for r in extra_roles),
    )


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> CurrentUser:
    """Get current authenticated user."""
    payload = decode_token(credentials.credentials)
    if payload.get("type", "access") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
        )
    return user_from_claims(payload)


# Permission checks
class PermissionChecker:
    """Check user permissions based on role."""

    def __init__(self, required_permission: str):
        self.required_permission = required_permission

    def __call__(self, current_user: CurrentUser = Depends(get_current_user)):
        """Check if user has required permission."""
        if not check_permission(current_user, self.required_permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: {self.required_permission} required",
            )
        return current_user


# Role permissions matrix
ROLE_PERMISSIONS = {
    "admin": {
        "canManageFeedback": True,
        "canRecordSteps": True,
        "canRecordQuality": True,
        "canComment": True,
        "canModerateComments": True,
        "canManageNotifications": True,
        "canSyncMarketplace": True,
        "canReportIssues": True,
        "canManageIssues": True,
    },
    "production_manager": {
        "canManageFeedback": True,
        "canRecordSteps": True,
        "canRecordQuality": True,
        "canComment": True,
        "canModerateComments": False,
        "canManageNotifications": True,
        "canSyncMarketplace": True,
        "canReportIssues": True,
        "canManageIssues": True,
    },
    "supervisor": {
        "canManageFeedback": False,
        "canRecordSteps": True,
        "canRecordQuality": True,
        "canComment": True,
        "canModerateComments": False,
        "canManageNotifications": False,
        "canSyncMarketplace": False,
        "canReportIssues": True,
        "canManageIssues": True,
    },
    "quality_inspector": {
        "canManageFeedback": False,
        "canRecordSteps": False,
        "canRecordQuality": True,
        "canComment": True,
        "canModerateComments": False,
        "canManageNotifications": False,
        "canSyncMarketplace": False,
        "canReportIssues": True,
        "canManageIssues": False,
    },
    "operator": {
        "canManageFeedback": False,
        "canRecordSteps": True,
        "canRecordQuality": False,
        "canComment": True,
        "canModerateComments": False,
        "canManageNotifications": False,
        "canSyncMarketplace": False,
        "canReportIssues": True,
        "canManageIssues": False,
    },
    "viewer": {
        "canManageFeedback": False,
        "canRecordSteps": False,
        "canRecordQuality": False,
        "canComment": False,
        "canModerateComments": False,
        "canManageNotifications": False,
        "canSyncMarketplace": False,
        "canReportIssues": False,
        "canManageIssues": False,
    },
}


def check_permission(user: CurrentUser, permission: str) -> bool:
    """Check if any of the user's roles grants the permission."""
    return any(
        ROLE_PERMISSIONS.get(role, {}).get(permission, False)
        for role in user.all_roles
    )
