"""
Bearer-token authentication and route-level permission gates.

Tokens are issued elsewhere; this module only verifies them (HS256 by
default) and reads the ``user_id``, ``username``, ``role`` and
``permissions`` claims.
"""

from typing import Callable, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from ..config import get_settings
from .enums import Permission
from .errors import AuthenticationError, PermissionDeniedError, ValidationError
from .identity import CurrentUser
from .policy import parse_role

bearer_scheme = HTTPBearer(auto_error=False)


def decode_access_token(token: str) -> CurrentUser:
    """Verify a token and build the caller from its claims."""
    settings = get_settings()
    try:
        claims = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise AuthenticationError("Unauthorized: invalid or expired token") from None

    user_id = claims.get("user_id")
    if not user_id:
        raise AuthenticationError("Unauthorized: token carries no user")

    try:
        role = parse_role(claims.get("role"))
    except ValidationError as exc:
        raise AuthenticationError(f"Unauthorized: {exc.message}") from None

    return CurrentUser(
        user_id=str(user_id),
        role=role,
        username=claims.get("username") or "",
        permissions=frozenset(claims.get("permissions") or []),
    )


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> CurrentUser:
    """Dependency resolving the authenticated caller."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Unauthorized: bearer token not found")
    return decode_access_token(credentials.credentials)


def require_permission(permission: Permission) -> Callable[..., CurrentUser]:
    """Dependency factory rejecting callers whose token lacks ``permission``."""

    def dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if not user.has_permission(permission.value):
            raise PermissionDeniedError(
                f"Forbidden: missing permission '{permission.value}'"
            )
        return user

    return dependency
