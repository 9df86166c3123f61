"""Bearer-token helpers shared by the blueprints."""

from __future__ import annotations

from typing import Optional

from flask import current_app, request

from shopcore.errors import AuthenticationError, UnauthorizedError
from shopcore.services.auth_service import AuthContext, bearer_token


def _components() -> dict:
    return current_app.extensions["shop_components"]


def optional_identity() -> Optional[AuthContext]:
    """Verified caller when an Authorization header is present, else None."""
    token = bearer_token(request.headers.get("Authorization"))
    if token is None:
        return None
    return _components()["auth_service"].verify(token)


def require_identity() -> AuthContext:
    identity = optional_identity()
    if identity is None:
        raise AuthenticationError("Authentication required")
    return identity


def require_admin() -> AuthContext:
    identity = require_identity()
    if identity.is_admin or _components()["user_service"].is_admin(identity.user_id):
        return identity
    raise UnauthorizedError("Admin access required")


def ensure_same_user(user_id: str) -> None:
    """A bearer token, when sent, must belong to the user named in the request."""
    identity = optional_identity()
    if identity is not None and identity.user_id != user_id:
        raise UnauthorizedError("Token does not match userId")
