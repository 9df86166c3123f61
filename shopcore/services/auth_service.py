import logging
import time
from dataclasses import dataclass
from typing import Optional

import jwt  # PyJWT library for bearer token verification

from ..errors import AuthenticationError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthContext:
    user_id: str
    email: str = ""
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def bearer_token(header: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not header:
        return None
    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class AuthService:
    """Verifies HS256 access tokens issued by the external auth provider.

    The ``sub`` claim is the user id; ``role`` (top level or inside
    ``app_metadata``) decides admin access.
    """

    def __init__(self, secret: str, audience: Optional[str] = "authenticated"):
        self._secret = secret
        self._audience = audience or None

    def verify(self, token: str) -> AuthContext:
        if not self._secret:
            raise AuthenticationError("Authentication is not configured")
        options = {"require": ["sub", "exp"], "verify_aud": self._audience is not None}
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=["HS256"],
                audience=self._audience,
                options=options,
            )
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token expired") from None
        except jwt.InvalidTokenError as exc:
            logger.info("Rejected bearer token: %s", exc)
            raise AuthenticationError("Invalid token") from None

        metadata = claims.get("app_metadata") or {}
        role = claims.get("role") if claims.get("role") in ("user", "admin") else None
        role = role or metadata.get("role") or "user"
        return AuthContext(user_id=str(claims["sub"]), email=str(claims.get("email") or ""), role=role)

    def issue(self, user_id: str, *, role: str = "user", email: str = "", ttl_seconds: int = 3600, now=None) -> str:
        """Mint a token the verifier accepts (used by tooling and tests)."""

        issued = int(now if now is not None else time.time())
        payload = {"sub": user_id, "email": email, "role": role, "iat": issued, "exp": issued + ttl_seconds}
        if self._audience:
            payload["aud"] = self._audience
        return jwt.encode(payload, self._secret, algorithm="HS256")
