"""Role checks applied before an intent may touch the backend."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Sequence

import jwt

from core.errors import AuthenticationError, AuthorizationError
from core.intent_catalog import IntentCatalog

logger = logging.getLogger(__name__)

DEFAULT_JWT_ALGORITHM = "HS256"


def _strip_bearer(auth_token: Optional[str]) -> str:
    token = (auth_token or "").strip()
    if token.lower().startswith("bearer "):
        token = token[7:].strip()
    return token


class TokenAuthenticator:
    """Verifies bearer JWTs and reads the caller's role from them.

    Claims are trusted only when the signature checks out against ``secret``.
    Without a secret no token is trusted, so the role must come from the
    request context instead.
    """

    def __init__(self, secret: Optional[str] = None, algorithms: Sequence[str] = (DEFAULT_JWT_ALGORITHM,)) -> None:
        self._secret = secret
        self._algorithms = list(algorithms)

    @property
    def enabled(self) -> bool:
        return bool(self._secret)

    def verify(self, auth_token: Optional[str]) -> Dict[str, Any]:
        """Return the token's claims, or raise ``AuthenticationError``."""
        token = _strip_bearer(auth_token)
        if not token:
            raise AuthenticationError("Authorization token is required.")
        if not self._secret:
            raise AuthenticationError("Token verification is not configured.")
        try:
            return jwt.decode(token, self._secret, algorithms=self._algorithms)
        except jwt.ExpiredSignatureError as exc:
            raise AuthenticationError("Token has expired.") from exc
        except jwt.InvalidTokenError as exc:
            raise AuthenticationError("Invalid token.") from exc

    def claims(self, auth_token: Optional[str]) -> Optional[Dict[str, Any]]:
        try:
            return self.verify(auth_token)
        except AuthenticationError as exc:
            logger.debug("Ignoring bearer token claims: %s", exc)
            return None

    def resolve_role(
        self,
        auth_token: Optional[str],
        request_context: Optional[Mapping[str, Any]] = None,
    ) -> Optional[str]:
        """Return the role from the request context, else from a verified token's ``role`` claim."""
        if request_context:
            role = request_context.get("role")
            if isinstance(role, str) and role.strip():
                return role.strip().lower()
        claims = self.claims(auth_token) or {}
        role = claims.get("role")
        return role.strip().lower() if isinstance(role, str) and role.strip() else None


class RolePolicy:
    """Enforces the catalog's ``allowed_roles`` per intent."""

    def __init__(self, catalog: IntentCatalog) -> None:
        self._catalog = catalog

    def is_allowed(self, intent: str, role: Optional[str]) -> bool:
        return self._catalog.get(intent).allows(role)

    def ensure_allowed(self, intent: str, role: Optional[str]) -> None:
        if not self.is_allowed(intent, role):
            raise AuthorizationError(intent=intent, role=role)


__all__ = ["DEFAULT_JWT_ALGORITHM", "RolePolicy", "TokenAuthenticator"]
