"""
Authentication for FastAPI endpoints.

Bearer tokens are verified through Supabase auth.get_user(). The identity
provider never raises on a bad token: it returns None, and callers fail
closed with 401.
"""

from typing import Annotated, Protocol

import structlog
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

logger = structlog.get_logger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)

UNAUTHORIZED_DETAIL = {"code": "UNAUTHORIZED"}


class AuthenticatedUser(BaseModel):
    """Represents a verified authenticated user."""

    id: str
    email: str | None = None


class IdentityProvider(Protocol):
    async def authenticate(self, token: str | None) -> AuthenticatedUser | None:
        """Resolve a bearer token to a user, or None when it is missing or invalid."""


class SupabaseIdentityProvider:
    """Verifies JWTs with the Supabase auth API."""

    def __init__(self, client) -> None:
        self.client = client

    async def authenticate(self, token: str | None) -> AuthenticatedUser | None:
        if not token:
            return None
        try:
            response = await self.client.auth.get_user(token)
        except Exception as e:
            logger.warning("auth_token_verification_failed", error=str(e))
            return None
        user = response.user if response else None
        if user is None:
            return None
        return AuthenticatedUser(id=str(user.id), email=user.email)


def bearer_token(credentials: HTTPAuthorizationCredentials | None) -> str | None:
    return credentials.credentials if credentials else None


BearerCredentials = Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)]


def get_identity_provider(request: Request) -> IdentityProvider:
    provider = getattr(request.app.state, "identity_provider", None)
    if provider is None:
        raise HTTPException(status_code=503, detail="Authentication service unavailable")
    return provider


async def get_current_user(
    request: Request,
    credentials: BearerCredentials,
) -> AuthenticatedUser:
    """
    FastAPI dependency that verifies a JWT Bearer token.

    Raises:
        HTTPException 503: identity provider not configured.
        HTTPException 401: token missing, invalid, expired, or user not found.
    """
    provider = get_identity_provider(request)
    user = await provider.authenticate(bearer_token(credentials))
    if user is None:
        raise HTTPException(status_code=401, detail=UNAUTHORIZED_DETAIL)
    return user


CurrentUser = Annotated[AuthenticatedUser, Depends(get_current_user)]
