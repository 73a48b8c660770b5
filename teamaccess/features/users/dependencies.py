"""
FastAPI dependencies for authentication.
"""
from typing import Annotated
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from teamaccess.features.users.auth import AuthContext, verify_jwt_token, auth_context_from_payload


security = HTTPBearer()


async def get_auth_context(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)]
) -> AuthContext:
    """
    Get the calling member from the Bearer token.

    Usage:
        @router.get("/current")
        async def current_team(auth: AuthContext = Depends(get_auth_context)):
            ...
    """
    payload = verify_jwt_token(credentials.credentials)
    return auth_context_from_payload(payload)


def get_authorization_header(request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"
