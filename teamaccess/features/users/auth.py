"""
Bearer token handling.

Tokens are issued elsewhere; this module only verifies them and turns the
claims into an ``AuthContext`` the services trust.
"""
import jwt
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from fastapi import HTTPException, status

from teamaccess.core import config


@dataclass(frozen=True)
class AuthContext:
    """Already-authenticated caller: a member acting inside one team."""
    member_id: str
    team_id: str
    is_root: bool = False


def verify_jwt_token(token: str) -> dict:
    """
    Verify a signed JWT and return its payload.

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        return jwt.decode(
            token,
            config.JWT_SECRET,
            algorithms=[config.JWT_ALGORITHM],
            options={"verify_exp": True}
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )


def auth_context_from_payload(payload: dict) -> AuthContext:
    member_id = payload.get("tmbId")
    team_id = payload.get("teamId")
    if not member_id or not team_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )
    return AuthContext(member_id=member_id, team_id=team_id, is_root=bool(payload.get("isRoot", False)))


def create_access_token(
    member_id: str,
    team_id: str,
    is_root: bool = False,
    expires_in: Optional[timedelta] = None
) -> str:
    """Sign a token for local tooling (seed script, tests)."""
    payload = {
        "tmbId": member_id,
        "teamId": team_id,
        "isRoot": is_root,
        "exp": datetime.now(timezone.utc) + (expires_in or timedelta(hours=1)),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)
