from datetime import datetime, timedelta, timezone
from typing import Literal, Optional

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt

from ballotbox.core.settings import get_settings

Role = Literal["admin", "voter"]


class Principal:
    """Identity context handed to the core. Credentials are checked upstream."""

    def __init__(
        self,
        email: str,
        role: Role,
        voter_id: Optional[str] = None,
        ballot_id: Optional[str] = None,
    ):
        self.email = email
        self.role = role
        self.voter_id = voter_id
        self.ballot_id = ballot_id


def create_access_token(
    email: str,
    role: Role,
    voter_id: Optional[str] = None,
    ballot_id: Optional[str] = None,
    expires_minutes: int = 60,
) -> str:
    settings = get_settings()
    claims = {
        "sub": email,
        "role": role,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=expires_minutes),
    }
    if voter_id:
        claims["voter_id"] = voter_id
    if ballot_id:
        claims["ballot_id"] = ballot_id
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def _parse_token(token: str) -> Optional[Principal]:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None

    email = payload.get("sub")
    role = payload.get("role")
    if not isinstance(email, str) or role not in ("admin", "voter"):
        return None
    return Principal(
        email=email.strip().lower(),
        role=role,
        voter_id=payload.get("voter_id"),
        ballot_id=payload.get("ballot_id"),
    )


def get_current_user(request: Request) -> Principal:
    auth = request.headers.get("authorization", "")
    parts = auth.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        principal = _parse_token(parts[1])
        if principal is not None:
            return principal
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthenticated")


def require_role(need: Role):
    def _dep(user: Principal = Depends(get_current_user)) -> Principal:
        if user.role != need:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="forbidden")
        return user

    return _dep


__all__ = ["Principal", "Role", "create_access_token", "get_current_user", "require_role"]
