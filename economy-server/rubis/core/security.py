"""JWT identity helpers.

Tokens are issued by the platform's auth service; this service only verifies
the signature and reads ``sub`` (user id) and ``role``.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from rubis.core.config import get_settings

security = HTTPBearer()

ADMIN_ROLES = {"admin"}


@dataclass(slots=True, frozen=True)
class CurrentUser:
    id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


def create_access_token(user_id: str, role: str, expires_delta: Optional[timedelta] = None) -> str:
    """Sign a token the way the auth service does; used by tooling and tests."""
    settings = get_settings()
    payload = {
        "sub": user_id,
        "role": role,
        "exp": datetime.now(timezone.utc) + (expires_delta or timedelta(hours=1)),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> CurrentUser:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Could not validate credentials") from exc

    user_id = payload.get("sub")
    role = payload.get("role") or "viewer"
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Could not validate credentials")
    return CurrentUser(id=str(user_id), role=str(role))


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)) -> CurrentUser:
    return decode_access_token(credentials.credentials)


async def get_current_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    return user
