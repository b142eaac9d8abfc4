from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from dailyprep.core.config import settings
from dailyprep.core.errors import AuthError


class TokenData(BaseModel):
    sub: str
    email: Optional[str] = None


bearer = HTTPBearer(auto_error=False)


def create_token(user_id: str, email: Optional[str] = None, ttl_minutes: Optional[int] = None) -> str:
    now = datetime.now(timezone.utc)
    ttl = ttl_minutes if ttl_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
    payload = {"sub": user_id, "iat": int(now.timestamp()), "exp": int((now + timedelta(minutes=ttl)).timestamp())}
    if email:
        payload["email"] = email
    return jwt.encode(payload, settings.SECRET_KEY.get_secret_value(), algorithm=settings.ALGORITHM)


def verify_token(token: str) -> TokenData:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY.get_secret_value(), algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthError("Token has expired")
    except jwt.InvalidTokenError:
        raise AuthError("Invalid token")
    sub = payload.get("sub")
    if not sub:
        raise AuthError("Token carries no subject")
    return TokenData(sub=str(sub), email=payload.get("email"))


def get_current_user(creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer)) -> TokenData:
    if creds is None or not creds.credentials:
        raise AuthError("No authorization header")
    return verify_token(creds.credentials)
