from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from degreeplan.core.config import settings

_ALGORITHM = "HS256"
_TOKEN_EXPIRE_MINUTES = 60 * 24 * 7  # 7 days


def create_access_token(subject: Any, expires_minutes: int = _TOKEN_EXPIRE_MINUTES) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    return jwt.encode(
        {"sub": str(subject), "exp": expire},
        settings.jwt_secret,
        algorithm=_ALGORITHM,
    )


def decode_access_token(token: str) -> str | None:
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[_ALGORITHM])
        subject = payload["sub"]
    except (JWTError, KeyError):
        return None
    return str(subject) if subject else None
