from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from degreeplan.core.security import decode_access_token

# Tokens are issued by the external auth service; this API only verifies them
_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)


def get_optional_user_id(token: str | None = Depends(_oauth2_scheme)) -> str | None:
    if not token:
        return None
    return decode_access_token(token)


def get_current_user_id(token: str | None = Depends(_oauth2_scheme)) -> str:
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated.")
    user_id = decode_access_token(token)
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token.")
    return user_id
