# utils/tokenJWT.py
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from sqlalchemy import func
from sqlalchemy.orm import Session

from config import settings
from database import get_db
from models.users import USER_ROLES, User

# Tokens are issued by the external auth provider; this service only verifies them
bearer_scheme = HTTPBearer()

_credentials_exception = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Could not validate credentials",
    headers={"WWW-Authenticate": "Bearer"},
)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    lifetime = expires_delta if expires_delta is not None else timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode["exp"] = datetime.now(timezone.utc) + lifetime
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def _token_email(token: str) -> str:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise _credentials_exception
    email = payload.get("sub")
    if not email:
        raise _credentials_exception
    return email.strip().lower()


# Acting user of a request: every ledger write is attributed to it
def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    email = _token_email(credentials.credentials)
    user = db.query(User).filter(func.lower(User.email) == email).first()
    if user is None:
        raise _credentials_exception
    if (user.status or "").lower() != "active":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is inactive")
    return user


# Page guard, e.g. Depends(role_required("admin", "acc"))
def role_required(*allowed_roles):
    allowed = {r.lower() for r in allowed_roles}
    unknown = allowed.difference(USER_ROLES)
    if unknown:
        raise ValueError(f"Unknown role(s) for guard: {', '.join(sorted(unknown))}")

    def _checker(current_user: User = Depends(get_current_user)) -> User:
        if allowed and (current_user.role or "").lower() not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return current_user

    return _checker
