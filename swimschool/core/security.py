"""Admin authentication for the coverage API.

The engine trusts the caller to have authorised the operator. The only
account is the configured administrator, whose password is hashed once on
first use.
"""

from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel

from swimschool.core.settings import settings

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

ALGORITHM = "HS256"


class Token(BaseModel):
    """Token response model."""

    access_token: str
    token_type: str


class TokenData(BaseModel):
    username: Optional[str] = None


class Operator(BaseModel):
    """Authenticated back-office operator."""

    username: str
    email: Optional[str] = None
    is_admin: bool = True


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


@lru_cache
def _admin_password_hash() -> str:
    return get_password_hash(settings.admin_password)


def authenticate_operator(username: str, password: str) -> Optional[Operator]:
    """Check credentials against the configured admin account."""
    if username != settings.admin_email:
        return None
    if not verify_password(password, _admin_password_hash()):
        return None
    return Operator(username=username, email=username)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed access token."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=ALGORITHM)


def verify_token(token: str) -> Optional[TokenData]:
    """Decode a token, returning None when it is invalid or expired."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return None
    username = payload.get("sub")
    if username is None:
        return None
    return TokenData(username=username)
