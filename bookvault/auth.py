import time
from typing import NamedTuple, Optional

import jwt
from fastapi import Depends, Request
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from . import crud, models
from .config import get_settings
from .db import get_db
from .errors import Forbidden, Unauthorized

# Use pbkdf2_sha256 as default to avoid bcrypt 72-byte limitation in some envs
pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto")

ALGORITHM = "HS256"
SESSION_COOKIE = "session"


def create_access_token(user: models.User, expires_delta: Optional[int] = None) -> str:
    settings = get_settings()
    now = int(time.time())
    exp = now + (expires_delta or settings.session_ttl_seconds)
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "role": models.Role(user.role).value,
        "iat": now,
        "exp": exp,
    }
    return jwt.encode(payload, settings.session_secret, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    return jwt.decode(token, get_settings().session_secret, algorithms=[ALGORITHM])


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def token_from_request(request: Request) -> Optional[str]:
    """Bearer header for API clients, session cookie for browsers."""
    auth = request.headers.get("authorization")
    if auth and auth.lower().startswith("bearer "):
        return auth.split(None, 1)[1].strip() or None
    return request.cookies.get(SESSION_COOKIE) or None


def session_claims(request: Request) -> Optional[dict]:
    token = token_from_request(request)
    if not token:
        return None
    try:
        claims = decode_access_token(token)
    except jwt.PyJWTError:
        return None
    if not claims.get("sub"):
        return None
    return claims


class Capability(NamedTuple):
    authenticated: bool
    role: Optional[models.Role] = None

    @property
    def is_admin(self) -> bool:
        return self.authenticated and self.role == models.Role.ADMIN


def capability_from_claims(claims: Optional[dict]) -> Capability:
    if not claims:
        return Capability(authenticated=False)
    try:
        role = models.Role(claims.get("role"))
    except ValueError:
        role = models.Role.USER
    return Capability(authenticated=True, role=role)


def check_capability(cap: Capability, admin: bool = False):
    """Raise the matching error when ``cap`` does not satisfy the requirement."""
    if not cap.authenticated:
        raise Unauthorized()
    if admin and not cap.is_admin:
        raise Forbidden()


def optional_user(request: Request, db: Session = Depends(get_db)) -> Optional[models.User]:
    claims = session_claims(request)
    if claims is None:
        return None
    return crud.get_user(db, claims["sub"])


def require_user(user: Optional[models.User] = Depends(optional_user)) -> models.User:
    if user is None:
        raise Unauthorized()
    return user


def require_admin(user: Optional[models.User] = Depends(optional_user)) -> models.User:
    # The role is re-read from the database, not trusted from the token
    cap = Capability(authenticated=user is not None, role=user.role if user else None)
    check_capability(cap, admin=True)
    return user
