import time
from enum import Enum
from typing import NamedTuple, Optional

import jwt
from passlib.context import CryptContext

from . import errors
from .config import get_settings

# Use pbkdf2_sha256 as default to avoid bcrypt 72-byte limitation in some envs;
# bcrypt hashes from older deployments still verify
pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto")

ALGORITHM = "HS256"


class RoleName(str, Enum):
    ADMIN = "Administrador"
    CLIENT = "Cliente"


class Identity(NamedTuple):
    """Caller identity as carried by the access token.

    The role is the one the user had when the token was issued; a role change
    only takes effect after logging in again.
    """

    user_id: int
    email: Optional[str]
    role: str

    @property
    def is_admin(self) -> bool:
        return is_admin(self)


def is_admin(identity: Identity) -> bool:
    # exact, case-sensitive match on the wire name
    return identity.role == RoleName.ADMIN.value


def create_access_token(user_id: int, email: str, role: str, expires_delta: Optional[int] = None) -> str:
    settings = get_settings()
    now = int(time.time())
    exp = now + (expires_delta if expires_delta is not None else settings.jwt_exp_seconds)
    payload = {"sub": str(user_id), "email": email, "role": role, "iat": now, "exp": exp}
    return jwt.encode(payload, settings.jwt_secret, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    return jwt.decode(token, get_settings().jwt_secret, algorithms=[ALGORITHM])


def verify(token: Optional[str]) -> Identity:
    """Turn a bearer credential into an Identity.

    Raises Forbidden when no credential is given and Unauthorized when it is
    malformed, badly signed or expired.
    """
    if not token:
        raise errors.Forbidden("token required")
    try:
        payload = decode_access_token(token)
        return Identity(user_id=int(payload["sub"]), email=payload.get("email"), role=payload.get("role", ""))
    except jwt.ExpiredSignatureError as e:
        raise errors.Unauthorized("token expired") from e
    except (jwt.PyJWTError, KeyError, TypeError, ValueError) as e:
        raise errors.Unauthorized("invalid token") from e


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(None, 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1].strip() or None


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)
