"""Password hashing and signed token primitives."""

from datetime import datetime

import bcrypt
from jose import jwt

from backend.config import settings

ALGORITHM = "HS256"

# bcrypt only considers the first 72 bytes; newer releases reject longer input.
_BCRYPT_MAX_BYTES = 72


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    """Hash a password with bcrypt."""
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Verify a password against its hash."""
    return bcrypt.checkpw(_password_bytes(plain), hashed.encode("utf-8"))


def encode_token(claims: dict, expires_at: datetime | None = None) -> str:
    """Sign a JWT with the application secret. No ``exp`` claim when expires_at is None."""
    payload = dict(claims)
    if expires_at is not None:
        payload["exp"] = expires_at
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def decode_token(token: str, verify_exp: bool = True) -> dict:
    """Decode and validate a JWT token. Raises JWTError on failure."""
    return jwt.decode(
        token,
        settings.secret_key,
        algorithms=[ALGORITHM],
        options={"verify_exp": verify_exp},
    )
