from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt
from passlib.context import CryptContext


# pbkdf2_sha256 salts per hash; default rounds are well above bcrypt cost 10 in work factor.
_pwd = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
_JWT_ALG = "HS256"


def hash_password(password: str) -> str:
    if not password:
        raise ValueError("password_blank")
    return _pwd.hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password or not password_hash:
        return False
    try:
        return _pwd.verify(password, password_hash)
    except Exception:
        return False


def create_access_token(*, secret: str, user_id: str, expires_minutes: int = 0) -> str:
    """Sign a token that carries only the user id.

    With expires_minutes <= 0 no `exp` claim is set; the token is then only
    invalidated by deleting the user (checked on every request).
    """
    if not secret:
        raise ValueError("jwt_secret_blank")

    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "sub": str(user_id),
        "iat": int(now.timestamp()),
    }
    if int(expires_minutes or 0) > 0:
        payload["exp"] = int((now + timedelta(minutes=int(expires_minutes))).timestamp())
    return jwt.encode(payload, secret, algorithm=_JWT_ALG)


def decode_access_token(*, token: str, secret: str) -> Dict[str, Any]:
    if not token:
        raise ValueError("token_blank")
    if not secret:
        raise ValueError("jwt_secret_blank")
    return jwt.decode(token, secret, algorithms=[_JWT_ALG])
