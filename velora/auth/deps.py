from __future__ import annotations

from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from velora.db import connect
from velora.errors import Forbidden, InternalError, Unauthorized

from .crud import get_user_by_id, public_user
from .security import decode_access_token


_bearer = HTTPBearer(auto_error=False)


def _resolve_user(request: Request, token: str) -> Dict[str, Any]:
    cfg = getattr(request.app.state, "cfg", None)
    if cfg is None:
        raise InternalError("server_config_missing")

    try:
        payload = decode_access_token(token=token, secret=cfg.AUTH_JWT_SECRET)
    except jwt.ExpiredSignatureError:
        raise Unauthorized("token_expired")
    except jwt.InvalidTokenError:
        raise Unauthorized("token_invalid")
    except Exception:
        raise Unauthorized("token_decode_error")

    sub = str(payload.get("sub") or "").strip()
    if not sub:
        raise Unauthorized("token_missing_sub")

    # Re-fetch on every request: deleting a user revokes their tokens.
    with connect(cfg.DB_DSN) as conn:
        user = get_user_by_id(conn, sub)
    if user is None:
        raise Unauthorized("user_not_found")
    return public_user(user)


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Dict[str, Any]:
    """Authenticate a request via `Authorization: Bearer <jwt>`."""

    if credentials is None or not credentials.credentials:
        raise Unauthorized("missing_token")
    return _resolve_user(request, credentials.credentials)


def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Optional[Dict[str, Any]]:
    """Like get_current_user, but anonymous (or badly authenticated) callers get None.

    Used by public catalog routes where admins see more.
    """
    if credentials is None or not credentials.credentials:
        return None
    try:
        return _resolve_user(request, credentials.credentials)
    except Unauthorized:
        return None


def require_admin(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if user.get("role") != "admin":
        raise Forbidden("admin_required")
    return user
