"""Login paths.

Password, OTP, Google and registration all end the same way: resolve (or
create) a user, then issue a token. Every function returns

    {"user": <public user>, "token": "<jwt>"}
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from velora.config import Config
from velora.db import connect
from velora.errors import Conflict, DeliveryError, Unauthorized, ValidationError
from velora.mail.brevo import Mailer, send_otp_email

from .crud import (
    create_user,
    get_user_by_email,
    get_user_by_google_id,
    normalize_email,
    public_user,
    update_user,
)
from .otp import check_code, generate_code, store_code
from .security import create_access_token, verify_password


def _debug(msg: str) -> None:
    print(f"[auth] {msg}")


def issue_session(cfg: Config, user: Dict[str, Any]) -> Dict[str, Any]:
    token = create_access_token(
        secret=cfg.AUTH_JWT_SECRET,
        user_id=str(user["id"]),
        expires_minutes=int(cfg.AUTH_TOKEN_EXPIRE_MINUTES),
    )
    return {"user": public_user(user), "token": token}


def _role_for(cfg: Config, email: str) -> str:
    # Only for paths where the caller has proven they own the address (OTP, Google).
    admin = normalize_email(cfg.ADMIN_EMAIL)
    return "admin" if admin and normalize_email(email) == admin else "user"


def register(cfg: Config, *, username: str, email: str, password: str) -> Dict[str, Any]:
    if not (username or "").strip():
        raise ValidationError("username_blank")
    if not password:
        raise ValidationError("password_blank")

    with connect(cfg.DB_DSN) as conn:
        if get_user_by_email(conn, email) is not None:
            raise Conflict("user_exists")
        user = create_user(
            conn,
            username=username,
            email=email,
            password=password,
            role="user",
        )
    _debug(f"registered email={user['email']}")
    return issue_session(cfg, user)


def login(cfg: Config, *, email: str, password: str) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        user = get_user_by_email(conn, email)

    # Same answer for unknown email, passwordless account and wrong password.
    if user is None or not user.get("password_hash"):
        raise Unauthorized("invalid_credentials")
    if not verify_password(password, str(user["password_hash"])):
        _debug(f"failed login email={normalize_email(email)}")
        raise Unauthorized("invalid_credentials")
    return issue_session(cfg, user)


def request_otp(cfg: Config, mailer: Mailer, *, email: str) -> None:
    e = normalize_email(email)
    if not e:
        raise ValidationError("email_blank")

    code = generate_code()
    with connect(cfg.DB_DSN) as conn:
        store_code(conn, e, code, ttl_minutes=int(cfg.OTP_TTL_MINUTES))

    try:
        send_otp_email(mailer, email=e, code=code, ttl_minutes=int(cfg.OTP_TTL_MINUTES))
    except DeliveryError:
        raise
    except Exception as ex:
        _debug(f"otp delivery failed email={e}: {ex}")
        raise DeliveryError("otp_delivery_failed") from ex
    _debug(f"otp sent email={e}")


def verify_otp(cfg: Config, *, email: str, code: str) -> Dict[str, Any]:
    e = normalize_email(email)
    failure: Optional[Unauthorized] = None
    user: Optional[Dict[str, Any]] = None

    with connect(cfg.DB_DSN) as conn:
        try:
            check_code(conn, e, code, max_attempts=int(cfg.OTP_MAX_ATTEMPTS))
        except Unauthorized as err:
            # Keep the attempt bump / purge: let the transaction commit, raise afterwards.
            failure = err
        else:
            user = get_user_by_email(conn, e)
            if user is None:
                user = create_user(
                    conn,
                    username=e.split("@")[0],
                    email=e,
                    role=_role_for(cfg, e),
                    email_verified=True,
                )
            elif not user.get("email_verified"):
                user = update_user(conn, user["id"], email_verified=True)

    if failure is not None:
        _debug(f"otp rejected email={e} reason={failure.detail}")
        raise failure
    assert user is not None
    return issue_session(cfg, user)


def oauth_login(
    cfg: Config,
    *,
    provider_id: str,
    display_name: str | None,
    email: str | None,
    avatar: str | None = None,
) -> Dict[str, Any]:
    pid = (provider_id or "").strip()
    if not pid:
        raise Unauthorized("oauth_profile_missing_id")
    e = normalize_email(email or "")

    with connect(cfg.DB_DSN) as conn:
        user = get_user_by_google_id(conn, pid)
        if user is None and e:
            # Same person signed up by password/OTP before: link instead of duplicating the email.
            existing = get_user_by_email(conn, e)
            if existing is not None:
                user = update_user(
                    conn,
                    existing["id"],
                    google_id=pid,
                    avatar=existing.get("avatar") or avatar,
                    email_verified=True,
                )
        if user is None:
            if not e:
                raise Unauthorized("oauth_profile_missing_email")
            user = create_user(
                conn,
                username=(display_name or "").strip() or e,
                email=e,
                google_id=pid,
                avatar=avatar,
                role=_role_for(cfg, e),
                email_verified=True,
            )
    return issue_session(cfg, user)
