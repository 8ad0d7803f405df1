import re
from pathlib import Path
from typing import Any, Dict, List

import pytest
from fastapi.testclient import TestClient

from velora.api.server import create_app
from velora.config import Config
from velora.db import connect


ADMIN_EMAIL = "admin@velora.app"


class FakeMailer:
    """Records outgoing mail instead of calling Brevo."""

    def __init__(self) -> None:
        self.sent: List[Dict[str, str]] = []
        self.fail_with: Exception | None = None

    def send(self, *, to_email: str, subject: str, text: str) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append({"to": to_email, "subject": subject, "text": text})

    def last_code(self, email: str) -> str:
        for msg in reversed(self.sent):
            if msg["to"] == email:
                m = re.search(r"\b(\d{6})\b", msg["text"])
                assert m, msg
                return m.group(1)
        raise AssertionError(f"no mail sent to {email}")


@pytest.fixture()
def cfg(tmp_path: Path) -> Config:
    return Config(
        DB_DSN=str(tmp_path / "velora.sqlite"),
        AUTH_JWT_SECRET="test-secret-0123456789abcdef0123",
        AUTH_TOKEN_EXPIRE_MINUTES=0,
        ADMIN_EMAIL=ADMIN_EMAIL,
        ADMIN_BOOTSTRAP_PASSWORD=None,
        OTP_TTL_MINUTES=10,
        OTP_MAX_ATTEMPTS=3,
        BREVO_API_KEY=None,
        GOOGLE_CLIENT_ID=None,
        GOOGLE_CLIENT_SECRET=None,
        CORS_ALLOW_ORIGINS="",
        AUTO_PUBLISH_APPROVED_SUBMISSIONS=False,
        TRENDING_LIMIT=6,
    )


@pytest.fixture()
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture()
def client(cfg: Config, mailer: FakeMailer):
    app = create_app(cfg, mailer=mailer)
    # Context manager runs the startup hook (schema creation).
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def db(cfg: Config, client: TestClient):
    """Direct DB access for arranging / inspecting state."""

    def _run(sql: str, params: tuple = ()) -> List[Any]:
        with connect(cfg.DB_DSN) as conn:
            return [dict(r) for r in conn.execute(sql, params).fetchall()]

    return _run


def bearer(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def register(client: TestClient, username: str, email: str, password: str = "secret1") -> Dict[str, Any]:
    r = client.post("/api/auth/register", json={"username": username, "email": email, "password": password})
    assert r.status_code == 200, r.text
    return r.json()


def otp_login(client: TestClient, mailer: FakeMailer, email: str) -> Dict[str, Any]:
    r = client.post("/api/auth/otp/send", json={"email": email})
    assert r.status_code == 200, r.text
    r = client.post("/api/auth/otp/verify", json={"email": email, "otp": mailer.last_code(email)})
    assert r.status_code == 200, r.text
    return r.json()


@pytest.fixture()
def user_session(client: TestClient) -> Dict[str, Any]:
    return register(client, "alice", "alice@x.com")


@pytest.fixture()
def admin_session(client: TestClient, mailer: FakeMailer) -> Dict[str, Any]:
    # Admin rights need a proven ADMIN_EMAIL; a password registration is not enough.
    return otp_login(client, mailer, ADMIN_EMAIL)


@pytest.fixture()
def make_tool(client: TestClient, admin_session: Dict[str, Any]):
    def _make(**overrides: Any) -> Dict[str, Any]:
        body = {
            "name": "Tool",
            "description": "A tool",
            "shortDescription": "A tool",
            "category": "Writing",
            "pricing": "Free",
            "website": "https://tool.example.com",
            "approved": True,
        }
        body.update(overrides)
        r = client.post("/api/admin/tools", json=body, headers=bearer(admin_session["token"]))
        assert r.status_code == 200, r.text
        return r.json()

    return _make
