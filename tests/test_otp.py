from datetime import datetime, timedelta, timezone

import pytest

from velora.auth.otp import check_code, generate_code, get_live_record, store_code
from velora.db import connect
from velora.errors import DeliveryError, Unauthorized

from conftest import bearer


def _send(client, email):
    r = client.post("/api/auth/otp/send", json={"email": email})
    assert r.status_code == 200, r.text
    return r


def test_generate_code_is_six_digits():
    for _ in range(200):
        code = generate_code()
        assert len(code) == 6
        assert code.isdigit()


def test_send_mails_six_digit_code(client, mailer):
    r = _send(client, "a@x.com")
    assert r.json() == {"message": "OTP sent successfully"}
    assert len(mailer.sent) == 1
    assert mailer.sent[0]["subject"] == "Your Velora Login Code"
    code = mailer.last_code("a@x.com")
    assert len(code) == 6 and code.isdigit()


def test_verify_creates_passwordless_user_on_first_login(client, mailer):
    _send(client, "new.person@x.com")
    code = mailer.last_code("new.person@x.com")

    r = client.post("/api/auth/otp/verify", json={"email": "new.person@x.com", "otp": code})
    assert r.status_code == 200
    data = r.json()
    assert data["user"]["username"] == "new.person"
    assert data["user"]["email"] == "new.person@x.com"
    assert data["user"]["favorites"] == []

    me = client.get("/api/user/me", headers=bearer(data["token"])).json()
    assert me["id"] == data["user"]["id"]


def test_verify_reuses_existing_user(client, mailer, user_session):
    _send(client, "alice@x.com")
    code = mailer.last_code("alice@x.com")
    r = client.post("/api/auth/otp/verify", json={"email": "alice@x.com", "otp": code})
    assert r.status_code == 200
    assert r.json()["user"]["id"] == user_session["user"]["id"]


def test_code_is_single_use(client, mailer):
    _send(client, "a@x.com")
    code = mailer.last_code("a@x.com")
    assert client.post("/api/auth/otp/verify", json={"email": "a@x.com", "otp": code}).status_code == 200
    assert client.post("/api/auth/otp/verify", json={"email": "a@x.com", "otp": code}).status_code == 401


def test_three_wrong_codes_burn_the_record(client, mailer, db):
    _send(client, "a@x.com")
    code = mailer.last_code("a@x.com")
    wrong = "000000" if code != "000000" else "111111"

    for i in range(3):
        r = client.post("/api/auth/otp/verify", json={"email": "a@x.com", "otp": wrong})
        assert r.status_code == 401
        assert r.json()["detail"] == "invalid_otp"
        assert db("SELECT attempts FROM pending_otps WHERE email=?", ("a@x.com",))[0]["attempts"] == i + 1

    r = client.post("/api/auth/otp/verify", json={"email": "a@x.com", "otp": code})
    assert r.status_code == 401
    assert r.json()["detail"] == "too_many_attempts"
    assert db("SELECT * FROM pending_otps WHERE email=?", ("a@x.com",)) == []


def test_expired_code_never_verifies(client, mailer, db):
    _send(client, "a@x.com")
    code = mailer.last_code("a@x.com")
    db("UPDATE pending_otps SET expires_at=? WHERE email=?", ("2000-01-01T00:00:00Z", "a@x.com"))

    r = client.post("/api/auth/otp/verify", json={"email": "a@x.com", "otp": code})
    assert r.status_code == 401
    assert r.json()["detail"] == "invalid_or_expired_otp"
    assert db("SELECT * FROM pending_otps") == []


def test_new_request_replaces_pending_code(client, mailer, db):
    _send(client, "a@x.com")
    client.post("/api/auth/otp/verify", json={"email": "a@x.com", "otp": "999999"})
    _send(client, "a@x.com")

    rows = db("SELECT * FROM pending_otps WHERE email=?", ("a@x.com",))
    assert len(rows) == 1
    assert rows[0]["attempts"] == 0
    assert rows[0]["code"] == mailer.last_code("a@x.com")


def test_delivery_failure_is_500(client, mailer):
    mailer.fail_with = RuntimeError("smtp down")
    r = client.post("/api/auth/otp/send", json={"email": "a@x.com"})
    assert r.status_code == 500
    assert r.json()["detail"] == "otp_delivery_failed"

    mailer.fail_with = DeliveryError("mail_not_configured")
    r = client.post("/api/auth/otp/send", json={"email": "a@x.com"})
    assert r.status_code == 500


def test_verify_body_must_carry_six_char_code(client):
    r = client.post("/api/auth/otp/verify", json={"email": "a@x.com", "otp": "123"})
    assert r.status_code == 400


def test_expiry_boundary(cfg, client):
    t0 = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)
    with connect(cfg.DB_DSN) as conn:
        store_code(conn, "b@x.com", "123456", ttl_minutes=10, now=t0)
        assert get_live_record(conn, "b@x.com", now=t0 + timedelta(minutes=9, seconds=59)) is not None
        assert get_live_record(conn, "b@x.com", now=t0 + timedelta(minutes=10, seconds=1)) is None
        # Purged on read.
        assert get_live_record(conn, "b@x.com", now=t0) is None


def test_check_code_consumes_on_match(cfg, client):
    with connect(cfg.DB_DSN) as conn:
        store_code(conn, "c@x.com", "654321", ttl_minutes=10)
        check_code(conn, "c@x.com", "654321", max_attempts=3)
        with pytest.raises(Unauthorized):
            check_code(conn, "c@x.com", "654321", max_attempts=3)
