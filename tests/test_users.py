from dataclasses import replace

import pytest

from velora.auth.crud import apply_favorite, bootstrap_admin_if_needed, get_user_by_email
from velora.auth.service import oauth_login
from velora.catalog import newsletter
from velora.db import connect
from velora.errors import Unauthorized, ValidationError

from conftest import bearer, otp_login, register


def _fav(client, token, tool_id, action):
    return client.patch(
        "/api/user/favorites",
        json={"toolId": tool_id, "action": action},
        headers=bearer(token),
    )


def test_favorites_add_remove_round_trip(client, user_session):
    token = user_session["token"]
    assert _fav(client, token, "t1", "add").json()["favorites"] == ["t1"]
    assert _fav(client, token, "t2", "add").json()["favorites"] == ["t1", "t2"]
    assert _fav(client, token, "t1", "remove").json()["favorites"] == ["t2"]
    assert client.get("/api/user/me", headers=bearer(token)).json()["favorites"] == ["t2"]


def test_favorites_behave_as_a_set(client, user_session):
    token = user_session["token"]
    _fav(client, token, "t1", "add")
    r = _fav(client, token, "t1", "add")
    assert r.json()["favorites"] == ["t1"]

    r = _fav(client, token, "never-added", "remove")
    assert r.status_code == 200
    assert r.json()["favorites"] == ["t1"]


def test_favorites_reject_unknown_action(client, user_session):
    r = _fav(client, user_session["token"], "t1", "toggle")
    assert r.status_code == 400
    assert r.json()["detail"] == "invalid_action"


def test_favorites_require_login(client):
    assert client.patch("/api/user/favorites", json={"toolId": "t1", "action": "add"}).status_code == 401


def test_apply_favorite():
    assert apply_favorite(["a", "b", "a"], "c", "add") == ["a", "b", "c"]
    assert apply_favorite(["a", "b"], "a", "remove") == ["b"]
    assert apply_favorite([], "a", "remove") == []
    with pytest.raises(ValidationError):
        apply_favorite([], " ", "add")
    with pytest.raises(ValidationError):
        apply_favorite([], "a", "toggle")


def test_newsletter_subscribe_unsubscribe_and_reactivate(client, admin_session):
    admin = bearer(admin_session["token"])

    r = client.post("/api/newsletter/subscribe", json={"email": "Reader@X.com"})
    assert r.status_code == 200
    assert r.json() == {"message": "Successfully subscribed to newsletter"}
    # Subscribing twice keeps a single row.
    assert client.post("/api/newsletter/subscribe", json={"email": "reader@x.com"}).status_code == 200

    subs = client.get("/api/admin/newsletter", headers=admin).json()
    assert [s["email"] for s in subs] == ["reader@x.com"]
    assert subs[0]["active"] is True

    assert client.post("/api/newsletter/unsubscribe", json={"email": "reader@x.com"}).status_code == 200
    assert client.get("/api/admin/newsletter", headers=admin).json() == []
    inactive = client.get("/api/admin/newsletter", params={"include_inactive": True}, headers=admin).json()
    assert inactive[0]["active"] is False
    assert inactive[0]["unsubscribed_at"]

    client.post("/api/newsletter/subscribe", json={"email": "reader@x.com"})
    subs = client.get("/api/admin/newsletter", headers=admin).json()
    assert len(subs) == 1
    assert subs[0]["unsubscribed_at"] is None


def test_newsletter_validation(client, user_session):
    assert client.post("/api/newsletter/subscribe", json={"email": "nope"}).status_code == 400
    # Unknown addresses get the same answer.
    assert client.post("/api/newsletter/unsubscribe", json={"email": "ghost@x.com"}).status_code == 200
    assert client.get("/api/admin/newsletter", headers=bearer(user_session["token"])).status_code == 403


def test_admin_can_change_roles(client, admin_session, user_session):
    admin = bearer(admin_session["token"])
    uid = user_session["user"]["id"]

    r = client.patch(f"/api/admin/users/{uid}/role", json={"role": "admin"}, headers=admin)
    assert r.status_code == 200
    assert r.json()["is_admin"] is True
    assert "password_hash" not in r.json()

    # The new role applies to tokens issued before the change.
    assert client.get("/api/admin/tools", headers=bearer(user_session["token"])).status_code == 200

    client.patch(f"/api/admin/users/{uid}/role", json={"role": "user"}, headers=admin)
    assert client.get("/api/admin/tools", headers=bearer(user_session["token"])).status_code == 403


def test_role_changes_are_guarded(client, admin_session, user_session):
    admin = bearer(admin_session["token"])
    me = admin_session["user"]["id"]

    r = client.patch(f"/api/admin/users/{me}/role", json={"role": "user"}, headers=admin)
    assert r.status_code == 400
    assert r.json()["detail"] == "cannot_demote_self"
    assert client.patch("/api/admin/users/nope/role", json={"role": "admin"}, headers=admin).status_code == 404
    assert client.patch(f"/api/admin/users/{me}/role", json={"role": "root"}, headers=admin).status_code == 400

    r = client.patch(f"/api/admin/users/{me}/role", json={"role": "admin"}, headers=bearer(user_session["token"]))
    assert r.status_code == 403


def test_oauth_login_creates_then_reuses(cfg, client):
    first = oauth_login(cfg, provider_id="g-1", display_name="Dana", email="dana@x.com", avatar="https://a/x.png")
    assert first["user"]["username"] == "Dana"
    assert first["user"]["google_id"] == "g-1"
    assert first["user"]["avatar"] == "https://a/x.png"

    again = oauth_login(cfg, provider_id="g-1", display_name="Dana D", email="dana@x.com")
    assert again["user"]["id"] == first["user"]["id"]


def test_oauth_login_links_existing_email_account(cfg, client):
    data = register(client, "erin", "erin@x.com")
    session = oauth_login(cfg, provider_id="g-2", display_name="Erin", email="ERIN@x.com")
    assert session["user"]["id"] == data["user"]["id"]
    assert session["user"]["google_id"] == "g-2"
    assert session["user"]["email_verified"] is True

    # Password login keeps working after linking.
    r = client.post("/api/auth/login", json={"email": "erin@x.com", "password": "secret1"})
    assert r.status_code == 200


def test_oauth_login_needs_id_and_email(cfg, client):
    with pytest.raises(Unauthorized):
        oauth_login(cfg, provider_id="", display_name="x", email="x@x.com")
    with pytest.raises(Unauthorized):
        oauth_login(cfg, provider_id="g-3", display_name="x", email=None)


def test_bootstrap_creates_admin_when_password_set(cfg, client):
    assert bootstrap_admin_if_needed(cfg) is None

    boot_cfg = replace(cfg, ADMIN_BOOTSTRAP_PASSWORD="bootpass1")
    created = bootstrap_admin_if_needed(boot_cfg)
    assert created is not None
    assert created["role"] == "admin"
    # Idempotent.
    assert bootstrap_admin_if_needed(boot_cfg) is None

    r = client.post("/api/auth/login", json={"email": cfg.ADMIN_EMAIL, "password": "bootpass1"})
    assert r.status_code == 200
    assert r.json()["user"]["is_admin"] is True


def test_bootstrap_promotes_existing_account_once_verified(cfg, client, mailer):
    data = register(client, "boss", cfg.ADMIN_EMAIL)
    assert data["user"]["role"] == "user"

    # Registered by password only: nobody has proven the address yet.
    assert bootstrap_admin_if_needed(cfg) is None

    # An OTP login proves ownership; the next bootstrap promotes the same account.
    session = otp_login(client, mailer, cfg.ADMIN_EMAIL)
    assert session["user"]["id"] == data["user"]["id"]
    assert session["user"]["email_verified"] is True

    promoted = bootstrap_admin_if_needed(cfg)
    assert promoted is not None and promoted["role"] == "admin"
    with connect(cfg.DB_DSN) as conn:
        assert get_user_by_email(conn, cfg.ADMIN_EMAIL)["role"] == "admin"
    assert client.get("/api/admin/tools", headers=bearer(data["token"])).status_code == 200


def test_newsletter_subscribe_checks_address(cfg, client):
    with connect(cfg.DB_DSN) as conn:
        with pytest.raises(ValidationError):
            newsletter.subscribe(conn, "not-an-email")
        with pytest.raises(ValidationError):
            newsletter.subscribe(conn, "someone@")
        assert newsletter.subscribe(conn, " Someone@Example.com ")["email"] == "someone@example.com"
