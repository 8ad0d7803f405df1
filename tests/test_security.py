import jwt
import pytest

from velora.auth.security import (
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)


SECRET = "unit-test-secret-0123456789abcdef"


def test_hash_is_salted_and_verifies():
    h1 = hash_password("secret1")
    h2 = hash_password("secret1")
    assert h1 != h2
    assert "secret1" not in h1
    assert verify_password("secret1", h1)
    assert verify_password("secret1", h2)


@pytest.mark.parametrize("attempt", ["secret2", "Secret1", "", "secret1 "])
def test_wrong_password_never_verifies(attempt):
    assert not verify_password(attempt, hash_password("secret1"))


def test_verify_handles_missing_or_garbage_hash():
    assert not verify_password("secret1", None)
    assert not verify_password("secret1", "")
    assert not verify_password("secret1", "not-a-hash")


def test_blank_password_cannot_be_hashed():
    with pytest.raises(ValueError):
        hash_password("")


def test_token_carries_only_user_id_without_expiry():
    token = create_access_token(secret=SECRET, user_id="u-1")
    payload = decode_access_token(token=token, secret=SECRET)
    assert payload["sub"] == "u-1"
    assert "exp" not in payload
    assert set(payload) == {"sub", "iat"}


def test_token_expiry_is_optional():
    token = create_access_token(secret=SECRET, user_id="u-1", expires_minutes=5)
    payload = decode_access_token(token=token, secret=SECRET)
    assert payload["exp"] > payload["iat"]


def test_token_with_wrong_secret_is_rejected():
    token = create_access_token(secret=SECRET, user_id="u-1")
    with pytest.raises(jwt.InvalidTokenError):
        decode_access_token(token=token, secret=SECRET + "-other")
