"""Google sign-in (OAuth 2.0 / OpenID Connect authorization code flow).

Only mounted when GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET are configured.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
from oauthlib.oauth2 import WebApplicationClient

from velora.config import Config
from velora.errors import Unauthorized


SCOPES = ["openid", "email", "profile"]
_TIMEOUT = 15


def _debug(msg: str) -> None:
    print(f"[oauth] {msg}")


@dataclass(frozen=True)
class GoogleProfile:
    provider_id: str
    display_name: Optional[str]
    email: Optional[str]
    avatar: Optional[str]


def _client(cfg: Config) -> WebApplicationClient:
    return WebApplicationClient(cfg.GOOGLE_CLIENT_ID)


def get_provider_cfg(cfg: Config) -> Dict[str, Any]:
    r = requests.get(cfg.GOOGLE_DISCOVERY_URL, timeout=_TIMEOUT)
    r.raise_for_status()
    return r.json()


def authorization_url(cfg: Config, *, redirect_uri: str) -> str:
    provider = get_provider_cfg(cfg)
    return _client(cfg).prepare_request_uri(
        provider["authorization_endpoint"],
        redirect_uri=redirect_uri,
        scope=SCOPES,
    )


def fetch_profile(cfg: Config, *, code: str, authorization_response: str, redirect_uri: str) -> GoogleProfile:
    """Exchange the authorization code and read the userinfo endpoint."""
    if not code:
        raise Unauthorized("oauth_code_missing")

    provider = get_provider_cfg(cfg)
    client = _client(cfg)

    token_url, headers, body = client.prepare_token_request(
        provider["token_endpoint"],
        authorization_response=authorization_response,
        redirect_url=redirect_uri,
        code=code,
    )
    token_response = requests.post(
        token_url,
        headers=headers,
        data=body,
        auth=(cfg.GOOGLE_CLIENT_ID, cfg.GOOGLE_CLIENT_SECRET),
        timeout=_TIMEOUT,
    )
    if token_response.status_code != 200:
        _debug(f"token exchange failed status={token_response.status_code}")
        raise Unauthorized("oauth_token_exchange_failed")
    client.parse_request_body_response(json.dumps(token_response.json()))

    uri, headers, body = client.add_token(provider["userinfo_endpoint"])
    info = requests.get(uri, headers=headers, data=body, timeout=_TIMEOUT).json()

    if not info.get("email_verified"):
        raise Unauthorized("email_not_verified")

    return GoogleProfile(
        provider_id=str(info.get("sub") or ""),
        display_name=info.get("name"),
        email=info.get("email"),
        avatar=info.get("picture"),
    )
