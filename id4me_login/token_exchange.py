"""
Authorization code grant against the authority's token endpoint (client_secret_basic, plus the
credentials repeated in the form body as some ID4me authorities expect).
"""
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from id4me_login.config import HTTP_TIMEOUT
from id4me_login.exceptions import TokenExchangeError

logger = logging.getLogger(__name__)


@dataclass
class TokenResponse:
    id_token: str
    access_token: str | None = None
    token_type: str | None = None
    expires_in: int | None = None
    scope: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)


def exchange_code(
    token_endpoint: str,
    client_id: str,
    client_secret: str,
    code: str,
    redirect_uri: str,
) -> TokenResponse:
    """POST the code to token_endpoint. Raises TokenExchangeError unless the reply carries an id_token."""
    try:
        r = httpx.post(
            token_endpoint,
            auth=httpx.BasicAuth(client_id, client_secret),
            data={
                "code": code,
                "client_id": client_id,
                "client_secret": client_secret,
                "redirect_uri": redirect_uri,
                "grant_type": "authorization_code",
            },
            headers={"Accept": "application/json"},
            timeout=HTTP_TIMEOUT,
        )
    except httpx.HTTPError as e:
        raise TokenExchangeError(f"token request to {token_endpoint} failed: {e}") from e

    if r.status_code != 200:
        err = {}
        if r.headers.get("content-type", "").startswith("application/json"):
            try:
                err = r.json()
            except ValueError:
                err = {}
        reason = err.get("error", "") if isinstance(err, dict) else ""
        raise TokenExchangeError(f"token endpoint {token_endpoint} returned HTTP {r.status_code} {reason}".rstrip())

    try:
        data = r.json()
    except ValueError as e:
        raise TokenExchangeError(f"token response from {token_endpoint} is not JSON") from e
    if not isinstance(data, dict):
        raise TokenExchangeError(f"token response from {token_endpoint} is not a JSON object")

    id_token = data.get("id_token")
    if not isinstance(id_token, str) or not id_token:
        raise TokenExchangeError(f"token response from {token_endpoint} has no id_token")

    expires_in = data.get("expires_in")
    return TokenResponse(
        id_token=id_token,
        access_token=data.get("access_token"),
        token_type=data.get("token_type"),
        expires_in=int(expires_in) if isinstance(expires_in, (int, float)) else None,
        scope=data.get("scope"),
        raw=data,
    )
