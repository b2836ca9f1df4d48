"""
Pending login (state, nonce, authority) kept in the browser's session between /id4me/login and /id4me/code.
One pending login per session; a new login replaces it and the callback always consumes it.
"""
import secrets
import string
import time
from collections.abc import MutableMapping
from dataclasses import asdict, dataclass
from typing import Any
from urllib.parse import urlencode

from id4me_login.config import PENDING_LOGIN_TTL
from id4me_login.exceptions import StateMismatchError

SESSION_KEY = "id4me.pending_login"
TOKEN_LENGTH = 32
TOKEN_ALPHABET = string.digits + string.ascii_uppercase


@dataclass
class PendingLogin:
    state: str
    nonce: str
    authority_name: str
    created_at: float

    def expired(self, ttl: int = PENDING_LOGIN_TTL) -> bool:
        return (time.time() - self.created_at) > ttl


def generate_token(length: int = TOKEN_LENGTH) -> str:
    """Random [0-9A-Z] string from the OS CSPRNG."""
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))


def begin_pending_login(session: MutableMapping[str, Any], authority_name: str) -> PendingLogin:
    """Issue state and nonce for authority_name and store all three in the session."""
    pending = PendingLogin(
        state=generate_token(),
        nonce=generate_token(),
        authority_name=authority_name,
        created_at=time.time(),
    )
    session[SESSION_KEY] = asdict(pending)
    return pending


def _load(data: Any) -> PendingLogin | None:
    if not isinstance(data, dict):
        return None
    try:
        return PendingLogin(
            state=str(data["state"]),
            nonce=str(data["nonce"]),
            authority_name=str(data["authority_name"]),
            created_at=float(data["created_at"]),
        )
    except (KeyError, TypeError, ValueError):
        return None


def verify_and_consume(session: MutableMapping[str, Any], observed_state: str | None) -> PendingLogin:
    """
    Remove the pending login from the session and return it if observed_state matches exactly.
    Raises StateMismatchError on mismatch, empty state, nothing pending, or an expired pending login.
    """
    pending = _load(session.pop(SESSION_KEY, None))
    expected = pending.state if pending else None
    if pending is None or pending.expired() or not observed_state:
        raise StateMismatchError(got=observed_state, expected=expected)
    if not secrets.compare_digest(observed_state.encode("utf-8"), pending.state.encode("utf-8")):
        raise StateMismatchError(got=observed_state, expected=expected)
    return pending


def build_authorize_url(
    *,
    authorization_endpoint: str,
    client_id: str,
    redirect_uri: str,
    scope: str,
    state: str,
    nonce: str,
) -> str:
    """Authority's authorization endpoint URL for the code flow."""
    params = {
        "client_id": client_id,
        "response_type": "code",
        "scope": scope,
        "redirect_uri": redirect_uri,
        "state": state,
        "nonce": nonce,
    }
    sep = "&" if "?" in authorization_endpoint else "?"
    return f"{authorization_endpoint}{sep}{urlencode(params)}"
