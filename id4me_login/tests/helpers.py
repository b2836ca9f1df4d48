"""Shared test helpers: ID token builder and an httpx.Response stand-in."""
import jwt


def make_id_token(claims: dict, headers: dict | None = None) -> str:
    """Compact JWT for tests; the signature is never verified so any key works."""
    return jwt.encode(claims, "test-signing-key-not-verified-0123456789", algorithm="HS256", headers=headers)


class MockResponse:
    """Minimal stand-in for httpx.Response."""

    def __init__(self, status_code: int = 200, json_data=None, text: str = "", headers: dict | None = None):
        self.status_code = status_code
        self._json = json_data
        self.text = text
        self.headers = headers if headers is not None else {"content-type": "application/json"}

    def json(self):
        if self._json is None:
            raise ValueError("No JSON body")
        return self._json
