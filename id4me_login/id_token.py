"""
ID token decoding and claim checks.

Known gaps: the signature segment is kept but NOT verified, and exp is NOT checked.
Callers must not treat decoded claims as trusted beyond the aud and nonce checks below.
"""
import math
import secrets
from dataclasses import dataclass, field
from typing import Any

import jwt

from id4me_login.exceptions import AudienceMismatchError, IdTokenError, NonceMismatchError

_KNOWN_CLAIMS = {"sub", "aud", "iss", "nonce", "exp", "iat"}


def _numeric_date(payload: dict[str, Any], name: str) -> int | None:
    value = payload.get(name)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    # JSON admits 1e400 and NaN, which decode to inf/nan
    if isinstance(value, float) and not math.isfinite(value):
        raise IdTokenError(f"id_token {name} claim is not a finite number")
    return int(value)


@dataclass
class IdTokenClaims:
    sub: str
    aud: str | list[str]
    iss: str | None = None
    nonce: str | None = None
    exp: int | None = None
    iat: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "IdTokenClaims":
        sub = payload.get("sub")
        if not isinstance(sub, str) or not sub:
            raise IdTokenError("id_token has no sub claim")
        aud = payload.get("aud")
        if isinstance(aud, list):
            if not aud or not all(isinstance(a, str) for a in aud):
                raise IdTokenError("id_token aud claim is not a list of strings")
        elif not isinstance(aud, str) or not aud:
            raise IdTokenError("id_token has no aud claim")
        nonce = payload.get("nonce")
        iss = payload.get("iss")
        return cls(
            sub=sub,
            aud=aud,
            iss=iss if isinstance(iss, str) else None,
            nonce=nonce if isinstance(nonce, str) else None,
            exp=_numeric_date(payload, "exp"),
            iat=_numeric_date(payload, "iat"),
            extra={k: v for k, v in payload.items() if k not in _KNOWN_CLAIMS},
        )

    @property
    def email(self) -> str | None:
        value = self.extra.get("email")
        return value if isinstance(value, str) else None

    @property
    def name(self) -> str | None:
        value = self.extra.get("name") or self.extra.get("preferred_username")
        return value if isinstance(value, str) else None


@dataclass
class DecodedIdToken:
    header: dict[str, Any]
    claims: IdTokenClaims
    signature: str


def decode_id_token(compact: str) -> DecodedIdToken:
    """
    Split a compact JWS (header.payload.signature) and decode header and payload.
    Raises IdTokenError if the token is malformed or lacks sub/aud.
    """
    if not isinstance(compact, str) or compact.count(".") != 2:
        raise IdTokenError("id_token is not a three-segment compact token")
    try:
        header = jwt.get_unverified_header(compact)
        payload = jwt.decode(
            compact,
            options={
                "verify_signature": False,
                "verify_exp": False,
                "verify_aud": False,
                "verify_iss": False,
                "verify_iat": False,
                "verify_nbf": False,
            },
        )
    except jwt.InvalidTokenError as e:
        raise IdTokenError(f"id_token could not be decoded: {e}") from e
    # TODO: verify the signature against the authority's jwks_uri and check exp
    return DecodedIdToken(
        header=header,
        claims=IdTokenClaims.from_payload(payload),
        signature=compact.rsplit(".", 1)[1],
    )


def audience_matches(claims: IdTokenClaims, expected_client_id: str) -> bool:
    """aud must be exactly the registered client_id."""
    return isinstance(claims.aud, str) and claims.aud == expected_client_id


def validate_audience(claims: IdTokenClaims, expected_client_id: str) -> None:
    if not audience_matches(claims, expected_client_id):
        raise AudienceMismatchError(f"aud {claims.aud!r} != client_id {expected_client_id!r}")


def validate_nonce(claims: IdTokenClaims, expected_nonce: str) -> None:
    """The token must echo the nonce issued for this login; a missing claim is a mismatch."""
    if claims.nonce is None:
        raise NonceMismatchError(f"id_token for sub {claims.sub} carries no nonce claim")
    if not secrets.compare_digest(claims.nonce.encode("utf-8"), expected_nonce.encode("utf-8")):
        raise NonceMismatchError("nonce mismatch")
