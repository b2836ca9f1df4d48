"""
Client registry: per-authority client credentials, obtained by OIDC dynamic client registration
the first time an authority is seen and reused forever after (no refresh, no expiry).
"""
import logging
from dataclasses import dataclass

import httpx
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from id4me_login.config import APPLICATION_TYPE, CLIENT_NAME, HTTP_TIMEOUT, REDIRECT_URI
from id4me_login.discovery import OpenIdConfig
from id4me_login.exceptions import RegistrationConflictError, RegistrationError
from id4me_login.models import Id4meAuthority

logger = logging.getLogger(__name__)


@dataclass
class RegisteredClient:
    client_id: str
    client_secret: str


def find_authority(db: Session, identifier: str) -> Id4meAuthority | None:
    """Stored registration for the authority, or None if it was never registered."""
    return db.query(Id4meAuthority).filter(Id4meAuthority.identifier == identifier).first()


def register_client(
    openid_config: OpenIdConfig,
    client_name: str,
    redirect_uri: str,
    application_type: str = "native",
) -> RegisteredClient:
    """Register this app at the authority's registration_endpoint (RFC 7591 / OIDC Registration)."""
    endpoint = openid_config.registration_endpoint
    if not endpoint:
        raise RegistrationError(f"{openid_config.issuer} has no registration_endpoint")
    try:
        r = httpx.post(
            endpoint,
            json={
                "client_name": client_name,
                "application_type": application_type,
                "redirect_uris": [redirect_uri],
            },
            headers={"Accept": "application/json"},
            timeout=HTTP_TIMEOUT,
        )
    except httpx.HTTPError as e:
        raise RegistrationError(f"registration at {endpoint} failed: {e}") from e
    if r.status_code not in (200, 201):
        raise RegistrationError(f"registration at {endpoint} returned HTTP {r.status_code}")
    try:
        data = r.json()
    except ValueError as e:
        raise RegistrationError(f"registration response from {endpoint} is not JSON") from e
    client_id = data.get("client_id") if isinstance(data, dict) else None
    client_secret = data.get("client_secret") if isinstance(data, dict) else None
    if not client_id or not client_secret:
        raise RegistrationError(f"registration response from {endpoint} lacks client_id/client_secret")
    return RegisteredClient(client_id=client_id, client_secret=client_secret)


def register_and_store(db: Session, authority_name: str, openid_config: OpenIdConfig) -> Id4meAuthority:
    """
    Register at the authority and store the credentials. Call only after find_authority() returned None.
    Two first logins for the same authority may both get here; the unique identifier column
    lets exactly one insert win and the loser reads the winner's row.
    """
    client = register_client(openid_config, CLIENT_NAME, REDIRECT_URI, APPLICATION_TYPE)
    authority = Id4meAuthority(
        identifier=authority_name,
        client_id=client.client_id,
        client_secret=client.client_secret,
    )
    db.add(authority)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info("Authority %s registered concurrently; using stored registration", authority_name)
        authority = find_authority(db, authority_name)
        if authority is None:
            raise RegistrationConflictError(f"registration for {authority_name} conflicted but is not readable")
        return authority
    db.refresh(authority)
    logger.info("Registered client %s at authority %s", client.client_id, authority_name)
    return authority
