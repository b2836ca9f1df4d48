"""
ID4me authority discovery.
discover(): domain -> authority name via the `_openid.<domain>` TXT record (walking up parent domains).
get_openid_config(): authority name -> endpoints from /.well-known/openid-configuration.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Any

import dns.exception
import dns.resolver
import httpx

from id4me_login.config import DNS_TIMEOUT, HTTP_TIMEOUT
from id4me_login.exceptions import InvalidDomainError, OpenIdConfigError

logger = logging.getLogger(__name__)

TXT_PREFIX = "_openid"
RECORD_VERSION = "OID1"

_LABEL_RE = re.compile(r"^(?!-)[a-z0-9-]{1,63}(?<!-)$")


@dataclass
class OpenIdConfig:
    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    registration_endpoint: str | None = None
    jwks_uri: str | None = None
    userinfo_endpoint: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OpenIdConfig":
        return cls(
            issuer=data.get("issuer", ""),
            authorization_endpoint=data["authorization_endpoint"],
            token_endpoint=data["token_endpoint"],
            registration_endpoint=data.get("registration_endpoint"),
            jwks_uri=data.get("jwks_uri"),
            userinfo_endpoint=data.get("userinfo_endpoint"),
            raw=data,
        )


def normalize_domain(domain: str | None) -> str:
    """
    Turn user input into an ASCII host name. Raises InvalidDomainError if it is not one.
    Internationalized names are converted with IDNA.
    """
    name = (domain or "").strip().lower().rstrip(".")
    if not name:
        raise InvalidDomainError("empty domain")
    try:
        name = name.encode("idna").decode("ascii")
    except UnicodeError as e:
        raise InvalidDomainError(f"not an IDNA domain: {domain!r}") from e
    labels = name.split(".")
    if len(name) > 253 or len(labels) < 2 or not all(_LABEL_RE.match(label) for label in labels):
        raise InvalidDomainError(f"not a domain name: {domain!r}")
    return name


def parse_txt_record(text: str) -> dict[str, str]:
    """Parse 'v=OID1;iss=auth.example;clp=agent.example' into a dict. Unknown keys are kept."""
    fields = {}
    for part in text.split(";"):
        key, sep, value = part.strip().partition("=")
        if sep and key.strip():
            fields[key.strip().lower()] = value.strip()
    return fields


def _authority_from_record(text: str) -> str | None:
    fields = parse_txt_record(text)
    if fields.get("v") != RECORD_VERSION:
        return None
    # iau is the pre-1.0 name of the iss field
    return fields.get("iss") or fields.get("iau") or None


def _lookup_txt(name: str) -> list[str]:
    """TXT strings at name, or [] when the name has none (NXDOMAIN, no answer, timeout)."""
    try:
        resolver = dns.resolver.Resolver()
        resolver.lifetime = DNS_TIMEOUT
        answer = resolver.resolve(name, "TXT")
    except dns.exception.DNSException as e:
        logger.debug("TXT lookup for %s failed: %s", name, e)
        return []
    records = []
    for rdata in answer:
        records.append(b"".join(rdata.strings).decode("utf-8", errors="replace"))
    return records


def discover(domain: str) -> str:
    """
    Resolve an ID4me identifier to its authority name.
    Looks up _openid.<name>; if nothing valid is found, drops the leftmost label and retries
    while at least two labels remain.
    """
    name = normalize_domain(domain)
    labels = name.split(".")
    while len(labels) >= 2:
        candidate = ".".join(labels)
        for record in _lookup_txt(f"{TXT_PREFIX}.{candidate}"):
            authority = _authority_from_record(record)
            if authority:
                logger.info("Discovered ID4me authority %s for %s", authority, name)
                return authority
        labels = labels[1:]
    raise InvalidDomainError(f"no {TXT_PREFIX} record for {name}")


def openid_configuration_url(authority_name: str) -> str:
    base = authority_name.rstrip("/")
    if not base.startswith(("https://", "http://")):
        base = f"https://{base}"
    return f"{base}/.well-known/openid-configuration"


def get_openid_config(authority_name: str) -> OpenIdConfig:
    """Fetch and parse the authority's OpenID Connect discovery document."""
    url = openid_configuration_url(authority_name)
    try:
        r = httpx.get(url, headers={"Accept": "application/json"}, timeout=HTTP_TIMEOUT)
    except httpx.HTTPError as e:
        raise OpenIdConfigError(f"fetching {url} failed: {e}") from e
    if r.status_code != 200:
        raise OpenIdConfigError(f"fetching {url} returned HTTP {r.status_code}")
    try:
        data = r.json()
    except ValueError as e:
        raise OpenIdConfigError(f"{url} is not JSON") from e
    if not isinstance(data, dict):
        raise OpenIdConfigError(f"{url} is not a JSON object")
    for key in ("authorization_endpoint", "token_endpoint"):
        if not isinstance(data.get(key), str) or not data[key]:
            raise OpenIdConfigError(f"{url} has no {key}")
    return OpenIdConfig.from_dict(data)
