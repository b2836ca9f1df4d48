"""
ID4me login configuration. All values come from the environment.
No secrets in this file; client credentials are obtained by dynamic registration and kept in the DB.
"""
import os
import secrets


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


# SQLite for development; any SQLAlchemy URL works
DATABASE_URL = os.environ.get("ID4ME_DATABASE_URL", "sqlite:///./id4me_login.db")

# Our own callback address; sent at registration time and on every authorize/token request
REDIRECT_URI = os.environ.get("ID4ME_REDIRECT_URI", "http://127.0.0.1:8000/id4me/code")

# Display name and client type used for dynamic client registration
CLIENT_NAME = os.environ.get("ID4ME_CLIENT_NAME", "ID4me Login")
APPLICATION_TYPE = os.environ.get("ID4ME_APPLICATION_TYPE", "native")

# Scopes requested at the authority's authorization endpoint
SCOPE = os.environ.get("ID4ME_SCOPE", "openid email profile")

# Debug mode exposes got/expected values on state mismatch; never enable in production
DEBUG = _env_bool("ID4ME_DEBUG")

# Signing key for the session cookie. Random per process when unset (sessions do not survive restarts).
SESSION_SECRET = os.environ.get("ID4ME_SESSION_SECRET", "").strip() or secrets.token_urlsafe(32)
SESSION_COOKIE = os.environ.get("ID4ME_SESSION_COOKIE", "id4me_session")
SESSION_HTTPS_ONLY = _env_bool("ID4ME_SESSION_HTTPS_ONLY")
# lax keeps the cookie on the top-level GET redirect back from the authority; a form_post callback needs none (with HTTPS)
SESSION_SAME_SITE = os.environ.get("ID4ME_SESSION_SAME_SITE", "lax").strip().lower()

# Seconds a pending login (state/nonce) stays valid between /id4me/login and /id4me/code
PENDING_LOGIN_TTL = int(os.environ.get("ID4ME_PENDING_LOGIN_TTL", "600"))

# Outbound timeouts (seconds) for discovery, registration and token calls
HTTP_TIMEOUT = float(os.environ.get("ID4ME_HTTP_TIMEOUT", "10.0"))
DNS_TIMEOUT = float(os.environ.get("ID4ME_DNS_TIMEOUT", "5.0"))

# Where a successfully logged in user lands
DEFAULT_PAGE_URL = os.environ.get("ID4ME_DEFAULT_PAGE_URL", "/")

# Per-IP limit on login initiation; each attempt triggers outbound DNS/HTTP calls. 0 disables.
RATE_LIMIT_LOGIN_PER_MINUTE = int(os.environ.get("ID4ME_RATE_LIMIT_LOGIN_PER_MINUTE", "20"))
