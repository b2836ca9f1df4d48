"""
ID4me login web app.
GET /id4me shows the domain form; POST /id4me/login discovers the authority, registers on first use,
issues state/nonce and redirects to the authority; GET|POST /id4me/code verifies state, exchanges the code,
checks the ID token and logs the linked local user in. Port 8000.
"""
import html
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Form, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from sqlalchemy.orm import Session
from starlette.middleware.sessions import SessionMiddleware

from id4me_login.audit import (
    EVENT_CLIENT_REGISTERED,
    EVENT_LOGIN_FAIL,
    EVENT_LOGIN_OK,
    EVENT_LOGIN_STARTED,
    get_client_ip,
    log_audit,
    OUTCOME_FAIL,
    OUTCOME_SUCCESS,
)
from id4me_login.config import (
    DEBUG,
    DEFAULT_PAGE_URL,
    RATE_LIMIT_LOGIN_PER_MINUTE,
    REDIRECT_URI,
    SCOPE,
    SESSION_COOKIE,
    SESSION_HTTPS_ONLY,
    SESSION_SAME_SITE,
    SESSION_SECRET,
)
from id4me_login.database import get_db, init_db
from id4me_login.discovery import discover, get_openid_config
from id4me_login.exceptions import (
    AudienceMismatchError,
    Id4meLoginError,
    InvalidDomainError,
    NonceMismatchError,
    RegistrationError,
    StateMismatchError,
)
from id4me_login.id_token import decode_id_token, validate_audience, validate_nonce
from id4me_login.models import Id4meAuthority, User
from id4me_login.pending_login import PendingLogin, begin_pending_login, build_authorize_url, verify_and_consume
from id4me_login.provisioning import get_or_create_local_user
from id4me_login.rate_limit import check_login_attempt
from id4me_login.registration import find_authority, register_and_store
from id4me_login.token_exchange import exchange_code

logger = logging.getLogger(__name__)

SESSION_USER_ID = "user_id"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup."""
    init_db()
    yield


app = FastAPI(title="ID4me Login", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    SessionMiddleware,
    secret_key=SESSION_SECRET,
    session_cookie=SESSION_COOKIE,
    same_site=SESSION_SAME_SITE,
    https_only=SESSION_HTTPS_ONLY,
)


def _page(title: str, body: str, status_code: int = 200, headers: dict | None = None) -> HTMLResponse:
    return HTMLResponse(
        f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{html.escape(title)}</title></head>
<body>
  <h1>{html.escape(title)}</h1>
  {body}
  <p><a href="/">Home</a></p>
</body>
</html>""",
        status_code=status_code,
        headers=headers,
    )


def _error_page(title: str, message: str, status_code: int, headers: dict | None = None) -> HTMLResponse:
    return _page(title, f"<p>{html.escape(message)}</p>", status_code=status_code, headers=headers)


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "id4me_login"}


@app.get("/", response_class=HTMLResponse)
def home(request: Request, db: Session = Depends(get_db)):
    """Landing page: the logged-in local user, or a link to the ID4me login form."""
    user_id = request.session.get(SESSION_USER_ID)
    user = db.query(User).filter(User.user_id == user_id).first() if user_id else None
    if user is None:
        return _page("ID4me Login", '<p><a href="/id4me">Log in with ID4me</a></p>')
    authority = db.get(Id4meAuthority, user.authority_id)
    name = user.display_name or user.email or user.subject
    return _page(
        "ID4me Login",
        f"""<p>Logged in as <strong>{html.escape(name)}</strong>
  via <code>{html.escape(authority.identifier if authority else "")}</code>.</p>
  <p>Local user: <code>{html.escape(user.user_id)}</code></p>
  <p><a href="/logout">Log out</a></p>""",
    )


@app.get("/id4me", response_class=HTMLResponse)
def show_login():
    """Domain form. form-action is open because the POST ends in a redirect to the authority."""
    response = _page(
        "Log in with ID4me",
        """<form method="post" action="/id4me/login">
    <label>ID4me identifier: <input type="text" name="domain" placeholder="you.example.org" required/></label>
    <button type="submit">Log in</button>
  </form>""",
    )
    response.headers["Content-Security-Policy"] = "default-src 'self'; form-action 'self' *"
    return response


@app.post("/id4me/login")
def login(request: Request, domain: str = Form(""), db: Session = Depends(get_db)):
    """
    Discover the authority for domain, register with it on first use, store state/nonce in the
    session and redirect to its authorization endpoint.
    """
    ip = get_client_ip(request)
    allowed, retry_after = check_login_attempt(ip, RATE_LIMIT_LOGIN_PER_MINUTE)
    if not allowed:
        return _error_page(
            "Too many requests",
            "Too many login attempts. Please wait and try again.",
            429,
            headers={"Retry-After": str(retry_after)},
        )

    try:
        authority_name = discover(domain)
        openid_config = get_openid_config(authority_name)
    except InvalidDomainError as e:
        logger.info("ID4me discovery failed for %r: %s", domain, e)
        return _error_page("Error", InvalidDomainError.error_description, 400)

    authority = find_authority(db, authority_name)
    if authority is None:
        try:
            authority = register_and_store(db, authority_name, openid_config)
        except RegistrationError as e:
            logger.warning("Client registration at %s failed: %s", authority_name, e)
            log_audit(db, EVENT_CLIENT_REGISTERED, authority=authority_name, ip=ip, outcome=OUTCOME_FAIL)
            return _error_page("Authentication failed", Id4meLoginError.error_description, e.status_code)
        log_audit(db, EVENT_CLIENT_REGISTERED, authority=authority_name, ip=ip)

    pending = begin_pending_login(request.session, authority_name)
    log_audit(db, EVENT_LOGIN_STARTED, authority=authority_name, ip=ip)

    url = build_authorize_url(
        authorization_endpoint=openid_config.authorization_endpoint,
        client_id=authority.client_id,
        redirect_uri=REDIRECT_URI,
        scope=SCOPE,
        state=pending.state,
        nonce=pending.nonce,
    )
    return RedirectResponse(url=url, status_code=302)


def _complete_login(db: Session, pending: PendingLogin, code: str) -> User:
    """Exchange code, check the ID token against the stored registration and pending nonce, provision the user."""
    openid_config = get_openid_config(pending.authority_name)
    authority = find_authority(db, pending.authority_name)
    if authority is None:
        raise RegistrationError(f"no registration stored for {pending.authority_name}")

    tokens = exchange_code(
        openid_config.token_endpoint,
        authority.client_id,
        authority.client_secret,
        code,
        REDIRECT_URI,
    )
    id_token = decode_id_token(tokens.id_token)
    validate_audience(id_token.claims, authority.client_id)
    validate_nonce(id_token.claims, pending.nonce)
    return get_or_create_local_user(db, authority.id, id_token.claims.sub, id_token.claims)


def _handle_callback(
    request: Request,
    db: Session,
    state: str,
    code: str,
    error: str | None,
    error_description: str | None,
):
    ip = get_client_ip(request)
    try:
        pending = verify_and_consume(request.session, state)
    except StateMismatchError as e:
        logger.warning("ID4me callback with mismatching state from %s", ip)
        log_audit(db, EVENT_LOGIN_FAIL, ip=ip, outcome=OUTCOME_FAIL)
        if DEBUG:
            return JSONResponse(
                {
                    "error": e.error,
                    "error_description": e.error_description,
                    "got": e.got,
                    "expected": e.expected,
                },
                status_code=e.status_code,
            )
        return _error_page("Access forbidden", e.error_description, e.status_code)

    authority_name = pending.authority_name
    if error:
        log_audit(db, EVENT_LOGIN_FAIL, authority=authority_name, ip=ip, outcome=OUTCOME_FAIL)
        return _error_page("Login error", error_description or error, 400)
    if not code:
        log_audit(db, EVENT_LOGIN_FAIL, authority=authority_name, ip=ip, outcome=OUTCOME_FAIL)
        return _error_page("Error", "Missing code parameter.", 400)

    try:
        user = _complete_login(db, pending, code)
    except (AudienceMismatchError, NonceMismatchError) as e:
        logger.warning("ID token from %s rejected: %s", authority_name, e)
        log_audit(db, EVENT_LOGIN_FAIL, authority=authority_name, ip=ip, outcome=OUTCOME_FAIL)
        return JSONResponse(
            {"error": e.error, "error_description": e.error_description},
            status_code=e.status_code,
        )
    except Id4meLoginError as e:
        logger.warning("ID4me login via %s failed: %s", authority_name, e)
        log_audit(db, EVENT_LOGIN_FAIL, authority=authority_name, ip=ip, outcome=OUTCOME_FAIL)
        return _error_page("Authentication failed", Id4meLoginError.error_description, 502)

    # Fresh session for the authenticated user
    request.session.clear()
    request.session[SESSION_USER_ID] = user.user_id
    log_audit(db, EVENT_LOGIN_OK, authority=authority_name, user_id=user.user_id, ip=ip, outcome=OUTCOME_SUCCESS)
    return RedirectResponse(url=DEFAULT_PAGE_URL, status_code=302)


@app.get("/id4me/code")
def code_get(
    request: Request,
    state: str = "",
    code: str = "",
    scope: str = "",
    error: str | None = None,
    error_description: str | None = None,
    db: Session = Depends(get_db),
):
    """Redirect back from the authority (query parameters)."""
    return _handle_callback(request, db, state, code, error, error_description)


@app.post("/id4me/code")
def code_post(
    request: Request,
    state: str = Form(""),
    code: str = Form(""),
    scope: str = Form(""),
    error: str | None = Form(None),
    error_description: str | None = Form(None),
    db: Session = Depends(get_db),
):
    """
    Redirect back from the authority (form_post response mode).
    Browsers only send the session cookie on this cross-site POST when ID4ME_SESSION_SAME_SITE=none
    and ID4ME_SESSION_HTTPS_ONLY=1; with the default lax cookie the pending login is not seen and the
    callback answers 403. The authorize request never asks for form_post.
    """
    return _handle_callback(request, db, state, code, error, error_description)


@app.get("/logout")
def logout(request: Request):
    """Drop the local session."""
    request.session.clear()
    return RedirectResponse(url="/", status_code=302)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "id4me_login.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
