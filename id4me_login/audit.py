"""
Audit logging of login events. Security-relevant events only; no codes, tokens, secrets, state or nonce.
"""
from fastapi import Request
from sqlalchemy.orm import Session

from id4me_login.models import AuditLog

EVENT_LOGIN_STARTED = "login_started"
EVENT_CLIENT_REGISTERED = "client_registered"
EVENT_LOGIN_OK = "login_ok"
EVENT_LOGIN_FAIL = "login_fail"

OUTCOME_SUCCESS = "success"
OUTCOME_FAIL = "fail"


def get_client_ip(request: Request | None) -> str | None:
    """Client IP if available (request.client.host). Forwarding headers are not trusted."""
    if request is None or request.client is None:
        return None
    return getattr(request.client, "host", None)


def log_audit(
    db: Session,
    event_type: str,
    *,
    authority: str | None = None,
    user_id: str | None = None,
    ip: str | None = None,
    outcome: str = OUTCOME_SUCCESS,
) -> None:
    """Append one audit record."""
    db.add(
        AuditLog(
            event_type=event_type,
            authority=authority,
            user_id=user_id,
            ip=ip,
            outcome=outcome,
        )
    )
    db.commit()

