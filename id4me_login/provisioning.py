"""
Local accounts for ID4me identities: (authority registration id, sub) -> User, get-or-create.
"""
import hashlib
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from id4me_login.id_token import IdTokenClaims
from id4me_login.models import User

logger = logging.getLogger(__name__)


def local_user_id(registration_id: int, subject: str) -> str:
    """Stable opaque uid; sha256 keeps it within 64 chars whatever the sub looks like."""
    return hashlib.sha256(f"{registration_id}_{subject}".encode("utf-8")).hexdigest()


def _find(db: Session, registration_id: int, subject: str) -> User | None:
    return (
        db.query(User)
        .filter(User.authority_id == registration_id, User.subject == subject)
        .first()
    )


def get_or_create_local_user(
    db: Session,
    registration_id: int,
    subject: str,
    claims: IdTokenClaims | None = None,
) -> User:
    """Existing user linked to (registration_id, subject), or a new one on first sight."""
    user = _find(db, registration_id, subject)
    if user is not None:
        return user

    user = User(
        user_id=local_user_id(registration_id, subject),
        authority_id=registration_id,
        subject=subject,
        display_name=claims.name if claims else None,
        email=claims.email if claims else None,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # Same identity logging in twice at once
        db.rollback()
        user = _find(db, registration_id, subject)
        if user is None:
            raise
        return user
    db.refresh(user)
    logger.info("Provisioned local user %s for authority id %s", user.user_id, registration_id)
    return user
