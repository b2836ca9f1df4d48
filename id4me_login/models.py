"""
SQLAlchemy models: ID4me authority registrations, linked local users, audit log.
"""
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Id4meAuthority(Base):
    """Client credentials obtained by dynamic registration, one row per authority."""
    __tablename__ = "id4me_authorities"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    # Canonical authority name from discovery (the iss of the _openid TXT record), not the user input
    identifier: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    client_id: Mapped[str] = mapped_column(String(255), nullable=False)
    # Kept in clear: it is sent to the token endpoint on every login
    client_secret: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)


class User(Base):
    """Local account linked to (authority, subject)."""
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("authority_id", "subject", name="uq_users_authority_subject"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    authority_id: Mapped[int] = mapped_column(ForeignKey("id4me_authorities.id"), nullable=False)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    authority: Mapped["Id4meAuthority"] = relationship("Id4meAuthority", backref="users")


class AuditLog(Base):
    """Security-relevant login events. No codes, tokens, secrets, state or nonce values stored."""
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    authority: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)  # None = anonymous
    ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    outcome: Mapped[str] = mapped_column(String(16), nullable=False)  # success | fail
