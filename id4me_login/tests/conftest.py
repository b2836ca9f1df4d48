"""
Pytest configuration for id4me_login. In-memory SQLite so tests don't touch the filesystem.
"""
import os

# Must be set before id4me_login.config is imported; database.py uses StaticPool for in-memory URLs
os.environ["ID4ME_DATABASE_URL"] = "sqlite:///:memory:"
os.environ["ID4ME_REDIRECT_URI"] = "http://testserver/id4me/code"
os.environ.pop("ID4ME_DEBUG", None)

import pytest

from id4me_login import rate_limit
from id4me_login.database import SessionLocal, engine
from id4me_login.discovery import OpenIdConfig
from id4me_login.models import Base


@pytest.fixture(autouse=True)
def fresh_state():
    """Empty tables and rate limiter for every test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    rate_limit.reset()
    yield
    rate_limit.reset()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def openid_config():
    return OpenIdConfig(
        issuer="https://auth.example.test",
        authorization_endpoint="https://auth.example.test/login",
        token_endpoint="https://auth.example.test/token",
        registration_endpoint="https://auth.example.test/clients",
        jwks_uri="https://auth.example.test/jwks.json",
    )

