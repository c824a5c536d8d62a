"""Shared fixtures: in-memory SQLite database, organizations and an authenticated client."""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from inventrack.database import Base, get_db
from inventrack.main import app
from inventrack.models import ensure_tenant_schema, get_tenant_tables
from inventrack.services import organization_service as orgs

PASSWORD = "Secret123"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    ensure_tenant_schema(engine, None)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def organization(db):
    """Organization with its own table prefix."""
    return orgs.create_organization(
        db, name="Satguru Engravures", code="SATGURU", table_prefix="satguru", email_domain="satguru.com"
    )


@pytest.fixture
def other_organization(db):
    """Organization on the unprefixed base tables."""
    return orgs.create_organization(db, name="DKEGL", code="DKEGL", table_prefix="", email_domain="dkegl.com")


@pytest.fixture
def tables(organization):
    return get_tenant_tables(organization)


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def register(client, email, password=PASSWORD, full_name=None):
    resp = client.post("/api/auth/register", json={"email": email, "password": password, "full_name": full_name})
    assert resp.status_code == 201, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


@pytest.fixture
def auth_headers(client, organization):
    return register(client, "admin@satguru.com", full_name="Satguru Admin")


@pytest.fixture
def other_headers(client, other_organization):
    return register(client, "admin@dkegl.com")


def csv_file(text, name="upload.csv"):
    """``files=`` argument for a CSV upload."""
    return {"file": (name, text.encode("utf-8"), "text/csv")}
