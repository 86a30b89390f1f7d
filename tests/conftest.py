"""
Fixtures compartidos: SQLite en memoria, store, fábricas de usuarios/grupos
y un TestClient con la sesión de test inyectada.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base, get_db
from app.core.security import create_access_token
from app.main import app
from app.models.enums import MemberRole, Visibility
from app.models.user import User
from app.schemas.group import GroupCreate
from app.services import groups as group_service
from app.services.store import MembershipStore


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def store(db):
    return MembershipStore(db)


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(full_name: str | None = None) -> User:
        counter["n"] += 1
        user = User(email=f"user{counter['n']}@example.com", full_name=full_name or f"User {counter['n']}")
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def make_group(store):
    counter = {"n": 0}

    def _make(owner: User, visibility: Visibility = Visibility.OPEN, invite_code: str | None = None):
        counter["n"] += 1
        payload = GroupCreate(
            name=f"Group {counter['n']}",
            slug=f"group-{counter['n']}",
            visibility=visibility,
            invite_code=invite_code,
        )
        return group_service.create_group(store, owner.id, payload)

    return _make


@pytest.fixture
def add_member(store):
    def _add(group, user: User, role: MemberRole | str = MemberRole.MEMBER):
        value = role.value if isinstance(role, MemberRole) else role
        with store.transaction():
            return store.insert_membership(group.id, user.id, value)

    return _add


@pytest.fixture
def client(session_factory):
    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(str(user.id))}"}

    return _headers
