"""Pytest configuration and shared fixtures."""
import os

# Keep the module-level engine off the working directory
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
# Minimum bcrypt work factor keeps registration tests fast
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from cortapau.database import Base, get_db
from cortapau.database import make_engine as make_database_engine
from cortapau.models.domain import User, Solicitation, Attachment
from cortapau.models.audit import Event
from cortapau.models.enums import Category, Role
from cortapau.services.auth import hash_password
from cortapau.services.event_log import EventLog
from cortapau.services.solicitations import SolicitationService
from cortapau.services.uploads import UploadStore

# Hash once per test run
PASSWORD = "secret"
PASSWORD_HASH = hash_password(PASSWORD)


def make_engine():
    engine = make_database_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session():
    """Create a fresh in-memory database for each test."""
    engine = make_engine()
    TestingSessionLocal = sessionmaker(bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()
    engine.dispose()


@pytest.fixture
def upload_store(tmp_path):
    return UploadStore(str(tmp_path / "uploads"))


@pytest.fixture
def service(db_session, upload_store):
    return SolicitationService(db_session, event_log=EventLog(attempts=1, backoff_seconds=0), uploads=upload_store)


@pytest.fixture
def citizen(db_session):
    user = User(name="Maria Cidadã", login="maria@example.com", password_hash=PASSWORD_HASH, role=Role.USER)
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def operator(db_session):
    user = User(
        name="João Operário",
        login="joao@prefeitura.example",
        password_hash=PASSWORD_HASH,
        role=Role.OPERATOR
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def sample_solicitation(service, citizen):
    """A basic solicitation in NOVA state."""
    return service.create(
        title="Árvore na fiação",
        description="Galho encostando nos fios da rua.",
        category=Category.ELECTRICAL_RISK,
        latitude=-23.5505,
        longitude=-46.6333,
        author_id=citizen.id
    )


@pytest.fixture
def api_engine():
    engine = make_engine()
    yield engine
    engine.dispose()


@pytest.fixture
def api_sessions(api_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=api_engine)


@pytest.fixture
def api_client(api_sessions, upload_store):
    """TestClient wired to a private in-memory database."""
    from cortapau.main import app
    from cortapau.api.routes import get_event_log, get_upload_store

    TestingSessionLocal = api_sessions

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_event_log] = lambda: EventLog(attempts=1, backoff_seconds=0)
    app.dependency_overrides[get_upload_store] = lambda: upload_store

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def api_user(api_sessions):
    """A registered citizen in the API database."""
    db = api_sessions()
    try:
        user = User(name="Ana", login="ana@example.com", password_hash=PASSWORD_HASH, role=Role.USER)
        db.add(user)
        db.commit()
        db.refresh(user)
        return {"id": user.id, "login": user.login}
    finally:
        db.close()


@pytest.fixture
def api_operator(api_sessions):
    db = api_sessions()
    try:
        user = User(name="Op", login="op@example.com", password_hash=PASSWORD_HASH, role=Role.OPERATOR)
        db.add(user)
        db.commit()
        db.refresh(user)
        return {"id": user.id, "login": user.login}
    finally:
        db.close()
