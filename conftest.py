import os
import uuid

import pytest

# Metrics go to stdout and logs stay readable while testing; set before the app is imported
os.environ.setdefault("AWS_EMF_ENVIRONMENT", "Local")
os.environ.setdefault("ENABLE_METRICS", "0")
os.environ.setdefault("LOG_FORMAT", "console")
os.environ.setdefault("AUTH_BILLING_ENABLED", "false")

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from fastapi import Depends
from fastapi.testclient import TestClient

# --- Alembic Imports ---
from alembic.config import Config
from alembic import command
# --- End Alembic Imports ---

# Import app and DB dependency function first
from main import app, get_db, get_current_user, get_storage

# Import database components needed for setup
from database import Base, configure_sqlite
import crud
import models
from storage import LocalFileStorage

TEST_DATABASE_URL = "sqlite:///./hirelens-test.db"

connect_args = (
    {"check_same_thread": False} if TEST_DATABASE_URL.startswith("sqlite") else {}
)
test_engine = create_engine(TEST_DATABASE_URL, connect_args=connect_args)
configure_sqlite(test_engine)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

RESUME_TEXT = (
    "Jane Doe\nSenior Python Engineer\n\n"
    "Experience: Built FastAPI services handling 10k requests per second at Acme Corp.\n"
    "Skills: Python, FastAPI, SQLAlchemy, PostgreSQL, AWS, Docker\n"
    "Education: BSc Computer Science, State University"
)


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create the test database from models and stamp with Alembic head."""
    db_path = TEST_DATABASE_URL.split("///")[-1]
    if os.path.exists(db_path):
        try:
            os.unlink(db_path)
            print(f"\nRemoved existing test database file: {db_path}")
        except OSError as e:
            print(f"Error removing existing test database file {db_path}: {e}")

    print(f"Creating test database tables from models at {db_path}")
    Base.metadata.create_all(bind=test_engine)

    print("Stamping database with Alembic head revision")
    alembic_cfg = Config("alembic.ini")
    alembic_cfg.set_main_option("sqlalchemy.url", TEST_DATABASE_URL)
    command.stamp(alembic_cfg, "head")

    yield  # Tests run here

    test_engine.dispose()
    for suffix in ("", "-wal", "-shm"):
        path = db_path + suffix
        if os.path.exists(path):
            try:
                os.unlink(path)
            except OSError as e:
                print(f"Error removing test database file {path}: {e}")


@pytest.fixture(scope="function")
def db_session(setup_test_database):
    """Yields a SQLAlchemy session directly from the test factory."""
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()


# --- Factories ---
@pytest.fixture
def make_user(db_session: Session):
    """Create a committed user with a unique email."""

    def _make_user(plan: models.Plan = models.Plan.FREE) -> models.User:
        unique = uuid.uuid4().hex[:12]
        user = models.User(
            email=f"user-{unique}@example.com",
            name="Test User",
            cognito_sub=f"sub-{unique}",
            plan=plan,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_resume(db_session: Session):
    def _make_resume(user: models.User, parsed_text=RESUME_TEXT, file_name="resume.pdf") -> models.Resume:
        resume = models.Resume(
            user_id=user.id,
            file_url=f"/uploads/resumes/{user.id}/{uuid.uuid4().hex}.pdf",
            file_path=f"resumes/{user.id}/{uuid.uuid4().hex}.pdf",
            file_name=file_name,
            parsed_text=parsed_text,
        )
        db_session.add(resume)
        db_session.commit()
        db_session.refresh(resume)
        return resume

    return _make_resume


@pytest.fixture
def make_job(db_session: Session):
    def _make_job(user: models.User, title="Backend Engineer", skills=None) -> models.JobDescription:
        job = models.JobDescription(
            user_id=user.id,
            title=title,
            company_name="Acme Corp",
            description="Build and operate Python APIs on AWS with FastAPI and PostgreSQL.",
            skills=skills if skills is not None else ["Python", "FastAPI", "Kubernetes"],
        )
        db_session.add(job)
        db_session.commit()
        db_session.refresh(job)
        return job

    return _make_job


# Override the get_db dependency for tests
@pytest.fixture(scope="function")
def override_get_db():
    """Override the get_db dependency to use our test database.

    This creates a new session for each API call, allowing proper
    transaction handling within FastAPI endpoints.
    """

    def _override_get_db():
        db = TestSessionLocal()
        try:
            yield db
        finally:
            db.close()

    original = app.dependency_overrides.get(get_db)
    app.dependency_overrides[get_db] = _override_get_db

    yield

    if original:
        app.dependency_overrides[get_db] = original
    else:
        del app.dependency_overrides[get_db]


@pytest.fixture
def test_storage(tmp_path):
    """Resume files go to a per-test temporary directory."""
    storage = LocalFileStorage(str(tmp_path / "uploads"))
    app.dependency_overrides[get_storage] = lambda: storage
    yield storage
    app.dependency_overrides.pop(get_storage, None)


@pytest.fixture(scope="function")
def test_client(override_get_db, test_storage):
    """Provides a test client configured with our test database session."""
    return TestClient(app)


@pytest.fixture
def api_user(make_user):
    """A FREE user that every request made through ``test_client`` is authenticated as."""
    user = make_user()
    user_id = user.id

    def _override_get_current_user(db: Session = Depends(get_db)):
        return crud.get_user_by_id(db, user_id)

    app.dependency_overrides[get_current_user] = _override_get_current_user
    yield user
    app.dependency_overrides.pop(get_current_user, None)


@pytest.fixture
def session_factory():
    """Independent sessions, for simulating concurrent requests."""
    return TestSessionLocal
