import os
os.environ["TESTING"] = "1"
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
import uuid
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[2]))

from grantflow import models, notify
from grantflow.auth import create_access_token
from grantflow.clock import FixedClock
from grantflow.config import ReviewSettings
from grantflow.database import Base, get_db
from grantflow.dependencies import get_clock
from grantflow.main import app
from grantflow.repository import SqlAlchemyRepository

SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False, "timeout": 30},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

NOW = datetime(2026, 10, 19, 10, 0, tzinfo=timezone.utc)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def fresh_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    notify.EMAIL_OUTBOX.clear()
    yield


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def repository(db):
    return SqlAlchemyRepository(db)


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def settings():
    return ReviewSettings()


@pytest.fixture
def notifier():
    return notify.RecordingNotifier()


@pytest.fixture
def client(clock):
    app.dependency_overrides[get_clock] = lambda: clock
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.pop(get_clock, None)


def make_faculty(db, title="Faculty of Science", code=None):
    faculty = models.Faculty(title=title, code=code or f"F-{uuid.uuid4().hex[:6]}")
    db.add(faculty)
    db.commit()
    db.refresh(faculty)
    return faculty


def make_department(db, faculty, title="Marine Biology", code=None):
    department = models.Department(
        title=title, code=code or f"D-{uuid.uuid4().hex[:6]}", faculty_id=faculty.id
    )
    db.add(department)
    db.commit()
    db.refresh(department)
    return department


def make_user(db, role="researcher", *, email=None, name=None, faculty=None, department=None, active=True):
    user = models.User(
        email=email or f"{role}-{uuid.uuid4().hex[:8]}@example.com",
        name=name or role.title(),
        role=role,
        faculty_id=faculty.id if faculty is not None else None,
        department_id=department.id if department is not None else None,
        is_active=active,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_proposal(
    db,
    submitter,
    *,
    title="Proposal",
    budget=1000.0,
    status="submitted",
    review_status="pending",
    archived=False,
    created_at=None,
):
    moment = created_at or NOW
    proposal = models.Proposal(
        submitter_id=submitter.id,
        proposal_type="staff",
        title=title,
        requested_budget=budget,
        status=status,
        review_status=review_status,
        is_archived=archived,
        submitted_at=moment,
        created_at=moment,
        updated_at=moment,
    )
    db.add(proposal)
    db.commit()
    db.refresh(proposal)
    return proposal


def make_reviewed_proposal(
    db,
    submitter,
    *,
    final_score=75.0,
    award_status="pending",
    funding_amount=None,
    title="Reviewed proposal",
    budget=1000.0,
    archived=False,
):
    """Proposal that finished review, with its award row."""

    proposal = make_proposal(
        db,
        submitter,
        title=title,
        budget=budget,
        status="decided" if award_status != "pending" else "reviewed",
        review_status="reviewed",
        archived=archived,
    )
    award = models.Award(
        proposal_id=proposal.id,
        submitter_id=submitter.id,
        status=award_status,
        final_score=final_score,
        funding_amount=funding_amount,
        decided_at=NOW if award_status != "pending" else None,
    )
    db.add(award)
    db.commit()
    db.refresh(proposal)
    return proposal


def make_full_proposal(db, proposal, *, status="submitted", submitted_at=None, deadline=None):
    full_proposal = models.FullProposal(
        proposal_id=proposal.id,
        submitter_id=proposal.submitter_id,
        document_ref=f"docs/{proposal.id}.pdf",
        status=status,
        submitted_at=submitted_at or NOW,
        deadline=deadline,
    )
    db.add(full_proposal)
    db.commit()
    db.refresh(full_proposal)
    return full_proposal


def auth_headers(user):
    token = create_access_token({"sub": user.email})
    return {"Authorization": f"Bearer {token}"}
