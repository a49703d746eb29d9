from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List

# Keep test runs away from the working-directory database and log file.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_FILE", str(Path(tempfile.gettempdir()) / "ballotbox-tests.log"))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ballotbox.db import build_engine, get_db, init_db
from ballotbox.db_models import Ballot, BallotStatus, Choice, Question, QuestionType, User, Voter
from ballotbox.main import app
from ballotbox.security import create_access_token

CREATOR_EMAIL = "host@example.com"


@dataclass
class Seed:
    ballot_id: str
    creator_email: str
    question_ids: List[str] = field(default_factory=list)
    # question id -> ordered choice ids
    choice_ids: Dict[str, List[str]] = field(default_factory=dict)

    def q(self, n: int) -> str:
        return self.question_ids[n - 1]

    def c(self, q: int, n: int) -> str:
        return self.choice_ids[self.q(q)][n - 1]


@pytest.fixture
def engine():
    eng = build_engine("sqlite://", poolclass=StaticPool)
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def make_ballot(
    db: Session,
    title: str = "City Council Election",
    status: BallotStatus = BallotStatus.active,
    requires_verification: bool = False,
    creator_email: str = CREATOR_EMAIL,
) -> Seed:
    """Ballot with two single-choice questions of three choices each."""
    creator = db.query(User).filter(User.email == creator_email).one_or_none()
    if creator is None:
        creator = User(email=creator_email, name="Host", role="admin")
        db.add(creator)
        db.flush()

    ballot = Ballot(
        title=title,
        status=status,
        requires_verification=requires_verification,
        created_by=creator.id,
    )
    db.add(ballot)
    db.flush()

    seed = Seed(ballot_id=ballot.id, creator_email=creator_email)
    for qi in range(2):
        question = Question(
            ballot_id=ballot.id,
            title=f"Question {qi + 1}",
            question_type=QuestionType.single_choice,
            position=qi,
        )
        db.add(question)
        db.flush()
        seed.question_ids.append(question.id)
        seed.choice_ids[question.id] = []
        for ci in range(3):
            choice = Choice(question_id=question.id, text=f"Choice {ci + 1}", position=ci)
            db.add(choice)
            db.flush()
            seed.choice_ids[question.id].append(choice.id)
    db.commit()
    return seed


def add_voter(db: Session, ballot_id: str, email: str, **kwargs) -> Voter:
    """Insert a voter row directly, without touching the ballot counters."""
    voter = Voter(ballot_id=ballot_id, email=email, is_verified=kwargs.pop("is_verified", True), **kwargs)
    db.add(voter)
    db.commit()
    return voter


@pytest.fixture
def seed(db) -> Seed:
    return make_ballot(db)


@pytest.fixture
def client(session_factory):
    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.state.limiter.reset()
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_db, None)


def admin_headers(email: str = CREATOR_EMAIL) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(email, 'admin')}"}


def voter_headers(email: str, voter_id: str = None, ballot_id: str = None) -> Dict[str, str]:
    token = create_access_token(email, "voter", voter_id=voter_id, ballot_id=ballot_id)
    return {"Authorization": f"Bearer {token}"}
