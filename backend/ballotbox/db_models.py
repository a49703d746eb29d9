from __future__ import annotations

import enum
from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ballotbox.db import Base


def _uuid() -> str:
    return str(uuid4())


class BallotStatus(str, enum.Enum):
    draft = "draft"
    scheduled = "scheduled"
    active = "active"
    completed = "completed"


class QuestionType(str, enum.Enum):
    single_choice = "single_choice"
    multiple_choice = "multiple_choice"
    rank_choice = "rank_choice"


class VoterOrigin(str, enum.Enum):
    registered = "registered"
    # Placeholder rows created by the repair engine for orphaned votes.
    repaired = "repaired"


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), default="")
    role: Mapped[str] = mapped_column(String(16), default="admin")


class Ballot(Base):
    __tablename__ = "ballots"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[BallotStatus] = mapped_column(
        Enum(BallotStatus, name="ballot_status"), default=BallotStatus.draft
    )
    start_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    requires_verification: Mapped[bool] = mapped_column(Boolean, default=False)
    created_by: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=True
    )

    # Cached counts over the voters and votes tables, see services.counters.
    total_voters: Mapped[int] = mapped_column(Integer, default=0)
    ballots_received: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    creator: Mapped[Optional[User]] = relationship()
    questions: Mapped[List["Question"]] = relationship(
        back_populates="ballot", order_by="Question.position"
    )


class Question(Base):
    __tablename__ = "questions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    ballot_id: Mapped[str] = mapped_column(String(36), ForeignKey("ballots.id"), index=True)
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    question_type: Mapped[QuestionType] = mapped_column(
        Enum(QuestionType, name="question_type"), default=QuestionType.single_choice
    )
    max_selections: Mapped[int] = mapped_column(Integer, default=1)
    position: Mapped[int] = mapped_column(Integer, default=0)

    ballot: Mapped[Ballot] = relationship(back_populates="questions")
    choices: Mapped[List["Choice"]] = relationship(
        back_populates="question", order_by="Choice.position"
    )


class Choice(Base):
    __tablename__ = "choices"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    question_id: Mapped[str] = mapped_column(String(36), ForeignKey("questions.id"), index=True)
    text: Mapped[str] = mapped_column(String(255))
    position: Mapped[int] = mapped_column(Integer, default=0)

    question: Mapped[Question] = relationship(back_populates="choices")


class Voter(Base):
    __tablename__ = "voters"
    __table_args__ = (
        UniqueConstraint("ballot_id", "email", name="unique_ballot_voter"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    ballot_id: Mapped[str] = mapped_column(String(36), ForeignKey("ballots.id"), index=True)
    email: Mapped[str] = mapped_column(String(255))
    name: Mapped[str] = mapped_column(String(255), default="Registered Voter")
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    # Set once by the casting transaction; only the repair engine rewrites it.
    has_voted: Mapped[bool] = mapped_column(Boolean, default=False)
    verification_code: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    origin: Mapped[VoterOrigin] = mapped_column(
        Enum(VoterOrigin, name="voter_origin"), default=VoterOrigin.registered
    )
    registered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class Vote(Base):
    __tablename__ = "votes"
    __table_args__ = (
        UniqueConstraint("voter_id", "question_id", "choice_id", name="unique_voter_selection"),
        Index("ix_votes_ballot_voter", "ballot_id", "voter_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    # Not a foreign key: voter rows can disappear out-of-band and the
    # integrity validator has to see the orphans that leaves behind.
    voter_id: Mapped[str] = mapped_column(String(36), index=True)
    ballot_id: Mapped[str] = mapped_column(String(36), ForeignKey("ballots.id"))
    question_id: Mapped[str] = mapped_column(String(36), ForeignKey("questions.id"))
    choice_id: Mapped[str] = mapped_column(String(36), ForeignKey("choices.id"))
    rank: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    cast_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


__all__ = [
    "Ballot",
    "BallotStatus",
    "Choice",
    "Question",
    "QuestionType",
    "User",
    "Vote",
    "Voter",
    "VoterOrigin",
]
