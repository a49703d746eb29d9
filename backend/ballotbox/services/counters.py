"""
Recompute functions for the two cached counters on a ballot.

``Ballot.total_voters`` and ``Ballot.ballots_received`` are never incremented.
Each write path calls the matching ``refresh_*`` function inside its own
transaction, after it has taken the ballot row lock, so the cached value is
always equal to a count over the fact tables at commit time.
"""

from __future__ import annotations

from sqlalchemy import distinct, func, select
from sqlalchemy.orm import Session

from ballotbox.db_models import Ballot, Vote, Voter


def count_registered_voters(db: Session, ballot_id: str) -> int:
    """Return the number of voter rows registered for the ballot."""
    return db.scalar(
        select(func.count()).select_from(Voter).where(Voter.ballot_id == ballot_id)
    ) or 0


def count_voters_with_votes(db: Session, ballot_id: str) -> int:
    """Return the number of distinct voter ids that hold at least one vote in the ballot."""
    return db.scalar(
        select(func.count(distinct(Vote.voter_id))).where(Vote.ballot_id == ballot_id)
    ) or 0


def refresh_total_voters(db: Session, ballot: Ballot) -> int:
    db.flush()
    ballot.total_voters = count_registered_voters(db, ballot.id)
    return ballot.total_voters


def refresh_ballots_received(db: Session, ballot: Ballot) -> int:
    db.flush()
    ballot.ballots_received = count_voters_with_votes(db, ballot.id)
    return ballot.ballots_received


__all__ = [
    "count_registered_voters",
    "count_voters_with_votes",
    "refresh_ballots_received",
    "refresh_total_voters",
]
