"""
Integrity repair engine.

Rebuilds a ballot's derived state from its votes table in one transaction:
placeholder voters for orphaned votes, ``has_voted`` flags from vote
presence, then both cached counters. Running it twice is a no-op the second
time.

Repair takes the same ballot row lock as casting and registration. It is an
operator action and is not meant to run while the ballot is taking votes.
"""

from __future__ import annotations

from collections import Counter
from typing import List

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ballotbox.core.logger import integrity_logger
from ballotbox.db import atomic
from ballotbox.db_models import Ballot, Vote, Voter, VoterOrigin
from ballotbox.errors import BallotNotFound, RepairPartialFailure, TransactionFailure
from ballotbox.models import RepairIssue, RepairStats
from ballotbox.services.common import lock_ballot
from ballotbox.services.counters import refresh_ballots_received, refresh_total_voters

REPAIRED_VOTER_NAME = "Anonymous Voter (repaired)"
PLACEHOLDER_DOMAIN = "placeholder.invalid"


def placeholder_email(voter_id: str) -> str:
    return f"repaired-{voter_id}@{PLACEHOLDER_DOMAIN}"


def _synthesize_voter(db: Session, ballot: Ballot, voter_id: str) -> Voter:
    existing = db.get(Voter, voter_id)
    if existing is not None:
        # The id is held by a voter of another ballot; cannot reuse it here.
        raise RepairPartialFailure(
            "create_voter",
            f"Voter id {voter_id} already belongs to ballot {existing.ballot_id}",
            voterId=voter_id,
        )
    voter = Voter(
        id=voter_id,
        ballot_id=ballot.id,
        email=placeholder_email(voter_id),
        name=REPAIRED_VOTER_NAME,
        is_verified=True,
        has_voted=True,
        origin=VoterOrigin.repaired,
    )
    db.add(voter)
    return voter


def _count_voted_voters(db: Session, ballot_id: str) -> int:
    return db.scalar(
        select(func.count())
        .select_from(Voter)
        .where(Voter.ballot_id == ballot_id, Voter.has_voted.is_(True))
    ) or 0


def repair_ballot(db: Session, ballot_id: str) -> RepairStats:
    """Repair one ballot and return what was changed. Raises ``BallotNotFound``."""
    with atomic(db):
        ballot = lock_ballot(db, ballot_id)
        stats = RepairStats(
            ballot_id=ballot.id,
            previous_total_voters=ballot.total_voters or 0,
            previous_ballots_received=ballot.ballots_received or 0,
        )

        votes = db.scalars(select(Vote).where(Vote.ballot_id == ballot.id)).all()
        voters = list(db.scalars(select(Voter).where(Voter.ballot_id == ballot.id)).all())
        votes_by_voter = Counter(v.voter_id for v in votes)
        known = {v.id for v in voters}

        stats.total_votes = len(votes)
        stats.total_voters = len(voters)
        stats.voter_ids_with_votes = sorted(votes_by_voter)
        stats.orphaned_voter_ids = sorted(vid for vid in votes_by_voter if vid not in known)

        # 1. placeholder voters for orphaned votes
        for orphan_id in stats.orphaned_voter_ids:
            try:
                voters.append(_synthesize_voter(db, ballot, orphan_id))
            except RepairPartialFailure as exc:
                integrity_logger.error(f"Repair of ballot {ballot.id}: {exc.message}")
                stats.errors.append(RepairIssue(step=exc.step, voter_id=orphan_id, detail=exc.message))
                continue
            stats.created_voters += 1
            stats.fixed_votes += votes_by_voter[orphan_id]
            integrity_logger.info(
                f"Repair of ballot {ballot.id}: created placeholder voter {orphan_id} "
                f"for {votes_by_voter[orphan_id]} orphaned votes"
            )

        # 2. has_voted follows vote presence
        for voter in voters:
            should_be = votes_by_voter.get(voter.id, 0) > 0
            if bool(voter.has_voted) != should_be:
                voter.has_voted = should_be
                stats.fixed_flags += 1

        # 3. counters
        stats.final_total_voters = refresh_total_voters(db, ballot)
        refresh_ballots_received(db, ballot)
        stats.final_voted_voters = _count_voted_voters(db, ballot.id)

    integrity_logger.info(
        f"Repaired ballot {ballot_id}: created_voters={stats.created_voters} fixed_votes={stats.fixed_votes} "
        f"fixed_flags={stats.fixed_flags} total_voters={stats.final_total_voters} "
        f"voted_voters={stats.final_voted_voters} errors={len(stats.errors)}"
    )
    return stats


def repair_all_ballots(db: Session) -> List[RepairStats]:
    """Repair every ballot. A failed ballot is reported in its stats and the run continues."""
    ballot_ids = db.scalars(select(Ballot.id).order_by(Ballot.created_at, Ballot.id)).all()
    db.rollback()
    out = []
    for ballot_id in ballot_ids:
        try:
            out.append(repair_ballot(db, ballot_id))
        except (TransactionFailure, BallotNotFound) as exc:
            integrity_logger.error(f"Repair of ballot {ballot_id} failed: {exc.message}")
            out.append(
                RepairStats(
                    ballot_id=ballot_id,
                    errors=[RepairIssue(step="transaction", detail=exc.message)],
                )
            )
    return out


__all__ = ["placeholder_email", "repair_all_ballots", "repair_ballot"]
