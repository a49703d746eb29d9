"""
Read-only integrity validator.

Compares a ballot's cached counters and per-voter ``has_voted`` flags with
what the votes table says, and lists orphaned votes and creator self-votes.
Discrepancies are returned in the report; only storage failures raise.
"""

from __future__ import annotations

from collections import Counter
from typing import Iterable, List

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ballotbox.core.logger import integrity_logger
from ballotbox.db_models import Ballot, User, Vote, Voter
from ballotbox.models import (
    CountAccuracy,
    CreatorVote,
    FlagConsistency,
    FlagInconsistency,
    IntegrityIssues,
    IntegrityReport,
    IntegritySummary,
    OrphanedVote,
    VoterCountAccuracy,
)
from ballotbox.services.common import get_ballot, normalize_email

VOTED_WITHOUT_VOTES = "Marked as voted but has no votes"
VOTES_WITHOUT_FLAG = "Has votes but not marked as voted"


def _orphaned_votes(votes: List[Vote], voter_ids: set) -> List[OrphanedVote]:
    return [
        OrphanedVote(
            vote_id=v.id, voter_id=v.voter_id, question_id=v.question_id, choice_id=v.choice_id
        )
        for v in votes
        if v.voter_id not in voter_ids
    ]


def _creator_votes(votes: List[Vote], voters: List[Voter], creator_email: str) -> List[CreatorVote]:
    creator_voter_ids = {v.id for v in voters if normalize_email(v.email) == creator_email}
    return [
        CreatorVote(vote_id=v.id, voter_id=v.voter_id, creator_email=creator_email)
        for v in votes
        if v.voter_id in creator_voter_ids
    ]


def _flag_inconsistencies(voters: List[Voter], votes_by_voter: Counter) -> List[FlagInconsistency]:
    out = []
    for voter in voters:
        actual = votes_by_voter.get(voter.id, 0)
        if voter.has_voted and actual == 0:
            out.append(FlagInconsistency(
                voter_id=voter.id, email=voter.email, problem=VOTED_WITHOUT_VOTES,
                has_voted=True, actual_votes=0,
            ))
        elif not voter.has_voted and actual > 0:
            out.append(FlagInconsistency(
                voter_id=voter.id, email=voter.email, problem=VOTES_WITHOUT_FLAG,
                has_voted=False, actual_votes=actual,
            ))
    return out


def _build_report(db: Session, ballot: Ballot) -> IntegrityReport:
    report = IntegrityReport(ballot_id=ballot.id, title=ballot.title)
    issues: IntegrityIssues = report.issues
    recs = report.recommendations

    votes = list(db.scalars(select(Vote).where(Vote.ballot_id == ballot.id)).all())
    voters = list(db.scalars(select(Voter).where(Voter.ballot_id == ballot.id)).all())
    integrity_logger.info(
        f"Validating ballot {ballot.id}: {len(votes)} vote rows, {len(voters)} voters"
    )

    # 1. orphans
    issues.orphaned_votes = _orphaned_votes(votes, {v.id for v in voters})
    if issues.orphaned_votes:
        integrity_logger.warning(
            f"Ballot {ballot.id}: {len(issues.orphaned_votes)} orphaned votes without voter records"
        )
        recs.append(f"Run repair script to fix {len(issues.orphaned_votes)} orphaned votes")

    # 2. creator self-votes
    creator = db.get(User, ballot.created_by) if ballot.created_by else None
    if creator is None:
        recs.append("Could not find ballot creator. Verify user exists.")
    else:
        issues.creator_votes = _creator_votes(votes, voters, normalize_email(creator.email))
        if issues.creator_votes:
            integrity_logger.warning(
                f"Ballot {ballot.id}: {len(issues.creator_votes)} votes cast by creator {creator.email}"
            )
            recs.append(
                "Ballot creators should not vote in their own ballots - enforce role separation"
            )

    # 3. ballots_received against distinct voters holding votes
    votes_by_voter = Counter(v.voter_id for v in votes)
    voters_with_votes = len(votes_by_voter)
    received = ballot.ballots_received or 0
    issues.count_accuracy = CountAccuracy(
        passed=received == voters_with_votes,
        ballots_received=received,
        voters_with_votes=voters_with_votes,
        vote_rows=len(votes),
        voted_voter_flags=sum(1 for v in voters if v.has_voted),
    )
    if not issues.count_accuracy.passed:
        integrity_logger.warning(
            f"Ballot {ballot.id}: ballots_received={received}, voters with votes={voters_with_votes}"
        )
        recs.append(
            f"Update ballot ballotsReceived to {voters_with_votes} to match the number of voters with votes"
        )

    # 4. total_voters against registered voter rows
    total = ballot.total_voters or 0
    issues.voter_count_accuracy = VoterCountAccuracy(
        passed=total == len(voters), total_voters=total, registered_voters=len(voters)
    )
    if not issues.voter_count_accuracy.passed:
        integrity_logger.warning(
            f"Ballot {ballot.id}: total_voters={total}, registered voters={len(voters)}"
        )
        recs.append(f"Update ballot totalVoters to {len(voters)} to match registered voters")

    # 5. has_voted flags
    inconsistencies = _flag_inconsistencies(voters, votes_by_voter)
    issues.voter_flags_consistent = FlagConsistency(
        passed=not inconsistencies, inconsistencies=inconsistencies
    )
    if inconsistencies:
        integrity_logger.warning(
            f"Ballot {ballot.id}: {len(inconsistencies)} voters with inconsistent has_voted flags"
        )
        recs.append(
            f"Update hasVoted flags for {len(inconsistencies)} voters to match their actual vote status"
        )

    report.passed = (
        not issues.orphaned_votes
        and not issues.creator_votes
        and issues.count_accuracy.passed
        and issues.voter_count_accuracy.passed
        and issues.voter_flags_consistent.passed
    )
    if report.passed:
        integrity_logger.info(f"Ballot {ballot.id}: all integrity checks passed")
    else:
        integrity_logger.warning(f"Ballot {ballot.id}: integrity validation failed")
    return report


def validate_ballot(db: Session, ballot_id: str) -> IntegrityReport:
    """Return the integrity report for one ballot. Raises ``BallotNotFound``."""
    return _build_report(db, get_ballot(db, ballot_id))


def validate_all_ballots(db: Session) -> List[IntegrityReport]:
    """Validate every ballot; a storage error on one ballot is recorded in its report."""
    rows = db.execute(select(Ballot.id, Ballot.title).order_by(Ballot.created_at, Ballot.id)).all()
    reports = []
    for ballot_id, title in rows:
        try:
            reports.append(validate_ballot(db, ballot_id))
        except SQLAlchemyError as exc:
            integrity_logger.error(f"Validation of ballot {ballot_id} failed: {exc}")
            db.rollback()
            reports.append(
                IntegrityReport(ballot_id=ballot_id, title=title, passed=False, error=str(exc))
            )
    integrity_logger.info(
        f"Validation complete: {sum(1 for r in reports if r.passed)} of {len(reports)} ballots passed"
    )
    return reports


def summarize(reports: Iterable[IntegrityReport]) -> IntegritySummary:
    results = list(reports)
    return IntegritySummary(
        total_ballots=len(results),
        passed_count=sum(1 for r in results if r.passed),
        results=results,
    )


__all__ = ["summarize", "validate_all_ballots", "validate_ballot"]
