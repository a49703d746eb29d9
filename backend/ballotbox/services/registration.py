"""Voter registration. Both paths recount ``total_voters`` inside their own transaction."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from ballotbox.core.logger import ballot_logger
from ballotbox.db import atomic
from ballotbox.db_models import Ballot, BallotStatus, User, Voter, VoterOrigin
from ballotbox.errors import BallotError, CreatorCannotRegister, RegistrationClosed
from ballotbox.services.common import (
    display_name_from_email,
    generate_verification_code,
    lock_ballot,
    normalize_email,
)
from ballotbox.services.counters import refresh_total_voters


@dataclass
class RegistrationBatch:
    added: List[Voter] = field(default_factory=list)
    existing_count: int = 0
    total_voters: int = 0


def _ensure_open(ballot: Ballot) -> None:
    if ballot.status == BallotStatus.completed:
        raise RegistrationClosed(ballot.id)


def _is_creator(db: Session, ballot: Ballot, email: str) -> bool:
    if not ballot.created_by:
        return False
    creator = db.get(User, ballot.created_by)
    return creator is not None and normalize_email(creator.email) == email


def _new_voter(ballot: Ballot, email: str, name: Optional[str]) -> Voter:
    return Voter(
        ballot_id=ballot.id,
        email=email,
        name=(name or "").strip() or display_name_from_email(email),
        is_verified=not ballot.requires_verification,
        has_voted=False,
        verification_code=generate_verification_code(),
        origin=VoterOrigin.registered,
    )


def _find_voter(db: Session, ballot_id: str, email: str) -> Optional[Voter]:
    return db.execute(
        select(Voter).where(Voter.ballot_id == ballot_id, Voter.email == email)
    ).scalar_one_or_none()


def register_voter(db: Session, ballot_id: str, email: str, name: Optional[str] = None) -> Tuple[Voter, int]:
    """
    Create-or-return the voter for (ballot, email).

    Returns the voter and the recounted ``total_voters``. Calling it twice
    with the same email yields the same voter and leaves the count unchanged.
    """
    email = normalize_email(email)
    try:
        with atomic(db):
            ballot = lock_ballot(db, ballot_id)
            _ensure_open(ballot)
            if _is_creator(db, ballot, email):
                raise CreatorCannotRegister(ballot_id)

            voter = _find_voter(db, ballot.id, email)
            created = voter is None
            if created:
                voter = _new_voter(ballot, email, name)
                db.add(voter)
            total = refresh_total_voters(db, ballot)
    except BallotError as exc:
        ballot_logger.warning(
            f"Registration rejected: ballot={ballot_id} email={email} reason={exc.code}"
        )
        raise

    db.refresh(voter)
    if created:
        ballot_logger.info(f"Voter registered: ballot={ballot_id} voter={voter.id} total_voters={total}")
    else:
        ballot_logger.info(f"Voter already registered: ballot={ballot_id} voter={voter.id}")
    return voter, total


def register_voters(db: Session, ballot_id: str, entries: Iterable[Tuple[str, Optional[str]]]) -> RegistrationBatch:
    """
    Bulk-register ``(email, name)`` pairs.

    Existing (ballot, email) pairs and repeats inside ``entries`` are skipped
    and counted in ``existing_count``.
    """
    batch = RegistrationBatch()
    try:
        with atomic(db):
            ballot = lock_ballot(db, ballot_id)
            _ensure_open(ballot)

            known = set(
                db.scalars(select(Voter.email).where(Voter.ballot_id == ballot.id)).all()
            )
            for raw_email, name in entries:
                email = normalize_email(raw_email)
                if email in known:
                    batch.existing_count += 1
                    continue
                voter = _new_voter(ballot, email, name)
                db.add(voter)
                batch.added.append(voter)
                known.add(email)

            batch.total_voters = refresh_total_voters(db, ballot)
    except BallotError as exc:
        ballot_logger.warning(f"Bulk registration rejected: ballot={ballot_id} reason={exc.code}")
        raise

    for voter in batch.added:
        db.refresh(voter)
    ballot_logger.info(
        f"Bulk registration: ballot={ballot_id} added={len(batch.added)} "
        f"existing={batch.existing_count} total_voters={batch.total_voters}"
    )
    return batch


__all__ = ["RegistrationBatch", "register_voter", "register_voters"]
