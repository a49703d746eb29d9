"""Helpers shared by the write paths."""

from __future__ import annotations

import secrets
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ballotbox.db_models import Ballot
from ballotbox.errors import BallotNotFound

# Unambiguous characters only (no 0/O, 1/I).
ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
VERIFICATION_CODE_LENGTH = 6
FALLBACK_VOTER_NAME = "Registered Voter"


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def display_name_from_email(email: str) -> str:
    """Return a display name built from the local part, e.g. ``jane.doe@x`` -> ``Jane Doe``."""
    local = normalize_email(email).split("@", 1)[0]
    parts = [p for p in local.replace("_", ".").replace("-", ".").split(".") if p]
    if not parts:
        return FALLBACK_VOTER_NAME
    return " ".join(p.capitalize() for p in parts)


def generate_verification_code() -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(VERIFICATION_CODE_LENGTH))


def lock_ballot(db: Session, ballot_id: str) -> Ballot:
    """
    Load a ballot with a row lock held until the surrounding transaction ends.

    Every write path that touches a ballot's voters or votes goes through here
    first, so ballot -> voter is the only lock order in the system.
    """
    ballot = db.execute(
        select(Ballot)
        .where(Ballot.id == ballot_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if ballot is None:
        raise BallotNotFound(ballot_id)
    return ballot


def get_ballot(db: Session, ballot_id: str) -> Ballot:
    ballot = db.get(Ballot, ballot_id)
    if ballot is None:
        raise BallotNotFound(ballot_id)
    return ballot


__all__ = [
    "ALPHABET",
    "display_name_from_email",
    "generate_verification_code",
    "get_ballot",
    "lock_ballot",
    "normalize_email",
]
