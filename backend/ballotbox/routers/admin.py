from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ballotbox.db import get_db
from ballotbox.db_models import Ballot, User
from ballotbox.errors import NotBallotCreator
from ballotbox.models import (
    IntegrityReport,
    IntegritySummary,
    RegisterVotersRequest,
    RegistrationResult,
    RepairStats,
    VoterOut,
)
from ballotbox.security import Principal, require_role
from ballotbox.services import integrity, registration, repair
from ballotbox.services.common import get_ballot, normalize_email

router = APIRouter(prefix="/admin", tags=["admin"])


def _owned_ballot(db: Session, ballot_id: str, user: Principal) -> Ballot:
    ballot = get_ballot(db, ballot_id)
    creator = db.get(User, ballot.created_by) if ballot.created_by else None
    if creator is None or normalize_email(creator.email) != user.email:
        raise NotBallotCreator(ballot_id)
    return ballot


@router.post("/ballots/{ballot_id}/voters", response_model=RegistrationResult)
def add_voters(
    ballot_id: str,
    payload: RegisterVotersRequest,
    user: Principal = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    _owned_ballot(db, ballot_id, user)
    batch = registration.register_voters(db, ballot_id, ((v.email, v.name) for v in payload.voters))
    return RegistrationResult(
        added_voters=[VoterOut.model_validate(v) for v in batch.added],
        existing_count=batch.existing_count,
        total_voters=batch.total_voters,
    )


@router.get("/ballots/{ballot_id}/integrity", response_model=IntegrityReport)
def ballot_integrity(
    ballot_id: str,
    user: Principal = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    _owned_ballot(db, ballot_id, user)
    return integrity.validate_ballot(db, ballot_id)


@router.post("/ballots/{ballot_id}/repair", response_model=RepairStats)
def ballot_repair(
    ballot_id: str,
    user: Principal = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    _owned_ballot(db, ballot_id, user)
    return repair.repair_ballot(db, ballot_id)


@router.get("/integrity", response_model=IntegritySummary)
def integrity_summary(
    user: Principal = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    return integrity.summarize(integrity.validate_all_ballots(db))


@router.post("/repair", response_model=List[RepairStats])
def repair_all(
    user: Principal = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    return repair.repair_all_ballots(db)
