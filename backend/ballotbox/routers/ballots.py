from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from ballotbox.core.rate_limit import limiter, vote_rate_limit
from ballotbox.db import get_db
from ballotbox.errors import VoterNotInBallot
from ballotbox.models import (
    BallotResults,
    CastVoteRequest,
    CastVoteResult,
    RegisterSelfRequest,
    SelfRegistrationResult,
    VoteStatus,
    VoterOut,
)
from ballotbox.security import Principal, get_current_user, require_role
from ballotbox.services import casting, registration, tally

router = APIRouter(prefix="/ballots", tags=["ballots"])


def _voter_for_ballot(user: Principal, ballot_id: str) -> str:
    if not user.voter_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="voter_context_required")
    if user.ballot_id and user.ballot_id != ballot_id:
        raise VoterNotInBallot(user.voter_id, ballot_id)
    return user.voter_id


@router.post("/{ballot_id}/vote", response_model=CastVoteResult)
@limiter.limit(vote_rate_limit)
def cast_vote(
    request: Request,
    ballot_id: str,
    payload: CastVoteRequest,
    user: Principal = Depends(require_role("voter")),
    db: Session = Depends(get_db),
):
    voter_id = _voter_for_ballot(user, ballot_id)
    return casting.cast_vote(db, ballot_id, voter_id, payload.answers)


@router.get("/{ballot_id}/status", response_model=VoteStatus)
def vote_status(
    ballot_id: str,
    user: Principal = Depends(require_role("voter")),
    db: Session = Depends(get_db),
):
    voter_id = _voter_for_ballot(user, ballot_id)
    return VoteStatus(already_voted=casting.has_voted(db, ballot_id, voter_id))


@router.post("/{ballot_id}/register-voter", response_model=SelfRegistrationResult)
def register_self(
    ballot_id: str,
    payload: Optional[RegisterSelfRequest] = None,
    user: Principal = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    name = payload.name if payload else None
    voter, total = registration.register_voter(db, ballot_id, user.email, name)
    return SelfRegistrationResult(voter=VoterOut.model_validate(voter), total_voters=total)


@router.get("/{ballot_id}/results", response_model=BallotResults)
def results(
    ballot_id: str,
    user: Principal = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return tally.tally_ballot(db, ballot_id)
