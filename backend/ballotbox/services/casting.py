"""
Vote casting transaction.

``cast_vote`` records one voter's complete submission exactly once. The
ballot row is locked first, then the voter row; the ``has_voted`` flag is
claimed with a compare-and-set update so a concurrent call that passed the
precondition check still loses at write time. Vote rows, the flag and the
``ballots_received`` recount commit together or not at all.
"""

from __future__ import annotations

from collections import Counter
from typing import Dict, Iterable, List, Tuple

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ballotbox.core.logger import ballot_logger
from ballotbox.core.settings import get_settings
from ballotbox.db import atomic
from ballotbox.db_models import Ballot, BallotStatus, Question, QuestionType, Vote, Voter
from ballotbox.errors import (
    BallotError,
    BallotNotActive,
    ChoiceNotInQuestion,
    DuplicateSelection,
    EmptySubmission,
    QuestionNotInBallot,
    TooManySelections,
    VoterAlreadyVoted,
    VoterNotFound,
    VoterNotInBallot,
    VoterNotVerified,
)
from ballotbox.models import AnswerIn, CastVoteResult
from ballotbox.services.common import lock_ballot
from ballotbox.services.counters import refresh_ballots_received


def selection_limit(question: Question) -> int:
    if question.question_type == QuestionType.single_choice:
        return 1
    if question.question_type == QuestionType.rank_choice:
        # A ranking may cover every choice.
        return max(question.max_selections or 1, len(question.choices))
    return max(question.max_selections or 1, 1)


def _load_voter_for_update(db: Session, voter_id: str) -> Voter | None:
    return db.execute(
        select(Voter)
        .where(Voter.id == voter_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def _validate_answers(ballot: Ballot, answers: Iterable[AnswerIn]) -> List[AnswerIn]:
    answers = list(answers)
    if not answers:
        raise EmptySubmission()

    questions: Dict[str, Question] = {q.id: q for q in ballot.questions}
    seen: set[Tuple[str, str]] = set()
    per_question: Counter[str] = Counter()

    for answer in answers:
        question = questions.get(answer.question_id)
        if question is None:
            raise QuestionNotInBallot(answer.question_id, ballot.id)
        if answer.choice_id not in {c.id for c in question.choices}:
            raise ChoiceNotInQuestion(answer.choice_id, question.id)
        key = (question.id, answer.choice_id)
        if key in seen:
            raise DuplicateSelection(answer.choice_id, question.id)
        seen.add(key)
        per_question[question.id] += 1

    for question_id, count in per_question.items():
        limit = selection_limit(questions[question_id])
        if count > limit:
            raise TooManySelections(question_id, limit)
    return answers


def _claim_submission(db: Session, voter_id: str) -> bool:
    """Flip ``has_voted`` false -> true; False when another call got there first."""
    result = db.execute(
        update(Voter)
        .where(Voter.id == voter_id, Voter.has_voted.is_(False))
        .values(has_voted=True)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def cast_vote(db: Session, ballot_id: str, voter_id: str, answers: Iterable[AnswerIn]) -> CastVoteResult:
    """
    Record a voter's answers for a ballot.

    Preconditions are checked in order (ballot, voter, verification,
    has_voted, answers) and each raises its own ``BallotError`` subclass.
    Storage errors roll the transaction back and surface as
    ``TransactionFailure``.
    """
    settings = get_settings()
    try:
        with atomic(db):
            ballot = lock_ballot(db, ballot_id)
            if ballot.status != BallotStatus.active:
                raise BallotNotActive(ballot_id, ballot.status.value)

            voter = _load_voter_for_update(db, voter_id)
            if voter is None:
                raise VoterNotFound(voter_id)
            if voter.ballot_id != ballot.id:
                raise VoterNotInBallot(voter_id, ballot_id)

            if ballot.requires_verification and not voter.is_verified:
                if not settings.auto_verify_on_cast:
                    raise VoterNotVerified(voter_id)
                ballot_logger.warning(
                    f"Auto-verifying voter {voter_id} on ballot {ballot_id} at cast time"
                )
                voter.is_verified = True

            if voter.has_voted:
                raise VoterAlreadyVoted(voter_id)

            accepted = _validate_answers(ballot, answers)

            if not _claim_submission(db, voter.id):
                raise VoterAlreadyVoted(voter_id)
            db.expire(voter, ["has_voted"])

            db.add_all(
                Vote(
                    voter_id=voter.id,
                    ballot_id=ballot.id,
                    question_id=a.question_id,
                    choice_id=a.choice_id,
                    rank=a.rank,
                )
                for a in accepted
            )
            received = refresh_ballots_received(db, ballot)
    except BallotError as exc:
        ballot_logger.warning(
            f"Vote rejected: ballot={ballot_id} voter={voter_id} reason={exc.code}"
        )
        raise

    ballot_logger.info(
        f"Vote recorded: ballot={ballot_id} voter={voter_id} answers={len(accepted)} ballots_received={received}"
    )
    return CastVoteResult(voter_id=voter_id, ballot_id=ballot_id, answered_count=len(accepted))


def has_voted(db: Session, ballot_id: str, voter_id: str) -> bool:
    voter = db.get(Voter, voter_id)
    if voter is None or voter.ballot_id != ballot_id:
        return False
    return bool(voter.has_voted)


__all__ = ["cast_vote", "has_voted", "selection_limit"]
