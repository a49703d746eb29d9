"""Error kinds raised by the casting, registration and repair paths.

Every class carries a stable ``code`` and the HTTP status the API layer maps
it to. Precondition errors are raised before anything is written; the
surrounding transaction is rolled back regardless.
"""

from __future__ import annotations

from typing import Any, Dict


class BallotError(Exception):
    status_code = 400
    code = "ballot_error"
    retryable = False

    def __init__(self, message: str, **context: Any) -> None:
        self.message = message
        self.context = context
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"detail": self.code, "message": self.message}
        payload.update(self.context)
        if self.retryable:
            payload["retryable"] = True
        return payload


# ---- ballot ----
class BallotNotFound(BallotError):
    status_code = 404
    code = "ballot_not_found"

    def __init__(self, ballot_id: str) -> None:
        super().__init__(f"Ballot {ballot_id} not found", ballotId=ballot_id)


class BallotNotActive(BallotError):
    status_code = 409
    code = "ballot_not_active"

    def __init__(self, ballot_id: str, status: str) -> None:
        super().__init__(
            f"Ballot {ballot_id} is not accepting votes (status={status})",
            ballotId=ballot_id,
            status=status,
        )


class RegistrationClosed(BallotError):
    status_code = 409
    code = "registration_closed"

    def __init__(self, ballot_id: str) -> None:
        super().__init__(
            f"Ballot {ballot_id} is completed and not accepting new voters",
            ballotId=ballot_id,
        )


class CreatorCannotRegister(BallotError):
    status_code = 403
    code = "creator_cannot_register"

    def __init__(self, ballot_id: str) -> None:
        super().__init__(
            "Ballot creators cannot register to vote in their own ballots",
            ballotId=ballot_id,
        )


class NotBallotCreator(BallotError):
    status_code = 403
    code = "not_ballot_creator"

    def __init__(self, ballot_id: str) -> None:
        super().__init__(
            f"Only the creator of ballot {ballot_id} can do this",
            ballotId=ballot_id,
        )


# ---- voter ----
class VoterNotFound(BallotError):
    status_code = 404
    code = "voter_not_found"

    def __init__(self, voter_id: str) -> None:
        super().__init__(f"Voter {voter_id} not found", voterId=voter_id)


class VoterNotInBallot(BallotError):
    status_code = 403
    code = "voter_not_in_ballot"

    def __init__(self, voter_id: str, ballot_id: str) -> None:
        super().__init__(
            f"Voter {voter_id} is not registered for ballot {ballot_id}",
            voterId=voter_id,
            ballotId=ballot_id,
        )


class VoterNotVerified(BallotError):
    status_code = 403
    code = "voter_not_verified"

    def __init__(self, voter_id: str) -> None:
        super().__init__(
            f"Voter {voter_id} must be verified before voting", voterId=voter_id
        )


class VoterAlreadyVoted(BallotError):
    status_code = 409
    code = "already_voted"

    def __init__(self, voter_id: str) -> None:
        super().__init__(
            f"Voter {voter_id} has already submitted a vote for this ballot",
            voterId=voter_id,
        )


# ---- answers ----
class EmptySubmission(BallotError):
    status_code = 422
    code = "empty_submission"

    def __init__(self) -> None:
        super().__init__("No answers were provided")


class QuestionNotInBallot(BallotError):
    status_code = 422
    code = "question_not_in_ballot"

    def __init__(self, question_id: str, ballot_id: str) -> None:
        super().__init__(
            f"Question {question_id} does not belong to ballot {ballot_id}",
            questionId=question_id,
            ballotId=ballot_id,
        )


class ChoiceNotInQuestion(BallotError):
    status_code = 422
    code = "choice_not_in_question"

    def __init__(self, choice_id: str, question_id: str) -> None:
        super().__init__(
            f"Choice {choice_id} does not belong to question {question_id}",
            choiceId=choice_id,
            questionId=question_id,
        )


class DuplicateSelection(BallotError):
    status_code = 422
    code = "duplicate_selection"

    def __init__(self, choice_id: str, question_id: str) -> None:
        super().__init__(
            f"Choice {choice_id} was selected more than once for question {question_id}",
            choiceId=choice_id,
            questionId=question_id,
        )


class TooManySelections(BallotError):
    status_code = 422
    code = "too_many_selections"

    def __init__(self, question_id: str, limit: int) -> None:
        super().__init__(
            f"Question {question_id} accepts at most {limit} selection(s)",
            questionId=question_id,
            limit=limit,
        )


# ---- storage ----
class TransactionFailure(BallotError):
    """Storage error inside an atomic write. The transaction was rolled back."""

    status_code = 503
    code = "transaction_failed"
    retryable = True

    def __init__(self, reason: str) -> None:
        super().__init__(f"Transaction rolled back: {reason}")


class RepairPartialFailure(BallotError):
    """One corrective step could not be applied; recorded in the repair stats."""

    code = "repair_partial_failure"

    def __init__(self, step: str, reason: str, **context: Any) -> None:
        self.step = step
        super().__init__(reason, step=step, **context)


__all__ = [
    "BallotError",
    "BallotNotActive",
    "BallotNotFound",
    "ChoiceNotInQuestion",
    "CreatorCannotRegister",
    "DuplicateSelection",
    "EmptySubmission",
    "NotBallotCreator",
    "QuestionNotInBallot",
    "RegistrationClosed",
    "RepairPartialFailure",
    "TooManySelections",
    "TransactionFailure",
    "VoterAlreadyVoted",
    "VoterNotFound",
    "VoterNotInBallot",
    "VoterNotVerified",
]
