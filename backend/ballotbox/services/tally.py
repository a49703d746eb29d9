from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ballotbox.db_models import Vote
from ballotbox.models import BallotResults, ChoiceTally, QuestionTally
from ballotbox.services.common import get_ballot
from ballotbox.services.counters import count_registered_voters, count_voters_with_votes


def _percent(part: int, whole: int) -> int:
    return round(part / whole * 100) if whole else 0


def tally_ballot(db: Session, ballot_id: str) -> BallotResults:
    """Return per-question, per-choice vote counts for a ballot, counted from the votes table."""
    ballot = get_ballot(db, ballot_id)
    counts = dict(
        db.execute(
            select(Vote.choice_id, func.count())
            .where(Vote.ballot_id == ballot.id)
            .group_by(Vote.choice_id)
        ).all()
    )

    questions = []
    for question in ballot.questions:
        total = sum(counts.get(c.id, 0) for c in question.choices)
        questions.append(
            QuestionTally(
                question_id=question.id,
                title=question.title,
                total_votes=total,
                choices=[
                    ChoiceTally(
                        choice_id=c.id,
                        text=c.text,
                        votes=counts.get(c.id, 0),
                        percentage=_percent(counts.get(c.id, 0), total),
                    )
                    for c in question.choices
                ],
            )
        )

    total_voters = count_registered_voters(db, ballot.id)
    voted = count_voters_with_votes(db, ballot.id)
    return BallotResults(
        ballot_id=ballot.id,
        title=ballot.title,
        status=ballot.status.value,
        total_voters=total_voters,
        voted_count=voted,
        participation=_percent(voted, total_voters),
        questions=questions,
    )


__all__ = ["tally_ballot"]
