from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from ballotbox.db_models import VoterOrigin


class CamelModel(BaseModel):
    # JSON uses camelCase keys; Python code uses snake_case attributes.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---- casting ----
class AnswerIn(CamelModel):
    question_id: str
    choice_id: str
    rank: Optional[int] = Field(default=None, ge=1)


class CastVoteRequest(CamelModel):
    answers: List[AnswerIn]


class CastVoteResult(CamelModel):
    voter_id: str
    ballot_id: str
    answered_count: int


class VoteStatus(CamelModel):
    already_voted: bool


# ---- registration ----
class VoterEntry(CamelModel):
    email: EmailStr
    name: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class RegisterVotersRequest(CamelModel):
    voters: List[VoterEntry] = Field(min_length=1)


class RegisterSelfRequest(CamelModel):
    name: Optional[str] = None


class VoterOut(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: str
    ballot_id: str
    email: str
    name: str
    is_verified: bool
    has_voted: bool
    origin: VoterOrigin
    registered_at: Optional[datetime] = None


class SelfRegistrationResult(CamelModel):
    voter: VoterOut
    total_voters: int


class RegistrationResult(CamelModel):
    added_voters: List[VoterOut]
    existing_count: int
    total_voters: int


# ---- integrity ----
class OrphanedVote(CamelModel):
    vote_id: str
    voter_id: str
    question_id: str
    choice_id: str


class CreatorVote(CamelModel):
    vote_id: str
    voter_id: str
    creator_email: str


class CountAccuracy(CamelModel):
    passed: bool
    ballots_received: int
    voters_with_votes: int
    vote_rows: int
    voted_voter_flags: int


class VoterCountAccuracy(CamelModel):
    passed: bool
    total_voters: int
    registered_voters: int


class FlagInconsistency(CamelModel):
    voter_id: str
    email: str
    problem: str
    has_voted: bool
    actual_votes: int


class FlagConsistency(CamelModel):
    passed: bool
    inconsistencies: List[FlagInconsistency] = Field(default_factory=list)


class IntegrityIssues(CamelModel):
    orphaned_votes: List[OrphanedVote] = Field(default_factory=list)
    creator_votes: List[CreatorVote] = Field(default_factory=list)
    count_accuracy: Optional[CountAccuracy] = None
    voter_count_accuracy: Optional[VoterCountAccuracy] = None
    voter_flags_consistent: Optional[FlagConsistency] = None


class IntegrityReport(CamelModel):
    ballot_id: str
    title: Optional[str] = None
    passed: bool = False
    issues: IntegrityIssues = Field(default_factory=IntegrityIssues)
    recommendations: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class IntegritySummary(CamelModel):
    total_ballots: int
    passed_count: int
    results: List[IntegrityReport]


# ---- repair ----
class RepairIssue(CamelModel):
    step: str
    voter_id: Optional[str] = None
    detail: str


class RepairStats(CamelModel):
    ballot_id: str
    total_votes: int = 0
    total_voters: int = 0
    orphaned_voter_ids: List[str] = Field(default_factory=list)
    voter_ids_with_votes: List[str] = Field(default_factory=list)
    created_voters: int = 0
    fixed_votes: int = 0
    fixed_flags: int = 0
    previous_total_voters: int = 0
    previous_ballots_received: int = 0
    final_total_voters: int = 0
    final_voted_voters: int = 0
    errors: List[RepairIssue] = Field(default_factory=list)


# ---- results ----
class ChoiceTally(CamelModel):
    choice_id: str
    text: str
    votes: int
    percentage: int


class QuestionTally(CamelModel):
    question_id: str
    title: str
    total_votes: int
    choices: List[ChoiceTally]


class BallotResults(CamelModel):
    ballot_id: str
    title: str
    status: str
    total_voters: int
    voted_count: int
    participation: int
    questions: List[QuestionTally]
