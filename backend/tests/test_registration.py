from __future__ import annotations

import pytest
from sqlalchemy import func, select

from conftest import CREATOR_EMAIL, add_voter, make_ballot
from ballotbox.db_models import Ballot, BallotStatus, Voter, VoterOrigin
from ballotbox.errors import BallotNotFound, CreatorCannotRegister, RegistrationClosed
from ballotbox.services.common import ALPHABET, display_name_from_email
from ballotbox.services.registration import register_voter, register_voters


def _voter_count(db, ballot_id):
    return db.scalar(select(func.count()).select_from(Voter).where(Voter.ballot_id == ballot_id))


def test_register_voter_creates_row_and_recounts(db, seed):
    voter, total = register_voter(db, seed.ballot_id, "  Jane.Doe@Example.com ")

    assert total == 1
    assert voter.email == "jane.doe@example.com"
    assert voter.name == "Jane Doe"
    assert voter.origin == VoterOrigin.registered
    assert voter.has_voted is False
    assert len(voter.verification_code) == 6
    assert set(voter.verification_code) <= set(ALPHABET)
    assert db.get(Ballot, seed.ballot_id).total_voters == 1


def test_register_voter_is_idempotent(db, seed):
    first, _ = register_voter(db, seed.ballot_id, "v@example.com", "Val")
    again, total = register_voter(db, seed.ballot_id, "V@example.com")

    assert again.id == first.id
    assert again.name == "Val"
    assert total == 1
    assert _voter_count(db, seed.ballot_id) == 1


def test_register_voter_repairs_drifted_counter(db, seed):
    add_voter(db, seed.ballot_id, "existing@example.com")
    ballot = db.get(Ballot, seed.ballot_id)
    ballot.total_voters = 42
    db.commit()

    _, total = register_voter(db, seed.ballot_id, "new@example.com")

    assert total == 2
    db.expire_all()
    assert db.get(Ballot, seed.ballot_id).total_voters == 2


def test_verification_default_follows_ballot(db):
    open_ballot = make_ballot(db, title="Open")
    strict_ballot = make_ballot(db, title="Strict", requires_verification=True)

    open_voter, _ = register_voter(db, open_ballot.ballot_id, "v@example.com")
    strict_voter, _ = register_voter(db, strict_ballot.ballot_id, "v@example.com")

    assert open_voter.is_verified is True
    assert strict_voter.is_verified is False


def test_completed_ballot_rejects_registration(db):
    seed = make_ballot(db, status=BallotStatus.completed)
    with pytest.raises(RegistrationClosed):
        register_voter(db, seed.ballot_id, "v@example.com")
    with pytest.raises(RegistrationClosed):
        register_voters(db, seed.ballot_id, [("v@example.com", None)])
    assert _voter_count(db, seed.ballot_id) == 0


@pytest.mark.parametrize("status", [BallotStatus.draft, BallotStatus.scheduled, BallotStatus.active])
def test_open_statuses_accept_registration(db, status):
    seed = make_ballot(db, status=status)
    _, total = register_voter(db, seed.ballot_id, "v@example.com")
    assert total == 1


def test_creator_cannot_self_register(db, seed):
    with pytest.raises(CreatorCannotRegister):
        register_voter(db, seed.ballot_id, CREATOR_EMAIL.upper())
    assert _voter_count(db, seed.ballot_id) == 0


def test_unknown_ballot(db):
    with pytest.raises(BallotNotFound):
        register_voter(db, "missing", "v@example.com")
    with pytest.raises(BallotNotFound):
        register_voters(db, "missing", [("v@example.com", None)])


def test_bulk_registration_skips_existing_and_repeats(db, seed):
    add_voter(db, seed.ballot_id, "old@example.com")

    batch = register_voters(
        db,
        seed.ballot_id,
        [
            ("old@example.com", None),
            ("new.one@example.com", None),
            ("NEW.one@example.com", "Dup"),
            ("two@example.com", "Second"),
        ],
    )

    assert [v.email for v in batch.added] == ["new.one@example.com", "two@example.com"]
    assert [v.name for v in batch.added] == ["New One", "Second"]
    assert batch.existing_count == 2
    assert batch.total_voters == 3
    assert _voter_count(db, seed.ballot_id) == 3


def test_bulk_then_single_converge_on_same_count(db, seed):
    register_voters(db, seed.ballot_id, [("a@example.com", None), ("b@example.com", None)])
    _, total = register_voter(db, seed.ballot_id, "c@example.com")
    batch = register_voters(db, seed.ballot_id, [("c@example.com", None)])

    assert total == 3
    assert batch.added == []
    assert batch.total_voters == 3


def test_bulk_path_has_no_creator_check(db, seed):
    batch = register_voters(db, seed.ballot_id, [(CREATOR_EMAIL, None)])
    assert len(batch.added) == 1


@pytest.mark.parametrize(
    "email, expected",
    [
        ("jane.doe@example.com", "Jane Doe"),
        ("john_smith@example.com", "John Smith"),
        ("solo@example.com", "Solo"),
        ("...@example.com", "Registered Voter"),
    ],
)
def test_display_name_from_email(email, expected):
    assert display_name_from_email(email) == expected
