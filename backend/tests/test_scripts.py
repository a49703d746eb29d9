from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

from sqlalchemy import delete
from sqlalchemy.orm import sessionmaker

from conftest import make_ballot
from ballotbox.db import build_engine, init_db
from ballotbox.db_models import Voter
from ballotbox.models import AnswerIn
from ballotbox.services.casting import cast_vote
from ballotbox.services.registration import register_voter

HERE = Path(__file__).parent
ROOT = HERE.parent
SCRIPTS = ROOT / "scripts"


def _init_temp_db(tmp_path: Path, orphan: bool = False):
    db_path = tmp_path / "ballots.sqlite3"
    engine = build_engine(f"sqlite:///{db_path}")
    init_db(engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        seed = make_ballot(session)
        voter, _ = register_voter(session, seed.ballot_id, "v@example.com")
        cast_vote(
            session,
            seed.ballot_id,
            voter.id,
            [AnswerIn(question_id=seed.q(1), choice_id=seed.c(1, 1))],
        )
        if orphan:
            session.execute(delete(Voter).where(Voter.id == voter.id))
            session.commit()
        return db_path, seed.ballot_id
    finally:
        session.close()
        engine.dispose()


def _run(script: str, db_path: Path, tmp_path: Path, *args: str) -> subprocess.CompletedProcess:
    env = dict(os.environ)
    env.pop("DATABASE_URL", None)
    env["DB_FILE"] = str(db_path)
    env["LOG_FILE"] = str(tmp_path / "scripts.log")
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(ROOT), env.get("PYTHONPATH")]))
    return subprocess.run(
        [sys.executable, str(SCRIPTS / script), *args],
        env=env,
        capture_output=True,
        text=True,
    )


def test_validate_clean_store_exits_zero(tmp_path: Path) -> None:
    db_path, ballot_id = _init_temp_db(tmp_path)
    out = tmp_path / "report.json"

    proc = _run("validate_integrity.py", db_path, tmp_path, "--ballot", ballot_id, "--out", str(out))

    assert proc.returncode == 0, proc.stdout + proc.stderr
    report = json.loads(out.read_text(encoding="utf-8"))
    assert report["ballotId"] == ballot_id
    assert report["passed"] is True
    assert "[OK]" in proc.stdout


def test_validate_then_repair_orphans(tmp_path: Path) -> None:
    db_path, ballot_id = _init_temp_db(tmp_path, orphan=True)
    summary_file = tmp_path / "summary.json"
    stats_file = tmp_path / "stats.json"

    proc = _run("validate_integrity.py", db_path, tmp_path, "--out", str(summary_file))
    assert proc.returncode == 1
    summary = json.loads(summary_file.read_text(encoding="utf-8"))
    assert summary["totalBallots"] == 1
    assert summary["passedCount"] == 0
    assert len(summary["results"][0]["issues"]["orphanedVotes"]) == 1

    proc = _run("repair_ballots.py", db_path, tmp_path, "--out", str(stats_file))
    assert proc.returncode == 0, proc.stdout + proc.stderr
    [stats] = json.loads(stats_file.read_text(encoding="utf-8"))
    assert stats["ballotId"] == ballot_id
    assert stats["createdVoters"] == 1
    assert stats["fixedVotes"] == 1

    proc = _run("validate_integrity.py", db_path, tmp_path, "--ballot", ballot_id)
    assert proc.returncode == 0, proc.stdout + proc.stderr


def test_unknown_ballot_exits_two(tmp_path: Path) -> None:
    db_path, _ = _init_temp_db(tmp_path)

    for script in ("validate_integrity.py", "repair_ballots.py"):
        proc = _run(script, db_path, tmp_path, "--ballot", "missing")
        assert proc.returncode == 2
        assert "[ERR] Ballot not found: missing" in proc.stdout
