from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Optional

from ballotbox.db import SessionLocal, init_db
from ballotbox.errors import BallotNotFound
from ballotbox.services.integrity import summarize, validate_all_ballots, validate_ballot


def _emit(payload: dict, out: Optional[Path]) -> None:
    text = json.dumps(payload, indent=2, default=str)
    if out is None:
        print(text)
    else:
        out.write_text(text, encoding="utf-8")
        print(f"[INFO] report written to {out}")


def validate_integrity(ballot_id: Optional[str] = None, out: Optional[Path] = None) -> int:
    init_db()
    db = SessionLocal()
    try:
        if ballot_id:
            try:
                report = validate_ballot(db, ballot_id)
            except BallotNotFound:
                print(f"[ERR] Ballot not found: {ballot_id}")
                return 2
            _emit(report.model_dump(by_alias=True), out)
            passed = report.passed
            print(f"[{'OK' if passed else 'ERR'}] ballot {ballot_id}: "
                  f"{'all integrity checks passed' if passed else 'integrity validation failed'}")
            for rec in report.recommendations:
                print(f"[INFO] {rec}")
            return 0 if passed else 1

        summary = summarize(validate_all_ballots(db))
        _emit(summary.model_dump(by_alias=True), out)
        passed = summary.passed_count == summary.total_ballots
        print(f"[{'OK' if passed else 'ERR'}] {summary.passed_count} of "
              f"{summary.total_ballots} ballots passed all checks")
        return 0 if passed else 1
    finally:
        db.close()


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Check ballot counters and voter flags against the votes table (read-only)."
    )
    parser.add_argument("--ballot", help="Validate a single ballot id (default: all ballots).")
    parser.add_argument("--out", type=Path, help="Write the JSON report to this file instead of stdout.")
    return parser.parse_args()


if __name__ == "__main__":
    args = _parse_args()
    raise SystemExit(validate_integrity(args.ballot, args.out))
