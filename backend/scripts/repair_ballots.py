from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import List, Optional

from ballotbox.db import SessionLocal, init_db
from ballotbox.errors import BallotNotFound
from ballotbox.models import RepairStats
from ballotbox.services.repair import repair_all_ballots, repair_ballot


def _emit(stats: List[RepairStats], single: bool, out: Optional[Path]) -> None:
    payload = [s.model_dump(by_alias=True) for s in stats]
    text = json.dumps(payload[0] if single else payload, indent=2, default=str)
    if out is None:
        print(text)
    else:
        out.write_text(text, encoding="utf-8")
        print(f"[INFO] stats written to {out}")


def repair_ballots(ballot_id: Optional[str] = None, out: Optional[Path] = None) -> int:
    init_db()
    db = SessionLocal()
    try:
        if ballot_id:
            try:
                results = [repair_ballot(db, ballot_id)]
            except BallotNotFound:
                print(f"[ERR] Ballot not found: {ballot_id}")
                return 2
        else:
            results = repair_all_ballots(db)
    finally:
        db.close()

    _emit(results, bool(ballot_id), out)
    failed = 0
    for s in results:
        print(
            f"[INFO] {s.ballot_id}: created_voters={s.created_voters} fixed_votes={s.fixed_votes} "
            f"fixed_flags={s.fixed_flags} total_voters={s.final_total_voters} "
            f"voted_voters={s.final_voted_voters}"
        )
        for issue in s.errors:
            failed += 1
            print(f"[ERR] {s.ballot_id}: {issue.step}: {issue.detail}")
    if failed:
        return 1
    print(f"[OK] Repaired {len(results)} ballot(s)")
    return 0


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Rebuild voter flags and ballot counters from the votes table."
    )
    parser.add_argument("--ballot", help="Repair a single ballot id (default: all ballots).")
    parser.add_argument("--out", type=Path, help="Write the JSON stats to this file instead of stdout.")
    return parser.parse_args()


if __name__ == "__main__":
    args = _parse_args()
    raise SystemExit(repair_ballots(args.ballot, args.out))
