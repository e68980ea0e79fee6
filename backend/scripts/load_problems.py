"""
Load problem definitions into the judge database.
Run from backend/: python scripts/load_problems.py problems/*.json

Each file holds one problem object (or a list of them) in the same shape
as POST /api/v1/problems. Problems that already exist are skipped.
"""

import json
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from pydantic import ValidationError as SchemaError

from codejudge.config import settings
from codejudge.core.database import SessionLocal, init_db
from codejudge.core.exceptions import ValidationError
from codejudge.schemas.problem import ProblemCreate
from codejudge.services.problem_store import ProblemStore


def _definitions(path: Path):
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return data if isinstance(data, list) else [data]


def main(paths):
    if not paths:
        print("Usage: python scripts/load_problems.py FILE [FILE ...]")
        sys.exit(2)

    init_db()
    store = ProblemStore(placeholder=settings.SUBMISSION_PLACEHOLDER)
    loaded = skipped = 0
    db = SessionLocal()
    try:
        for raw_path in paths:
            path = Path(raw_path)
            for definition in _definitions(path):
                try:
                    problem = store.create_problem(db, ProblemCreate(**definition))
                except SchemaError as e:
                    print(f"{path}: invalid problem definition\n{e}")
                    sys.exit(1)
                except ValidationError as e:
                    print(f"{path}: {e.message}, skipping")
                    skipped += 1
                    continue
                print(f"Loaded {problem.ref} ({len(problem.test_cases)} test cases)")
                loaded += 1
    finally:
        db.close()

    print(f"\nDone: {loaded} loaded, {skipped} skipped")


if __name__ == "__main__":
    main(sys.argv[1:])
