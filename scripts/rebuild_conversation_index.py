"""Recompute every conversation summary from the message log.

Repairs unread counters written before the summary table existed and reports
any conversation whose stored counters had drifted.
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from sqlalchemy.exc import SQLAlchemyError

from vitrinex import create_app
from vitrinex.conversation_index import rebuild_all
from vitrinex.extensions import db


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--dry-run", action="store_true", help="Report drift without saving it")
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        try:
            changed = rebuild_all()
            if args.dry_run:
                db.session.rollback()
            else:
                db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            print(f"Error rebuilding conversation index: {exc}")
            sys.exit(1)

    verb = "would be updated" if args.dry_run else "updated"
    print(f"{len(changed)} conversation(s) {verb}")
    for conversation_id in changed:
        print(f"  - {conversation_id}")


if __name__ == "__main__":
    main()
