#!/usr/bin/env python3
"""Create the marketplace and conversation tables (users, stores, orders, bookings, messages, summaries)."""
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from vitrinex import create_app
from vitrinex.extensions import db


def init_database():
    app = create_app()
    with app.app_context():
        db.create_all()
        tables = ", ".join(sorted(db.metadata.tables))
        print(f"✅ Vitrinex tables ready at {app.config['SQLALCHEMY_DATABASE_URI']}: {tables}")
        print("Run scripts/rebuild_conversation_index.py after importing legacy messages.")


if __name__ == "__main__":
    init_database()
