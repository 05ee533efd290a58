"""Print a bearer token for a user, for calling the API during local development."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Ensure the project root is on sys.path so ``vitrinex`` can be imported when the script is executed directly.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from vitrinex import create_app
from vitrinex.auth import build_token
from vitrinex.models import User


def issue_token(email: str) -> str | None:
    app = create_app()

    with app.app_context():
        user = User.query.filter_by(email=email.strip().lower()).first()
        if user is None:
            print(f"Error: no user with email '{email}'")
            return None
        return build_token({"user_id": user.user_id})


def main() -> None:
    parser = argparse.ArgumentParser(description="Issue a bearer token for a Vitrinex user.")
    parser.add_argument("email", help="Email of the user to issue the token for")
    args = parser.parse_args()

    token = issue_token(args.email)
    if token is None:
        sys.exit(1)
    print(token)


if __name__ == "__main__":
    main()
