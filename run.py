"""Development server for the Vitrinex conversations API."""
from __future__ import annotations
import os
from vitrinex import create_app
from vitrinex.extensions import db

def main() -> None:
    flask_app = create_app()

    if os.environ.get("VITRINEX_CREATE_TABLES", "0") in {"1", "true", "True"}:
        with flask_app.app_context():
            db.create_all()

    # show which conversation endpoints are mounted
    print("\n=== VITRINEX ROUTES ===")
    for r in sorted(flask_app.url_map.iter_rules(), key=lambda x: x.rule):
        methods = ",".join(sorted(r.methods - {"HEAD", "OPTIONS"}))
        print(f"{methods:<10} {r.rule}")
    print(f"database: {flask_app.config['SQLALCHEMY_DATABASE_URI']}")
    print("=======================\n")

    debug_enabled = os.environ.get("FLASK_DEBUG", "0") in {"1", "true", "True"}
    flask_app.run(host="0.0.0.0", port=int(os.environ.get("PORT", 5000)), debug=debug_enabled)

if __name__ == "__main__":
    main()
