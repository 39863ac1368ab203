"""Register a demo daily report and run the pipeline on it.

Usage (from repository root):
    python backend/scripts/seed_demo.py

Usage (from backend directory):
    python scripts/seed_demo.py
    # or
    python -m scripts.seed_demo
"""

from __future__ import annotations

import argparse
import sys
from datetime import date, datetime, timezone
from pathlib import Path

# Make `sitelog` imports work whether the script is run from repo root or backend/.
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from sitelog.db.session import SessionLocal
from sitelog.services.pipeline import process_report, register_report
from sitelog.services.storage import get_default_blob_store


DEFAULT_PROJECT_ID = "riverside-001"

DEMO_TRANSCRIPT = """\
Daily report for Riverside, March second. Framing crew today was Owen Glassburn, Ken Lee and Wes Ortiz,
eight hours each on level two framing exterior walls. Wes stayed two hours of overtime to finish the headers.
ABC Supply Inc delivered the joist hangers at ten fifteen, about an hour late, received by Ken.
Concrete pump broke down, we lost two hours with a crew of four waiting on the replacement.
Everyone is healthy, no injuries.
"""


def parse_args() -> argparse.Namespace:
    """Parse script CLI arguments."""

    parser = argparse.ArgumentParser(description="Register a demo daily report and process it.")
    parser.add_argument(
        "--project-id",
        default=DEFAULT_PROJECT_ID,
        help=f"Project ID to seed (default: {DEFAULT_PROJECT_ID})",
    )
    parser.add_argument("--submitter-id", default="foreman-demo", help="Submitter id used in the report id.")
    return parser.parse_args()


def main() -> None:
    """Seed demo data and print a short summary."""

    args = parse_args()
    with SessionLocal() as db:
        report = register_report(
            db,
            project_id=args.project_id,
            project_name="Riverside",
            submitter_id=args.submitter_id,
            report_date=date(2026, 3, 2),
            transcript_text=DEMO_TRANSCRIPT,
            submitted_at=datetime(2026, 3, 2, 17, 30, tzinfo=timezone.utc),
            blob_store=get_default_blob_store(),
        )
        result = process_report(db, report.id)

    print("Seed complete")
    print(f"report_id={result.report_id}")
    print(f"status={result.status}")
    print(f"entities_created={result.entities_created}")
    print(f"entities_flagged={result.entities_flagged}")
    print(f"error_kind={result.error_kind}")
    print()
    print("Inspect:")
    print(f"  GET /reports/{result.report_id}")
    print(f"  GET /projects/{args.project_id}/rollups")
    print(f"  GET /review?project_id={args.project_id}")


if __name__ == "__main__":
    main()
