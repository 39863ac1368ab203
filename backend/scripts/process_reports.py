"""Process pending reports in a throttled batch.

Usage (from repository root):
    python backend/scripts/process_reports.py --status pending_analysis
    python backend/scripts/process_reports.py rpt_20260301_foreman-12_1772380800

Usage (from backend directory):
    python scripts/process_reports.py --recompute-all
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Make `sitelog` imports work whether the script is run from repo root or backend/.
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from sitelog.db.session import SessionLocal
from sitelog.services.aggregation import recompute_all_rollups
from sitelog.services.pipeline import list_reports, process_reports
from sitelog.services.review import auto_confirm_stale_reviews


def parse_args() -> argparse.Namespace:
    """Parse script CLI arguments."""

    parser = argparse.ArgumentParser(description="Run the daily report pipeline over a batch of reports.")
    parser.add_argument("report_ids", nargs="*", help="Explicit report ids to process.")
    parser.add_argument(
        "--status",
        choices=["pending_analysis", "analyzed", "failed"],
        help="Process every report currently in this status (in addition to explicit ids).",
    )
    parser.add_argument("--project-id", help="Restrict --status selection to one project.")
    parser.add_argument("--limit", type=int, default=100, help="Maximum reports selected by --status.")
    parser.add_argument("--delay", type=float, default=None, help="Seconds between reports (default: settings).")
    parser.add_argument(
        "--recompute-all",
        action="store_true",
        help="Rebuild every project rollup from history after processing.",
    )
    parser.add_argument(
        "--auto-confirm",
        action="store_true",
        help="Apply the stale-review auto-confirm policy after processing.",
    )
    return parser.parse_args()


def main() -> None:
    """Process the selected reports and print one line per outcome."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    args = parse_args()
    report_ids: list[str] = list(args.report_ids)
    if args.status:
        with SessionLocal() as db:
            selected = list_reports(db, project_id=args.project_id, status=args.status, limit=args.limit)
        report_ids.extend(report.id for report in selected if report.id not in report_ids)

    results = process_reports(report_ids, delay_seconds=args.delay) if report_ids else []
    for item in results:
        if item.error:
            print(f"{item.report_id} error={item.error}")
        elif item.result is not None:
            print(
                f"{item.report_id} status={item.result.status} "
                f"created={item.result.entities_created} flagged={item.result.entities_flagged} "
                f"error_kind={item.result.error_kind}"
            )

    if args.auto_confirm:
        with SessionLocal() as db:
            print(f"auto_confirmed={auto_confirm_stale_reviews(db)}")
    if args.recompute_all:
        with SessionLocal() as db:
            summaries = recompute_all_rollups(db)
            db.commit()
        print(f"rollup_windows_recomputed={len(summaries)}")


if __name__ == "__main__":
    main()
