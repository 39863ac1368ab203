"""Run a real LLM extraction call against a short demo transcript.

Usage (from repo root):
    python backend/scripts/smoke_llm_extractor.py

Usage (from backend/):
    python scripts/smoke_llm_extractor.py
"""

from __future__ import annotations

import json
import sys
from datetime import date
from pathlib import Path

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from sitelog.extraction.types import ExtractionContext, ExtractionError
from sitelog.services.extraction import get_default_extractor

DEMO_TRANSCRIPT = (
    "Morning, this is Mike on the Riverside job. Framing crew was Owen glass burner, Ken Lee and Wes Ortiz, "
    "eight hours each on level two, Wes stayed two extra. ABC Supply Co dropped the joist hangers around ten, "
    "about an hour late. We lost two hours waiting on the pump truck with four guys standing around. "
    "Kenny tweaked his wrist but he's fine."
)


def main() -> None:
    extractor = get_default_extractor()
    result = extractor.extract(DEMO_TRANSCRIPT, ExtractionContext(project_name="Riverside", report_date=date(2026, 3, 2)))
    if isinstance(result, ExtractionError):
        print(json.dumps({"error": result.kind, "message": result.message, "retryable": result.retryable}, indent=2))
        raise SystemExit(1)
    print(json.dumps({**result.to_payload(), "rejectedItems": result.rejected_items}, indent=2))


if __name__ == "__main__":
    main()
