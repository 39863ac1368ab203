"""End-to-end orchestration tests with a stub completion client."""

from __future__ import annotations

import json
import tempfile
import threading
import unittest
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

from sqlalchemy import create_engine, delete, func, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from sitelog.config import Settings
from sitelog.extraction.llm_extractor import LLMExtractionError, LLMExtractor
from sitelog.models.base import Base
from sitelog.models.constraint_record import ConstraintRecord
from sitelog.models.entity_name_key import EntityNameKey
from sitelog.models.extraction_attempt import ExtractionAttempt
from sitelog.models.person import Person, PersonHistory
from sitelog.models.report import Report
from sitelog.models.rollups import LaborRollup
from sitelog.models.vendor import Vendor
from sitelog.models.work_log import WorkLogEntry
from sitelog.services.errors import InvalidTransitionError, ReportBusyError
from sitelog.services.pipeline import (
    archive_report,
    get_report,
    mark_report_failed,
    process_report,
    process_reports,
    register_report,
    reprocess_report,
)
from sitelog.services.storage import LocalBlobStore, summary_path

REPORT_DATE = date(2026, 10, 14)
TRANSCRIPT = (
    "Owen Glassburn had Team 1 on level three, ten hours. Maria Lopez was with him, eight hours. "
    "ABC Supply rebar showed up two hours late and the crew of four waited on it."
)
PAYLOAD = {
    "personnel": [
        {
            "fullName": "Owen Glassburn",
            "goByName": "Owen",
            "position": "Foreman",
            "teamAssignment": "Team 1",
            "hoursWorked": 8,
            "overtimeHours": 2,
            "extractedFromText": "Owen Glassburn had Team 1 on level three, ten hours",
        },
        {
            "fullName": "Maria Lopez",
            "position": "Journeyman",
            "teamAssignment": "Team 1",
            "hoursWorked": 8,
            "extractedFromText": "Maria Lopez was with him, eight hours",
        },
    ],
    "workLogs": [
        {
            "teamId": "Team 1",
            "level": "Level 3",
            "taskDescription": "Formed deck edge",
            "personnelAssigned": ["Owen", "Maria Lopez"],
            "hoursWorked": 18,
            "extractedFromText": "Team 1 on level three",
        }
    ],
    "constraints": [
        {
            "title": "Rebar delivery late",
            "category": "Materials",
            "severity": "major",
            "status": "resolved",
            "vendorName": "ABC Supply Inc",
            "hoursLost": 2,
            "crewSize": 4,
            "extractedFromText": "rebar showed up two hours late and the crew of four waited on it",
        }
    ],
    "vendors": [
        {
            "companyName": "ABC Supply Co.",
            "vendorType": "supplier",
            "materialsDelivered": "rebar",
            "deliveryStatus": "late",
            "extractedFromText": "ABC Supply rebar showed up two hours late",
        }
    ],
    "timeSummary": {"totalPersonnelCount": 2, "totalRegularHours": 16, "totalOvertimeHours": 2},
    "extractionConfidence": 0.92,
}


class _StubClient:
    """Replays scripted responses; the last one repeats."""

    model = "stub-model"

    def __init__(self, *responses: str | LLMExtractionError) -> None:
        self.responses = list(responses) or ["```json\n" + json.dumps(PAYLOAD) + "\n```"]
        self.calls = 0

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        _ = system_prompt, user_prompt
        self.calls += 1
        response = self.responses[min(self.calls, len(self.responses)) - 1]
        if isinstance(response, LLMExtractionError):
            raise response
        return response


class _CancellingClient(_StubClient):
    """Has an operator cancel the report from another session while the call is in flight."""

    def __init__(self, session_factory: sessionmaker, report_id: str, *responses: str) -> None:
        super().__init__(*responses)
        self.session_factory = session_factory
        self.report_id = report_id

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        with self.session_factory() as operator_db:
            mark_report_failed(operator_db, self.report_id, "operator stopped the run")
        return super().complete(system_prompt, user_prompt)


class PipelineTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.engine = create_engine(
            "sqlite+pysqlite:///:memory:",
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        cls.SessionLocal = sessionmaker(bind=cls.engine, autoflush=False, autocommit=False, future=True)
        Base.metadata.create_all(cls.engine)
        cls.settings = Settings(
            retry_max_attempts=3,
            retry_base_delay_seconds=0.5,
            retry_max_delay_seconds=8.0,
            batch_delay_seconds=0.0,
            claim_lease_seconds=600,
            expand_team_rosters=True,
            blended_labor_rate=50.0,
        )

    @classmethod
    def tearDownClass(cls) -> None:
        Base.metadata.drop_all(cls.engine)
        cls.engine.dispose()

    def setUp(self) -> None:
        self.db: Session = self.SessionLocal()
        self._reset_tables()
        self._tmp = tempfile.TemporaryDirectory()
        self.store = LocalBlobStore(root=Path(self._tmp.name))
        self.sleeps: list[float] = []

    def tearDown(self) -> None:
        self.db.close()
        self._tmp.cleanup()

    def test_process_report_publishes_resolved_records(self) -> None:
        client = _StubClient()
        report = self._register("sup_1")

        result = self._process(report.id, client)

        self.assertEqual(result.status, "published")
        self.assertEqual(result.entities_created, 3)
        self.assertEqual(result.records_flagged, 0)
        self.assertTrue(result.external_call)
        self.assertEqual(client.calls, 1)
        self.assertEqual(self._count(Person), 2)
        self.assertEqual(self._count(Vendor), 1)

        report = get_report(self.db, report.id)
        self.assertEqual(report.extraction_version, "daily_report.v1")
        self.assertIsNone(report.claim_token)
        work_log = self.db.scalar(select(WorkLogEntry))
        self.assertEqual(len(work_log.personnel_ids_json), 2)
        constraint = self.db.scalar(select(ConstraintRecord))
        self.assertEqual((constraint.category, constraint.severity), ("material", "high"))
        self.assertEqual(constraint.cost_impact, 400.0)
        self.assertIsNotNone(constraint.vendor_id)
        total = self.db.scalar(
            select(LaborRollup).where(LaborRollup.person_id.is_(None), LaborRollup.window_key == "all")
        )
        self.assertEqual(total.total_hours, 18.0)
        self.assertTrue(self.store.exists(summary_path("proj_harbor", REPORT_DATE, report.id)))

    def test_process_report_is_idempotent(self) -> None:
        client = _StubClient()
        report = self._register("sup_1")

        first = self._process(report.id, client)
        second = self._process(report.id, client)

        self.assertEqual((first.status, second.status), ("published", "published"))
        self.assertEqual(client.calls, 1)
        self.assertEqual(self._count(PersonHistory), 2)
        self.assertEqual(self._count(ExtractionAttempt), 1)

    def test_identical_transcript_reuses_cached_extraction(self) -> None:
        client = _StubClient()
        first = self._register("sup_1")
        second = self._register("sup_2")

        self._process(first.id, client)
        result = self._process(second.id, client)

        self.assertEqual(client.calls, 1)
        self.assertTrue(result.cache_hit)
        self.assertFalse(result.external_call)
        self.assertEqual(result.entities_created, 0)
        self.assertEqual(self._count(Person), 2)
        owen = self.db.scalar(select(Person).where(Person.name_key == "owen glassburn"))
        self.assertEqual(owen.total_reports_count, 2)

    def test_malformed_response_fails_without_entity_writes(self) -> None:
        client = _StubClient('{"personnel": [{"fullName": "Owen Glassburn", "extractedFromText": "Owen')
        report = self._register("sup_1")

        result = self._process(report.id, client)
        again = self._process(report.id, client)

        self.assertEqual(result.status, "failed")
        self.assertEqual(result.error_kind, "malformed_response")
        self.assertFalse(result.retryable)
        self.assertEqual(again.status, "failed")
        self.assertEqual(client.calls, 1)
        self.assertEqual(self.sleeps, [])
        self.assertEqual(self._count(Person), 0)
        self.assertEqual(self._count(PersonHistory), 0)
        attempt = self.db.scalar(select(ExtractionAttempt))
        self.assertFalse(attempt.validation_passed)
        self.assertEqual(attempt.error_kind, "malformed_response")
        self.assertIn("Owen", attempt.raw_response)

    def test_retryable_provider_error_is_retried_with_backoff(self) -> None:
        client = _StubClient(
            LLMExtractionError("provider returned 503", kind="provider_error", retryable=True),
            "```json\n" + json.dumps(PAYLOAD) + "\n```",
        )
        report = self._register("sup_1")

        result = self._process(report.id, client)

        self.assertEqual(result.status, "published")
        self.assertEqual(client.calls, 2)
        self.assertEqual(self.sleeps, [0.5])

    def test_exhausted_retries_leave_report_resumable(self) -> None:
        failing = _StubClient(LLMExtractionError("timed out", kind="timeout", retryable=True))
        report = self._register("sup_1")

        failed = self._process(report.id, failing)

        self.assertEqual(failed.status, "failed")
        self.assertEqual(failed.error_kind, "timeout")
        self.assertTrue(failed.retryable)
        self.assertEqual(failing.calls, 3)
        self.assertEqual(self.sleeps, [0.5, 1.0])

        resumed = self._process(report.id, _StubClient())

        self.assertEqual(resumed.status, "published")
        self.assertIsNone(get_report(self.db, report.id).failure_kind)

    def test_reprocess_supersedes_records_and_bypasses_cache(self) -> None:
        client = _StubClient()
        report = self._register("sup_1")
        self._process(report.id, client)

        result = reprocess_report(
            self.db,
            report.id,
            "corrected transcript",
            extractor=LLMExtractor(client),
            blob_store=self.store,
            settings=self.settings,
            sleep=self.sleeps.append,
        )

        self.assertEqual(result.status, "published")
        self.assertEqual(client.calls, 2)
        self.assertEqual(self._count(PersonHistory), 4)
        active = self.db.scalar(
            select(func.count()).select_from(PersonHistory).where(PersonHistory.superseded.is_(False))
        )
        self.assertEqual(active, 2)
        self.assertEqual(self._count(Person), 2)
        owen = self.db.scalar(select(Person).where(Person.name_key == "owen glassburn"))
        self.assertEqual(owen.total_reports_count, 1)
        attempts = list(self.db.scalars(select(ExtractionAttempt).order_by(ExtractionAttempt.id)))
        self.assertEqual([attempt.superseded for attempt in attempts], [True, False])

        with self.assertRaises(ValueError):
            reprocess_report(self.db, report.id, "  ", extractor=LLMExtractor(client), settings=self.settings)

    def test_archived_report_is_terminal(self) -> None:
        client = _StubClient()
        report = self._register("sup_1")
        self._process(report.id, client)

        archived = archive_report(self.db, report.id)
        settled = self._process(report.id, client)

        self.assertEqual(archived.status, "archived")
        self.assertEqual(settled.status, "archived")
        with self.assertRaises(InvalidTransitionError):
            reprocess_report(self.db, report.id, "late correction", extractor=LLMExtractor(client), settings=self.settings)
        self.assertEqual(client.calls, 1)

    def test_missing_transcript_blob_fails_permanently(self) -> None:
        report = register_report(
            self.db,
            project_id="proj_harbor",
            project_name="Harbor Point Tower",
            submitter_id="sup_1",
            report_date=REPORT_DATE,
            transcript_blob_path="proj_harbor/missing/transcript.txt",
            submitted_at=datetime(2026, 10, 14, 22, 0, tzinfo=timezone.utc),
        )

        result = self._process(report.id, _StubClient())

        self.assertEqual(result.status, "failed")
        self.assertEqual(result.error_kind, "transcript_missing")
        self.assertFalse(result.retryable)

    def test_transcript_is_loaded_from_blob_store(self) -> None:
        self.store.write_text("uploads/sup_1.txt", TRANSCRIPT)
        report = register_report(
            self.db,
            project_id="proj_harbor",
            project_name="Harbor Point Tower",
            submitter_id="sup_1",
            report_date=REPORT_DATE,
            transcript_blob_path="uploads/sup_1.txt",
            submitted_at=datetime(2026, 10, 14, 22, 0, tzinfo=timezone.utc),
        )

        result = self._process(report.id, _StubClient())

        self.assertEqual(result.status, "published")
        self.assertEqual(get_report(self.db, report.id).raw_transcript_text, TRANSCRIPT)

    def test_cancelled_report_can_be_processed_later(self) -> None:
        report = self._register("sup_1")

        cancelled = mark_report_failed(self.db, report.id, "operator paused project")
        cancelled_state = (cancelled.status, cancelled.failure_kind)
        result = self._process(report.id, _StubClient())

        self.assertEqual(cancelled_state, ("failed", "cancelled"))
        self.assertEqual(result.status, "published")

    def test_cancellation_during_extraction_stops_the_run(self) -> None:
        report = self._register("sup_1")
        client = _CancellingClient(self.SessionLocal, report.id)

        result = self._process(report.id, client)

        self.assertEqual(client.calls, 1)
        self.assertEqual((result.status, result.error_kind), ("failed", "cancelled"))
        stored = get_report(self.db, report.id)
        self.assertEqual((stored.status, stored.failure_kind), ("failed", "cancelled"))
        self.assertIsNone(stored.claim_token)
        self.assertEqual(self._count(Person), 0)
        self.assertEqual(self._count(WorkLogEntry), 0)

    def test_cancellation_keeps_operator_reason_over_extraction_error(self) -> None:
        report = self._register("sup_1")
        client = _CancellingClient(self.SessionLocal, report.id, "not json at all")

        result = self._process(report.id, client)

        self.assertEqual(result.error_kind, "cancelled")
        stored = get_report(self.db, report.id)
        self.assertEqual((stored.failure_kind, stored.failure_reason), ("cancelled", "operator stopped the run"))
        self.assertTrue(stored.retryable)

    def test_unexpired_claim_blocks_second_worker(self) -> None:
        report = self._register("sup_1")
        row = self.db.get(Report, report.id)
        row.claim_token = "other-worker"
        row.claimed_at = datetime.now(timezone.utc)
        self.db.commit()

        with self.assertRaises(ReportBusyError):
            self._process(report.id, _StubClient())

        row = self.db.get(Report, report.id)
        row.claimed_at = datetime.now(timezone.utc) - timedelta(hours=2)
        self.db.commit()

        self.assertEqual(self._process(report.id, _StubClient()).status, "published")

    def test_batch_continues_past_failing_report(self) -> None:
        client = _StubClient()
        report = self._register("sup_1")
        self.db.commit()

        results = process_reports(
            ["rpt_does_not_exist", report.id],
            delay_seconds=2.0,
            session_factory=self.SessionLocal,
            extractor=LLMExtractor(client),
            blob_store=self.store,
            settings=self.settings,
            sleep=self.sleeps.append,
        )

        self.assertEqual([item.report_id for item in results], ["rpt_does_not_exist", report.id])
        self.assertIn("ReportNotFoundError", results[0].error)
        self.assertEqual(results[1].result.status, "published")
        self.assertEqual(self.sleeps, [2.0])
        self.assertEqual(get_report(self.db, report.id).status, "published")

    def _register(self, submitter_id: str) -> Report:
        return register_report(
            self.db,
            project_id="proj_harbor",
            project_name="Harbor Point Tower",
            submitter_id=submitter_id,
            report_date=REPORT_DATE,
            transcript_text=TRANSCRIPT,
            submitted_at=datetime(2026, 10, 14, 22, 0, tzinfo=timezone.utc),
            blob_store=self.store,
        )

    def _process(self, report_id: str, client: _StubClient):  # noqa: ANN202
        return process_report(
            self.db,
            report_id,
            extractor=LLMExtractor(client),
            blob_store=self.store,
            settings=self.settings,
            sleep=self.sleeps.append,
        )

    def _count(self, model) -> int:  # noqa: ANN001
        return int(self.db.scalar(select(func.count()).select_from(model)) or 0)

    def _reset_tables(self) -> None:
        for table in reversed(Base.metadata.sorted_tables):
            self.db.execute(delete(table))
        self.db.commit()


class _RendezvousClient(_StubClient):
    """Holds the first call until every worker has reached the completion call."""

    def __init__(self, barrier: threading.Barrier, payload: dict) -> None:
        super().__init__(json.dumps(payload))
        self.barrier = barrier

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        if not self.calls:
            self.barrier.wait(timeout=10)
        return super().complete(system_prompt, user_prompt)


class ConcurrentProcessingTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls._tmp = tempfile.TemporaryDirectory()
        cls.engine = create_engine(
            f"sqlite+pysqlite:///{Path(cls._tmp.name) / 'sitelog.db'}",
            future=True,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        cls.SessionLocal = sessionmaker(bind=cls.engine, autoflush=False, autocommit=False, future=True)
        Base.metadata.create_all(cls.engine)
        cls.settings = Settings(
            retry_max_attempts=6,
            retry_base_delay_seconds=0.05,
            retry_max_delay_seconds=0.5,
            claim_lease_seconds=600,
        )

    @classmethod
    def tearDownClass(cls) -> None:
        Base.metadata.drop_all(cls.engine)
        cls.engine.dispose()
        cls._tmp.cleanup()

    def setUp(self) -> None:
        self.db: Session = self.SessionLocal()
        for table in reversed(Base.metadata.sorted_tables):
            self.db.execute(delete(table))
        self.db.commit()
        self.store = LocalBlobStore(root=Path(self._tmp.name) / "blobs")

    def tearDown(self) -> None:
        self.db.close()

    def test_two_workers_introducing_same_person_create_one_entity(self) -> None:
        payload = {
            "personnel": [
                {
                    "fullName": "Dana Whitfield",
                    "position": "Operator",
                    "hoursWorked": 8,
                    "extractedFromText": "Dana Whitfield ran the lift, eight hours",
                }
            ],
            "workLogs": [],
            "constraints": [],
            "vendors": [],
        }
        report_ids = [
            register_report(
                self.db,
                project_id="proj_harbor",
                project_name="Harbor Point Tower",
                submitter_id=submitter_id,
                report_date=REPORT_DATE,
                transcript_text=f"{submitter_id}: Dana Whitfield ran the lift, eight hours.",
                submitted_at=datetime(2026, 10, 14, 22, 0, tzinfo=timezone.utc),
                blob_store=self.store,
            ).id
            for submitter_id in ("sup_north", "sup_south")
        ]
        barrier = threading.Barrier(len(report_ids))
        statuses: dict[str, str] = {}
        errors: list[str] = []

        def _worker(report_id: str) -> None:
            with self.SessionLocal() as worker_db:
                try:
                    result = process_report(
                        worker_db,
                        report_id,
                        extractor=LLMExtractor(_RendezvousClient(barrier, payload)),
                        blob_store=self.store,
                        settings=self.settings,
                    )
                    statuses[report_id] = result.status
                except Exception as exc:  # noqa: BLE001
                    errors.append(f"{report_id}: {type(exc).__name__}: {exc}")

        threads = [threading.Thread(target=_worker, args=(report_id,)) for report_id in report_ids]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)

        self.assertEqual(errors, [])
        self.assertEqual(statuses, {report_id: "published" for report_id in report_ids})
        self.assertEqual(self.db.scalar(select(func.count()).select_from(Person)), 1)
        name_keys = list(self.db.scalars(select(EntityNameKey).where(EntityNameKey.entity_kind == "person")))
        self.assertEqual([key.name_key for key in name_keys], ["dana whitfield"])
        owners = set(self.db.scalars(select(PersonHistory.person_id)))
        self.assertEqual(owners, {name_keys[0].entity_id})
        self.assertEqual(self.db.get(Person, name_keys[0].entity_id).total_reports_count, 2)


if __name__ == "__main__":
    unittest.main()
