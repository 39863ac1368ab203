"""Tests for work log and constraint recorders."""

from __future__ import annotations

import unittest
from datetime import date

from sqlalchemy import create_engine, delete, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from sitelog.config import Settings
from sitelog.entity_resolution import EntityResolver, ResolutionContext
from sitelog.extraction.types import ExtractedConstraint, ExtractedPerson, ExtractedVendor, ExtractedWorkLog
from sitelog.models.base import Base
from sitelog.models.extraction_attempt import ExtractionAttempt
from sitelog.models.report import Report
from sitelog.models.team_assignment import TeamAssignment
from sitelog.services.recorders import (
    CONSTRAINT_CATEGORIES,
    coerce_enum,
    constraint_cost,
    record_constraints,
    record_work_logs,
    sync_team_assignments,
)


class CoercionTests(unittest.TestCase):
    def test_exact_and_aliased_values_are_not_flagged(self) -> None:
        exact = coerce_enum("Safety", CONSTRAINT_CATEGORIES, "other")
        aliased = coerce_enum("Materials", CONSTRAINT_CATEGORIES, "other", {"materials": "material"})

        self.assertEqual((exact.value, exact.coerced), ("safety", False))
        self.assertEqual((aliased.value, aliased.coerced), ("material", False))

    def test_unknown_value_falls_back_and_is_flagged(self) -> None:
        coerced = coerce_enum("plumbing", CONSTRAINT_CATEGORIES, "other")

        self.assertEqual(coerced.value, "other")
        self.assertTrue(coerced.coerced)
        self.assertEqual(coerced.original, "plumbing")

    def test_missing_value_takes_default_quietly(self) -> None:
        coerced = coerce_enum(None, CONSTRAINT_CATEGORIES, "other")

        self.assertEqual(coerced.value, "other")
        self.assertFalse(coerced.coerced)

    def test_constraint_cost_prefers_reported_amount(self) -> None:
        settings = Settings(blended_labor_rate=50.0)

        reported = ExtractedConstraint(title="t", extracted_from_text="q", cost_impact=1200.0, hours_lost=3)
        estimated = ExtractedConstraint(title="t", extracted_from_text="q", hours_lost=2, crew_size=4)
        nothing = ExtractedConstraint(title="t", extracted_from_text="q", cost_impact=0.0)

        self.assertEqual(constraint_cost(reported, settings), (1200.0, "reported"))
        self.assertEqual(constraint_cost(estimated, settings), (400.0, "estimated"))
        self.assertEqual(constraint_cost(nothing, settings), (0.0, "none"))


class RecorderIntegrationTests(unittest.TestCase):
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
        cls.settings = Settings(expand_team_rosters=True, blended_labor_rate=50.0)

    @classmethod
    def tearDownClass(cls) -> None:
        Base.metadata.drop_all(cls.engine)
        cls.engine.dispose()

    def setUp(self) -> None:
        self.db: Session = self.SessionLocal()
        self._reset_tables()
        self.resolver = EntityResolver(self.settings)

    def tearDown(self) -> None:
        self.db.close()

    def test_work_log_expands_known_team_roster(self) -> None:
        first = self._seed_report("rpt_1", date(2026, 10, 12))
        crew = [
            ExtractedPerson(full_name="Owen Glassburn", extracted_from_text="Owen ran Team 1", team_assignment="Team 1"),
            ExtractedPerson(full_name="Maria Lopez", extracted_from_text="Maria on Team 1", team_assignment="Team 1"),
        ]
        resolutions = [(person, self.resolver.resolve_person(self.db, person, first)) for person in crew]
        self.assertEqual(sync_team_assignments(self.db, first, resolutions), 2)

        second = self._seed_report("rpt_2", date(2026, 10, 13))
        logs, summary = record_work_logs(
            self.db,
            self.resolver,
            second,
            [
                ExtractedWorkLog(
                    task_description="Stripped forms",
                    extracted_from_text="Team 1 stripped forms on three",
                    team_id="Team 1",
                    level="Level 3",
                    personnel_assigned=["Owen Glassburn"],
                    hours_worked=8,
                )
            ],
            {},
            settings=self.settings,
        )
        self.db.commit()

        maria_id = resolutions[1][1].outcome.entity_id
        owen_id = resolutions[0][1].outcome.entity_id
        self.assertEqual(summary.work_logs, 1)
        self.assertEqual(logs[0].personnel_ids_json, [owen_id, maria_id])
        self.assertEqual(logs[0].personnel_count, 2)
        self.assertTrue(logs[0].roster_expanded)
        self.assertFalse(logs[0].needs_review)

    def test_unresolved_personnel_flags_work_log(self) -> None:
        ctx = self._seed_report("rpt_1", date(2026, 10, 12))
        logs, summary = record_work_logs(
            self.db,
            self.resolver,
            ctx,
            [
                ExtractedWorkLog(
                    task_description="Set anchor bolts",
                    extracted_from_text="the new guy set anchor bolts",
                    team_id="Team 2",
                    personnel_assigned=["Nobody Known"],
                    personnel_count=1,
                )
            ],
            {},
            settings=self.settings,
        )
        self.db.commit()

        self.assertEqual(logs[0].personnel_ids_json, [])
        self.assertEqual(logs[0].unresolved_mentions, 1)
        self.assertTrue(logs[0].needs_review)
        self.assertEqual(logs[0].personnel_count, 1)
        self.assertEqual(summary.unresolved_mentions, 1)
        self.assertEqual(summary.flagged_records, 1)

    def test_same_team_and_level_collapse_to_one_log(self) -> None:
        ctx = self._seed_report("rpt_1", date(2026, 10, 12))
        logs, _ = record_work_logs(
            self.db,
            self.resolver,
            ctx,
            [
                ExtractedWorkLog(task_description="Framing", extracted_from_text="a", team_id="Team 1", level="L2", hours_worked=4),
                ExtractedWorkLog(task_description="Blocking", extracted_from_text="b", team_id="team 1", level="l2", hours_worked=3),
            ],
            {},
            settings=self.settings,
        )

        self.assertEqual(len(logs), 1)
        self.assertEqual(logs[0].description, "Framing; Blocking")
        self.assertEqual(logs[0].hours_worked, 7.0)

    def test_constraints_coerce_enums_and_link_vendor(self) -> None:
        ctx = self._seed_report("rpt_1", date(2026, 10, 12))
        vendor = self.resolver.resolve_vendor(
            self.db,
            ExtractedVendor(company_name="ABC Supply Co.", extracted_from_text="ABC dropped rebar"),
            ctx,
        )
        records, summary = record_constraints(
            self.db,
            self.resolver,
            ctx,
            [
                ExtractedConstraint(
                    title="Rebar late",
                    extracted_from_text="ABC Supply rebar was two hours late",
                    category="Materials",
                    severity="major",
                    status="ongoing",
                    vendor_name="ABC Supply Inc",
                    hours_lost=2,
                    crew_size=4,
                ),
                ExtractedConstraint(
                    title="Leak at riser",
                    extracted_from_text="plumber found a leak",
                    category="plumbing",
                    vendor_name="Riser Plumbing",
                ),
            ],
            settings=self.settings,
        )
        self.db.commit()

        late, leak = records
        self.assertEqual((late.category, late.severity, late.status), ("material", "high", "in_progress"))
        self.assertEqual(late.vendor_id, vendor.outcome.entity_id)
        self.assertEqual((late.cost_impact, late.cost_source), (400.0, "estimated"))
        self.assertFalse(late.needs_review)
        self.assertEqual((leak.category, leak.severity, leak.status), ("other", "medium", "open"))
        self.assertIsNone(leak.vendor_id)
        self.assertTrue(leak.needs_review)
        self.assertEqual(leak.review_reasons_json, ["category:plumbing", "vendor_unresolved:Riser Plumbing"])
        self.assertEqual(summary.flagged_records, 1)

    def test_review_band_person_is_not_added_to_roster(self) -> None:
        first = self._seed_report("rpt_1", date(2026, 10, 12))
        second = self._seed_report("rpt_2", date(2026, 10, 13))
        known = ExtractedPerson(full_name="Mike Johnson", extracted_from_text="Mike on Team 3", team_assignment="Team 3")
        sync_team_assignments(self.db, first, [(known, self.resolver.resolve_person(self.db, known, first))])
        maybe = ExtractedPerson(full_name="Mike Jackson", extracted_from_text="Mike J on Team 4", team_assignment="Team 4")
        touched = sync_team_assignments(self.db, second, [(maybe, self.resolver.resolve_person(self.db, maybe, second))])
        self.db.commit()

        self.assertEqual(touched, 0)
        teams = list(self.db.scalars(select(TeamAssignment.team_key)))
        self.assertEqual(teams, ["team 3"])

    def _seed_report(self, report_id: str, report_date: date) -> ResolutionContext:
        self.db.add(
            Report(
                id=report_id,
                project_id="proj_harbor",
                project_name="Harbor Point Tower",
                submitter_id="sup_1",
                report_date=report_date,
                raw_transcript_text="transcript",
                status="pending_analysis",
            )
        )
        attempt = ExtractionAttempt(
            report_id=report_id,
            model_name="stub-model",
            prompt_version="daily_report.v1",
            input_hash=f"hash-{report_id}",
            structured_payload_json={},
            validation_passed=True,
        )
        self.db.add(attempt)
        self.db.flush()
        return ResolutionContext(
            report_id=report_id,
            project_id="proj_harbor",
            report_date=report_date,
            extraction_attempt_id=attempt.id,
        )

    def _reset_tables(self) -> None:
        for table in reversed(Base.metadata.sorted_tables):
            self.db.execute(delete(table))
        self.db.commit()


if __name__ == "__main__":
    unittest.main()
