"""Tests for confirm, reject and mergeInto review decisions."""

from __future__ import annotations

import unittest
from datetime import date

from sqlalchemy import create_engine, delete, func, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from sitelog.config import Settings
from sitelog.entity_resolution import EntityResolver, ResolutionContext
from sitelog.extraction.types import ExtractedPerson, ExtractedVendor
from sitelog.models.base import Base
from sitelog.models.entity_name_key import EntityNameKey
from sitelog.models.extraction_attempt import ExtractionAttempt
from sitelog.models.person import Person, PersonHistory
from sitelog.models.report import Report
from sitelog.models.review_decision import ReviewDecision
from sitelog.models.rollups import LaborRollup
from sitelog.models.vendor import Vendor
from sitelog.services.errors import ReviewDecisionError
from sitelog.services.review import auto_confirm_stale_reviews, list_review_queue, resolve_pending_review


class ReviewTests(unittest.TestCase):
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
        cls.settings = Settings(auto_match_threshold=95.0, review_threshold=80.0, review_auto_confirm_days=14)

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

    def test_queue_lists_pending_match(self) -> None:
        known_id, flagged = self._seed_review_band()

        queue = list_review_queue(self.db, project_id="proj_harbor")

        self.assertEqual(len(queue.entities), 1)
        item = queue.entities[0]
        self.assertEqual((item.kind, item.entity_id, item.observed_name), ("person", known_id, "Mike Jackson"))
        self.assertEqual(item.record_id, flagged.id)
        self.assertEqual(list_review_queue(self.db, project_id="proj_other").entities, [])

    def test_confirm_keeps_match_and_learns_spelling(self) -> None:
        known_id, flagged = self._seed_review_band()

        outcome = resolve_pending_review(self.db, known_id, "confirm", reviewer="pm_1", settings=self.settings)

        self.assertEqual(outcome.rows_updated, 1)
        row = self.db.get(PersonHistory, flagged.id)
        self.assertEqual(row.review_state, "confirmed")
        self.assertFalse(row.needs_review)
        person = self.db.get(Person, known_id)
        self.assertIn("Mike Jackson", person.name_variants_json)
        self.assertEqual(person.total_reports_count, 2)
        self.assertEqual(list_review_queue(self.db).entities, [])

        later = self._seed_report("rpt_3", date(2026, 10, 14))
        again = self.resolver.resolve(self.db, "person", "Mike Jackson", later)
        self.assertEqual((again.match_type, again.entity_id), ("exact", known_id))

    def test_reject_splits_row_onto_new_entity(self) -> None:
        known_id, flagged = self._seed_review_band()

        outcome = resolve_pending_review(self.db, known_id, "reject", settings=self.settings)

        self.assertEqual(len(outcome.created_entity_ids), 1)
        new_id = outcome.created_entity_ids[0]
        self.assertNotEqual(new_id, known_id)
        old_row = self.db.get(PersonHistory, flagged.id)
        self.assertEqual(old_row.review_state, "rejected")
        self.assertTrue(old_row.superseded)
        replacement = self.db.scalar(select(PersonHistory).where(PersonHistory.person_id == new_id))
        self.assertEqual((replacement.report_id, replacement.review_state), ("rpt_2", "split"))
        self.assertFalse(replacement.superseded)
        self.assertEqual(self.db.get(Person, known_id).total_reports_count, 1)
        self.assertEqual(self.db.get(Person, new_id).canonical_name, "Mike Jackson")
        labor_people = set(self.db.scalars(select(LaborRollup.person_id).where(LaborRollup.window_key == "all")))
        self.assertEqual(labor_people, {known_id, new_id, None})

    def test_reject_refuses_spelling_already_keyed_to_same_entity(self) -> None:
        known_id, flagged = self._seed_review_band()
        self.db.add(EntityNameKey(entity_kind="person", name_key="mike jackson", entity_id=known_id))
        self.db.commit()

        with self.assertRaises(ReviewDecisionError):
            resolve_pending_review(self.db, known_id, "reject", settings=self.settings)

        row = self.db.get(PersonHistory, flagged.id)
        self.assertEqual(row.review_state, "pending")
        self.assertTrue(row.needs_review)
        self.assertFalse(row.superseded)
        self.assertEqual(row.person_id, known_id)
        self.assertEqual(self._count(Person), 1)
        self.assertEqual(self._count(ReviewDecision), 0)

    def test_merge_into_moves_name_keys_and_counts(self) -> None:
        first = self._seed_report("rpt_1", date(2026, 10, 12))
        second = self._seed_report("rpt_2", date(2026, 10, 13))
        target = self.resolver.resolve_person(self.db, _person("Karl Peterson"), first).outcome.entity_id
        source = self.resolver.resolve_person(self.db, _person("Chuck Dempsey"), second).outcome.entity_id
        self.db.commit()

        outcome = resolve_pending_review(self.db, source, "mergeInto", target_entity_id=target, settings=self.settings)

        self.assertEqual(outcome.target_entity_id, target)
        merged = self.db.get(Person, source)
        self.assertEqual((merged.status, merged.merged_into_id), ("merged", target))
        survivor = self.db.get(Person, target)
        self.assertIn("Chuck Dempsey", survivor.name_variants_json)
        self.assertEqual(survivor.total_reports_count, 2)
        self.assertEqual(survivor.date_last_seen, date(2026, 10, 13))
        owners = set(self.db.scalars(select(EntityNameKey.entity_id)))
        self.assertEqual(owners, {target})

        later = self._seed_report("rpt_3", date(2026, 10, 14))
        again = self.resolver.resolve(self.db, "person", "Chuck Dempsey", later)
        self.assertEqual(again.entity_id, target)
        decision = self.db.scalar(select(ReviewDecision))
        self.assertEqual((decision.decision, decision.target_entity_id), ("mergeInto", target))

    def test_merge_validation(self) -> None:
        ctx = self._seed_report("rpt_1", date(2026, 10, 12))
        person = self.resolver.resolve(self.db, "person", "Karl Peterson", ctx).entity_id
        vendor = self.resolver.resolve_vendor(
            self.db,
            ExtractedVendor(company_name="ABC Supply", extracted_from_text="ABC dropped rebar"),
            ctx,
        ).outcome.entity_id
        self.db.commit()

        with self.assertRaises(ReviewDecisionError):
            resolve_pending_review(self.db, person, "mergeInto", target_entity_id=vendor, settings=self.settings)
        with self.assertRaises(ReviewDecisionError):
            resolve_pending_review(self.db, person, "mergeInto", target_entity_id=person, settings=self.settings)
        with self.assertRaises(ReviewDecisionError):
            resolve_pending_review(self.db, person, "mergeInto", settings=self.settings)
        with self.assertRaises(ReviewDecisionError):
            resolve_pending_review(self.db, person, "approve", settings=self.settings)
        with self.assertRaises(ReviewDecisionError):
            resolve_pending_review(self.db, "person_missing", "confirm", settings=self.settings)
        self.assertEqual(self._count(Vendor), 1)

    def test_auto_confirm_after_window(self) -> None:
        known_id, flagged = self._seed_review_band()

        too_early = auto_confirm_stale_reviews(self.db, today=date(2026, 10, 20), settings=self.settings)
        confirmed = auto_confirm_stale_reviews(self.db, today=date(2026, 11, 1), settings=self.settings)

        self.assertEqual(too_early, 0)
        self.assertEqual(confirmed, 1)
        self.assertEqual(self.db.get(PersonHistory, flagged.id).review_state, "confirmed")
        decision = self.db.scalar(select(ReviewDecision))
        self.assertEqual((decision.entity_id, decision.reviewer), (known_id, "auto_confirm"))

    def test_zero_day_window_never_auto_confirms(self) -> None:
        _, flagged = self._seed_review_band()

        confirmed = auto_confirm_stale_reviews(
            self.db,
            today=date(2027, 1, 1),
            settings=Settings(review_auto_confirm_days=0),
        )

        self.assertEqual(confirmed, 0)
        self.assertEqual(self.db.get(PersonHistory, flagged.id).review_state, "pending")

    def _seed_review_band(self) -> tuple[str, PersonHistory]:
        first = self._seed_report("rpt_1", date(2026, 10, 12))
        second = self._seed_report("rpt_2", date(2026, 10, 13))
        known = self.resolver.resolve_person(self.db, _person("Mike Johnson"), first)
        flagged = self.resolver.resolve_person(self.db, _person("Mike Jackson"), second)
        self.db.commit()
        self.assertTrue(flagged.outcome.needs_review)
        return known.outcome.entity_id, flagged.history

    def _seed_report(self, report_id: str, report_date: date) -> ResolutionContext:
        self.db.add(
            Report(
                id=report_id,
                project_id="proj_harbor",
                project_name="Harbor Point Tower",
                submitter_id="sup_1",
                report_date=report_date,
                raw_transcript_text="transcript",
                status="published",
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

    def _count(self, model) -> int:  # noqa: ANN001
        return int(self.db.scalar(select(func.count()).select_from(model)) or 0)

    def _reset_tables(self) -> None:
        for table in reversed(Base.metadata.sorted_tables):
            self.db.execute(delete(table))
        self.db.commit()


def _person(name: str) -> ExtractedPerson:
    return ExtractedPerson(full_name=name, extracted_from_text=f"{name} was on site", hours_worked=8.0)


if __name__ == "__main__":
    unittest.main()
