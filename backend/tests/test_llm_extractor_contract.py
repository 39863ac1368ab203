"""Unit tests for the LLM extractor output contract."""

from __future__ import annotations

import json
import unittest
from datetime import date

from sitelog.extraction.llm_extractor import (
    LLMExtractionError,
    LLMExtractor,
    parse_completion_text,
    strip_code_fences,
    validate_extraction_payload,
)
from sitelog.extraction.types import ExtractionContext, ExtractionError, ExtractionResult

_CONTEXT = ExtractionContext(project_name="Harbor Point Tower", report_date=date(2026, 10, 14))


class _StubClient:
    model = "stub-model"

    def __init__(self, response: str | None = None, error: LLMExtractionError | None = None) -> None:
        self.response = response
        self.error = error
        self.calls = 0

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        _ = system_prompt, user_prompt
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.response or ""


def _payload(**overrides) -> dict:  # noqa: ANN003
    payload = {
        "personnel": [
            {
                "fullName": "Owen Glassburn",
                "goByName": "Owen",
                "position": "Foreman",
                "teamAssignment": "Team 1",
                "hoursWorked": "8 hours",
                "overtimeHours": 2,
                "extractedFromText": "Owen Glassburn had Team 1, eight plus two OT",
            }
        ],
        "workLogs": [],
        "constraints": [
            {
                "title": "Rebar short",
                "category": "material",
                "severity": "high",
                "costImpact": "$1,200",
                "extractedFromText": "we were short rebar, about twelve hundred bucks",
            }
        ],
        "vendors": [],
        "timeSummary": {"totalPersonnelCount": 1, "totalRegularHours": 8},
        "extractionConfidence": 0.9,
    }
    payload.update(overrides)
    return payload


class LLMExtractorContractTests(unittest.TestCase):
    def test_fenced_json_is_parsed(self) -> None:
        client = _StubClient("```json\n" + json.dumps(_payload()) + "\n```")
        result = LLMExtractor(client).extract("Owen had Team 1 today.", _CONTEXT)

        self.assertIsInstance(result, ExtractionResult)
        self.assertEqual(client.calls, 1)
        self.assertEqual([person.full_name for person in result.personnel], ["Owen Glassburn"])
        self.assertEqual(result.personnel[0].hours_worked, 8.0)
        self.assertEqual(result.personnel[0].overtime_hours, 2.0)
        self.assertEqual(result.constraints[0].cost_impact, 1200.0)
        self.assertEqual(result.time_summary.total_personnel_count, 1)
        self.assertEqual(result.confidence, 0.9)

    def test_prose_around_json_uses_outermost_braces(self) -> None:
        client = _StubClient("Here is the extraction:\n" + json.dumps(_payload()) + "\nLet me know if you need more.")
        result = LLMExtractor(client).extract("Owen had Team 1 today.", _CONTEXT)

        self.assertIsInstance(result, ExtractionResult)
        self.assertEqual(len(result.personnel), 1)

    def test_truncated_json_is_malformed_response(self) -> None:
        client = _StubClient('{"personnel": [{"fullName": "Owen Glassburn", "extractedFromText": "Owen')
        result = LLMExtractor(client).extract("Owen had Team 1 today.", _CONTEXT)

        self.assertIsInstance(result, ExtractionError)
        self.assertEqual(result.kind, "malformed_response")
        self.assertFalse(result.retryable)
        self.assertIn("Owen", result.raw_response or "")

    def test_item_without_source_quote_is_rejected(self) -> None:
        payload = _payload(
            personnel=[
                {"fullName": "Maria Lopez", "hoursWorked": 8, "extractedFromText": "Maria was on forms"},
                {"fullName": "Ghost Worker", "hoursWorked": 8},
                {"fullName": "Blank Quote", "extractedFromText": "   "},
            ]
        )
        result = LLMExtractor(_StubClient(json.dumps(payload))).extract("Maria was on forms.", _CONTEXT)

        self.assertIsInstance(result, ExtractionResult)
        self.assertEqual([person.full_name for person in result.personnel], ["Maria Lopez"])
        self.assertEqual(len(result.rejected_items), 2)
        self.assertEqual({item["section"] for item in result.rejected_items}, {"personnel"})

    def test_retryable_provider_error_is_returned_as_value(self) -> None:
        client = _StubClient(error=LLMExtractionError("timed out", kind="timeout", retryable=True))
        result = LLMExtractor(client).extract("Owen had Team 1 today.", _CONTEXT)

        self.assertIsInstance(result, ExtractionError)
        self.assertEqual(result.kind, "timeout")
        self.assertTrue(result.retryable)

    def test_empty_transcript_skips_the_client(self) -> None:
        client = _StubClient(json.dumps(_payload()))
        result = LLMExtractor(client).extract("   ", _CONTEXT)

        self.assertIsInstance(result, ExtractionError)
        self.assertEqual(result.kind, "empty_transcript")
        self.assertEqual(client.calls, 0)

    def test_repeated_person_mentions_are_merged(self) -> None:
        payload = _payload(
            personnel=[
                {"fullName": "Owen Glassburn", "hoursWorked": 6, "extractedFromText": "Owen did six"},
                {"fullName": "owen glassburn", "hoursWorked": 8, "position": "Foreman", "extractedFromText": "Owen, eight"},
            ]
        )
        result = validate_extraction_payload(payload)

        self.assertIsInstance(result, ExtractionResult)
        self.assertEqual(len(result.personnel), 1)
        self.assertEqual(result.personnel[0].hours_worked, 8.0)
        self.assertEqual(result.personnel[0].position, "Foreman")

    def test_payload_without_contract_keys_is_malformed(self) -> None:
        self.assertEqual(validate_extraction_payload({"answer": "ok"}).kind, "malformed_response")
        self.assertEqual(validate_extraction_payload([1, 2, 3]).kind, "malformed_response")

    def test_section_with_wrong_shape_is_schema_violation(self) -> None:
        result = validate_extraction_payload(_payload(personnel={"fullName": "Owen"}))

        self.assertIsInstance(result, ExtractionError)
        self.assertEqual(result.kind, "schema_violation")

    def test_payload_round_trips_through_cache_shape(self) -> None:
        first = validate_extraction_payload(_payload())
        second = validate_extraction_payload(first.to_payload())

        self.assertIsInstance(second, ExtractionResult)
        self.assertEqual(second.personnel[0].full_name, "Owen Glassburn")
        self.assertEqual(second.personnel[0].go_by_name, "Owen")
        self.assertEqual(second.constraints[0].cost_impact, 1200.0)


class CompletionParsingTests(unittest.TestCase):
    def test_strip_code_fences(self) -> None:
        self.assertEqual(strip_code_fences('```json\n{"a": 1}\n```'), '{"a": 1}')
        self.assertEqual(strip_code_fences('```\n{"a": 1}\n```'), '{"a": 1}')
        self.assertEqual(strip_code_fences('  {"a": 1}  '), '{"a": 1}')

    def test_parse_completion_text_returns_none_for_garbage(self) -> None:
        self.assertIsNone(parse_completion_text("no json here"))
        self.assertIsNone(parse_completion_text("{ not: json }"))


if __name__ == "__main__":
    unittest.main()
