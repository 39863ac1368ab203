"""Unit tests for name normalization and fuzzy scoring."""

from __future__ import annotations

import unittest

from sitelog.config import Settings
from sitelog.entity_resolution.similarity import (
    build_nickname_index,
    classify_score,
    fuzzy_score,
    normalize,
    normalize_company,
    phonetic_key,
)


class NormalizeTests(unittest.TestCase):
    def test_normalize_lowercases_and_strips_punctuation(self) -> None:
        self.assertEqual(normalize("  Owen   O'Brien, Jr. "), "owen o brien jr")
        self.assertEqual(normalize("Smith & Sons"), "smith and sons")
        self.assertEqual(normalize("!!!"), "")

    def test_normalize_company_drops_legal_suffixes(self) -> None:
        self.assertEqual(normalize_company("ABC Supply Co."), "abc supply")
        self.assertEqual(normalize_company("ABC Supply, Inc"), "abc supply")
        self.assertEqual(normalize_company("The Rebar Shop LLC"), "rebar shop")

    def test_normalize_company_expands_abbreviations(self) -> None:
        self.assertEqual(normalize_company("Smith Bros Mfg"), "smith brothers manufacturing")

    def test_normalize_company_keeps_single_token_name(self) -> None:
        self.assertEqual(normalize_company("Co"), "co")


class FuzzyScoreTests(unittest.TestCase):
    def test_identical_after_normalization_scores_100(self) -> None:
        self.assertEqual(fuzzy_score("Maria Lopez", "  maria   LOPEZ "), 100.0)

    def test_transcription_split_scores_in_auto_match_band(self) -> None:
        score = fuzzy_score("Owen glass burner", "Owen Glassburn")

        self.assertGreaterEqual(score, 95.0)
        self.assertLess(score, 100.0)

    def test_different_surname_scores_in_review_band(self) -> None:
        score = fuzzy_score("Mike Johnson", "Mike Jackson")

        self.assertGreaterEqual(score, 80.0)
        self.assertLess(score, 95.0)

    def test_nickname_equivalence_scores_100(self) -> None:
        self.assertEqual(fuzzy_score("Bob Smith", "Robert Smith"), 100.0)
        self.assertEqual(fuzzy_score("Mike Johnson", "Michael Johnson"), 100.0)

    def test_unrelated_names_score_low(self) -> None:
        self.assertLess(fuzzy_score("Maria Lopez", "Dwayne Carter"), 80.0)

    def test_blank_name_scores_zero(self) -> None:
        self.assertEqual(fuzzy_score("", "Owen Glassburn"), 0.0)

    def test_score_is_bounded(self) -> None:
        for left, right in (("Jon Smith", "John Smyth"), ("Al Perez", "Alan Peres"), ("Tim Ng", "Tom Ng")):
            score = fuzzy_score(left, right)
            self.assertGreaterEqual(score, 0.0)
            self.assertLessEqual(score, 100.0)


class NicknameAndBandTests(unittest.TestCase):
    def test_extra_nicknames_extend_default_table(self) -> None:
        index = build_nickname_index({"Guillermo": ["Memo"]})

        self.assertEqual(index["memo"], "guillermo")
        self.assertEqual(index["bob"], "robert")

    def test_phonetic_key_ignores_spacing(self) -> None:
        self.assertEqual(phonetic_key("Glass burn"), phonetic_key("Glassburn"))
        self.assertEqual(phonetic_key(""), "")

    def test_classify_score_uses_configured_thresholds(self) -> None:
        settings = Settings(auto_match_threshold=95.0, review_threshold=80.0)

        self.assertEqual(classify_score(97.0, settings), "auto_match")
        self.assertEqual(classify_score(95.0, settings), "auto_match")
        self.assertEqual(classify_score(94.99, settings), "review")
        self.assertEqual(classify_score(80.0, settings), "review")
        self.assertEqual(classify_score(79.9, settings), "new")


if __name__ == "__main__":
    unittest.main()
