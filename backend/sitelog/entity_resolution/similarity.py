"""Deterministic name normalization and similarity scoring for entity resolution."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import Literal

from rapidfuzz.distance import JaroWinkler, Levenshtein

from sitelog.config import Settings, get_settings

_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")
_MULTISPACE_RE = re.compile(r"\s+")

MatchBand = Literal["auto_match", "review", "new"]

# Canonical given name -> spoken/short forms observed in field reports.
DEFAULT_NICKNAMES: dict[str, tuple[str, ...]] = {
    "alexander": ("alex", "al"),
    "andrew": ("andy", "drew"),
    "anthony": ("tony",),
    "benjamin": ("ben", "benny"),
    "brian": ("bryan",),
    "charles": ("charlie", "chuck"),
    "christopher": ("chris",),
    "daniel": ("dan", "danny"),
    "david": ("dave", "davey"),
    "donald": ("don", "donnie"),
    "douglas": ("doug",),
    "edward": ("ed", "eddie", "ted"),
    "gerald": ("jerry",),
    "gregory": ("greg",),
    "jacob": ("jake",),
    "james": ("jim", "jimmy", "jamie"),
    "jeffrey": ("jeff",),
    "john": ("johnny", "jack"),
    "jonathan": ("jon",),
    "joseph": ("joe", "joey"),
    "kenneth": ("ken", "kenny"),
    "lawrence": ("larry",),
    "matthew": ("matt",),
    "michael": ("mike", "mikey", "mick"),
    "nicholas": ("nick",),
    "patrick": ("pat",),
    "raymond": ("ray",),
    "richard": ("rick", "ricky", "rich"),
    "robert": ("rob", "robbie", "bob", "bobby"),
    "ronald": ("ron", "ronnie"),
    "samuel": ("sam", "sammy"),
    "steven": ("steve", "stephen"),
    "thomas": ("tom", "tommy"),
    "timothy": ("tim", "timmy"),
    "wesley": ("wes",),
    "william": ("will", "bill", "billy", "willie"),
    "zachary": ("zach", "zack"),
}

DEFAULT_COMPANY_ABBREVIATIONS: dict[str, str] = {
    "bros": "brothers",
    "svc": "services",
    "svcs": "services",
    "mfg": "manufacturing",
    "dist": "distribution",
    "elec": "electric",
    "mech": "mechanical",
    "constr": "construction",
    "const": "construction",
    "intl": "international",
    "natl": "national",
    "assoc": "associates",
    "supp": "supply",
}

LEGAL_SUFFIXES = frozenset(
    {
        "inc",
        "incorporated",
        "llc",
        "co",
        "corp",
        "corporation",
        "company",
        "ltd",
        "limited",
        "lp",
        "llp",
        "plc",
        "pllc",
    }
)

_SOUNDEX_CODES = {
    **dict.fromkeys("bfpv", "1"),
    **dict.fromkeys("cgjkqsxz", "2"),
    **dict.fromkeys("dt", "3"),
    "l": "4",
    **dict.fromkeys("mn", "5"),
    "r": "6",
}


def normalize(value: str) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""

    lowered = value.strip().lower().replace("&", " and ")
    cleaned = _NON_ALNUM_RE.sub(" ", lowered)
    return _MULTISPACE_RE.sub(" ", cleaned).strip()


def expand_tokens(tokens: Iterable[str], table: Mapping[str, str]) -> list[str]:
    """Replace abbreviated tokens with their expanded forms."""

    expanded: list[str] = []
    for token in tokens:
        expanded.extend(table.get(token, token).split())
    return expanded


def company_abbreviations(settings: Settings | None = None) -> dict[str, str]:
    resolved = settings or get_settings()
    table = dict(DEFAULT_COMPANY_ABBREVIATIONS)
    for short, full in resolved.extra_company_abbreviations.items():
        table[normalize(short)] = normalize(full)
    return table


def normalize_company(value: str, abbreviations: Mapping[str, str] | None = None) -> str:
    """Normalize a company name and drop trailing legal suffixes.

    "ABC Supply Co." and "ABC Supply, Inc" both normalize to "abc supply".
    At least one token is always kept so a company literally named "Co"
    still has a key.
    """

    table = DEFAULT_COMPANY_ABBREVIATIONS if abbreviations is None else abbreviations
    tokens = expand_tokens(normalize(value).split(), table)
    while len(tokens) > 1 and tokens[-1] in LEGAL_SUFFIXES:
        tokens.pop()
    if len(tokens) > 1 and tokens[0] == "the":
        tokens.pop(0)
    return " ".join(tokens)


def build_nickname_index(extra: Mapping[str, Iterable[str]] | None = None) -> dict[str, str]:
    """Map every known given name and nickname to its canonical given name."""

    groups: dict[str, set[str]] = {name: set(aliases) for name, aliases in DEFAULT_NICKNAMES.items()}
    for name, aliases in (extra or {}).items():
        groups.setdefault(normalize(name), set()).update(normalize(alias) for alias in aliases)

    index: dict[str, str] = {}
    for canonical, aliases in groups.items():
        index.setdefault(canonical, canonical)
        for alias in aliases:
            index.setdefault(alias, canonical)
    return index


def phonetic_key(value: str) -> str:
    """Full-length Soundex code of the name with spaces removed."""

    letters = [char for char in normalize(value) if char.isalpha()]
    if not letters:
        return ""
    encoded = [letters[0]]
    previous = _SOUNDEX_CODES.get(letters[0], "")
    for char in letters[1:]:
        code = _SOUNDEX_CODES.get(char, "")
        if code and code != previous:
            encoded.append(code)
        if char not in "hw":
            previous = code
    return "".join(encoded)


def _tokens_equivalent(left: list[str], right: list[str], nicknames: Mapping[str, str]) -> bool:
    if len(left) != len(right):
        return False
    for left_token, right_token in zip(left, right):
        if left_token == right_token:
            continue
        left_canonical = nicknames.get(left_token)
        if left_canonical is None or left_canonical != nicknames.get(right_token):
            return False
    return True


def fuzzy_score(
    left: str,
    right: str,
    *,
    nicknames: Mapping[str, str] | None = None,
    phonetic_bonus: float | None = None,
) -> float:
    """Return a symmetric 0-100 similarity between two names.

    100 is reserved for identical normalized names and token-wise nickname
    equivalence. Everything else is graded from Jaro-Winkler and Levenshtein
    similarity, with a bonus when both names share a phonetic key.
    """

    norm_left = normalize(left)
    norm_right = normalize(right)
    if not norm_left or not norm_right:
        return 0.0
    if norm_left == norm_right:
        return 100.0
    index = build_nickname_index() if nicknames is None else nicknames
    if index and _tokens_equivalent(norm_left.split(), norm_right.split(), index):
        return 100.0

    compact_left = norm_left.replace(" ", "")
    compact_right = norm_right.replace(" ", "")
    if compact_left == compact_right:
        return 98.0

    base = max(
        JaroWinkler.normalized_similarity(compact_left, compact_right),
        Levenshtein.normalized_similarity(compact_left, compact_right),
    ) * 100.0

    bonus = get_settings().phonetic_match_bonus if phonetic_bonus is None else phonetic_bonus
    if bonus and phonetic_key(compact_left) == phonetic_key(compact_right):
        base = min(99.0, base + bonus)
    return round(min(base, 99.0), 2)


def classify_score(score: float, settings: Settings | None = None) -> MatchBand:
    """Map a fuzzy score onto the configured auto-match/review/new bands."""

    resolved = settings or get_settings()
    if score >= resolved.auto_match_threshold:
        return "auto_match"
    if score >= resolved.review_threshold:
        return "review"
    return "new"
