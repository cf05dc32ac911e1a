"""Weighted field scoring with optional phonetic and single-typo matching."""
from __future__ import annotations

import re
from datetime import datetime
from typing import Iterable, Mapping, Sequence

from desksearch.config.constants import (
    EXACT_MATCH_SCORE,
    MAX_TYPO_VARIANTS,
    MIN_FUZZY_TERM_LENGTH,
    PHONETIC_MATCH_BONUS,
    TYPO_VARIANT_FACTOR,
)
from desksearch.models import ParsedQuery, RankedRecord, SearchRecord


# Fields checked for phonetic equivalence (names and subjects only).
PHONETIC_FIELDS: tuple[str, ...] = ("subject", "customer_name")

_SOUNDEX_CODES = {
    **dict.fromkeys("BFPV", "1"),
    **dict.fromkeys("CGJKQSXZ", "2"),
    **dict.fromkeys("DT", "3"),
    "L": "4",
    **dict.fromkeys("MN", "5"),
    "R": "6",
}
_WORD_RE = re.compile(r"[^\W\d_]+")


def soundex(word: str) -> str:
    """American Soundex code of ``word`` (empty when it has no letters)."""
    letters = [c for c in word.upper() if "A" <= c <= "Z"]
    if not letters:
        return ""

    code = letters[0]
    previous = _SOUNDEX_CODES.get(letters[0], "")
    for letter in letters[1:]:
        digit = _SOUNDEX_CODES.get(letter, "")
        if digit and digit != previous:
            code += digit
            if len(code) == 4:
                break
        # H and W do not separate letters with the same code; vowels do.
        if letter not in "HW":
            previous = digit
    return code.ljust(4, "0")


def like_escape(text: str) -> str:
    """Escape LIKE metacharacters with a backslash (use with ``ESCAPE '\\'``)."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def typo_variants(term: str, limit: int = MAX_TYPO_VARIANTS) -> list[str]:
    """Single-edit variants of ``term`` as escaped LIKE fragments.

    Alternates a one-character wildcard (``_``) with an adjacent
    transposition, walking left to right and keeping the first letter.
    """
    chars = list(term.lower())
    variants: list[str] = []
    if len(chars) < 2:
        return variants

    def fragment(pieces: list[str | None]) -> str:
        return "".join("_" if p is None else like_escape(p) for p in pieces)

    for i in range(1, len(chars)):
        if len(variants) >= limit:
            break
        wildcard: list[str | None] = list(chars)
        wildcard[i] = None
        candidate = fragment(wildcard)
        if candidate not in variants:
            variants.append(candidate)

        if len(variants) >= limit or i + 1 >= len(chars) or chars[i] == chars[i + 1]:
            continue
        swapped: list[str | None] = list(chars)
        swapped[i], swapped[i + 1] = swapped[i + 1], swapped[i]
        candidate = fragment(swapped)
        if candidate not in variants:
            variants.append(candidate)

    return variants[:limit]


def variant_pattern(fragment: str) -> re.Pattern[str]:
    """Compile an escaped LIKE fragment into an equivalent regex."""
    parts: list[str] = []
    escaped = False
    for char in fragment:
        if escaped:
            parts.append(re.escape(char))
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == "_":
            parts.append(".")
        elif char == "%":
            parts.append(".*")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.IGNORECASE | re.DOTALL)


def sql_score_expression(
    needles: Sequence[str],
    weights: Mapping[str, float],
    columns: Mapping[str, str],
    params: list[object],
) -> str:
    """The literal part of ``RelevanceModel.score`` as a SQL expression.

    Sums one CASE per field, needle and predicate (exact, prefix, substring)
    so candidates can be ordered in the database. Fuzzy bonuses are left to
    the in-process pass. Fields missing from ``columns`` score nothing.
    ``params`` is extended in placeholder order.
    """
    parts: list[str] = []
    for field_name, weight in weights.items():
        column = columns.get(field_name)
        if column is None:
            continue
        text = f"lower(coalesce({column}, ''))"
        weight = float(weight)
        for needle in needles:
            parts.append(f"(CASE WHEN {text} = ? THEN {EXACT_MATCH_SCORE!r}::DOUBLE ELSE 0 END)")
            parts.append(f"(CASE WHEN starts_with({text}, ?) THEN {weight * 2!r}::DOUBLE ELSE 0 END)")
            parts.append(f"(CASE WHEN contains({text}, ?) THEN {weight!r}::DOUBLE ELSE 0 END)")
            params.extend([needle, needle, needle])
    if not parts:
        return "CAST(0 AS DOUBLE)"
    return "(" + " + ".join(parts) + ")"


def ordering_key_sort(items: list[RankedRecord]) -> list[RankedRecord]:
    """Sort by score desc, then updated_at desc, then record id asc."""
    items.sort(key=lambda item: item.record_id)
    items.sort(
        key=lambda item: (item.relevance_score, item.record.updated_at or datetime.min),
        reverse=True,
    )
    return items


class RelevanceModel:
    """Scores a record against a parsed query using per-field weights.

    Every predicate is evaluated independently and the points add up:

    * exact full-field match: ``EXACT_MATCH_SCORE``
    * field starts with the needle: ``2 * weight``
    * field contains the needle: ``weight``

    With fuzzy matching on, terms of at least three characters also earn
    ``PHONETIC_MATCH_BONUS`` per name/subject field holding a word with the
    same Soundex code, and half the field weight when one of a few
    single-edit variants matches where the literal term did not.
    """

    def __init__(self, enable_fuzzy: bool = True) -> None:
        self.enable_fuzzy = enable_fuzzy

    def needles(self, query: ParsedQuery) -> list[str]:
        needles = [n.casefold() for n in query.search_terms]
        if len(needles) > 1:
            whole = " ".join(query.cleaned_text.replace('"', " ").split()).casefold()
            if whole and whole not in needles:
                needles.append(whole)
        return needles

    def fuzzy_terms(self, query: ParsedQuery) -> list[str]:
        if not self.enable_fuzzy:
            return []
        return [t.casefold() for t in query.terms if len(t) >= MIN_FUZZY_TERM_LENGTH]

    def score(
        self,
        record: SearchRecord,
        query: ParsedQuery,
        weights: Mapping[str, float],
    ) -> float:
        needles = self.needles(query)
        fuzzy_terms = self.fuzzy_terms(query)
        variants = {term: [variant_pattern(v) for v in typo_variants(term)] for term in fuzzy_terms}
        total = 0.0

        for field_name, weight in weights.items():
            text = record.field_text(field_name).casefold()
            if not text:
                continue

            for needle in needles:
                if text == needle:
                    total += EXACT_MATCH_SCORE
                if text.startswith(needle):
                    total += weight * 2
                if needle in text:
                    total += weight

            for term in fuzzy_terms:
                if term in text:
                    continue
                if any(pattern.search(text) for pattern in variants[term]):
                    total += weight * TYPO_VARIANT_FACTOR

        for field_name in PHONETIC_FIELDS:
            if not fuzzy_terms or field_name not in weights:
                continue
            codes = {soundex(word) for word in _WORD_RE.findall(record.field_text(field_name))}
            codes.discard("")
            for term in fuzzy_terms:
                if soundex(term) in codes:
                    total += PHONETIC_MATCH_BONUS

        return total

    def rank(
        self,
        records: Iterable[SearchRecord],
        query: ParsedQuery,
        weights: Mapping[str, float],
        base_scores: Mapping[int, float] | None = None,
    ) -> list[RankedRecord]:
        """Score every record and return them in ranking order.

        ``base_scores`` lets a backend fold in its own native match score.
        """
        base_scores = base_scores or {}
        ranked = [
            RankedRecord(
                record_id=record.id,
                relevance_score=self.score(record, query, weights) + base_scores.get(record.id, 0.0),
                record=record,
            )
            for record in records
        ]
        return ordering_key_sort(ranked)
