"""
Puzzle Evaluator - Scores an answer against a puzzle's key.

Each of the nine puzzle kinds has its own scorer. Scoring is pure and total:
a malformed answer shape yields ``correct=False`` with an explanatory
message, never an exception.

Kinds with ``partial_scoring`` (cloze_text, matching, ordering) report a
fractional score by default; switching it off collapses the score to 1.0 or
0.0.
"""

from __future__ import annotations
import logging
import math
import re
import unicodedata
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from ..story_schema.puzzle_dsl import (
    ArticlePuzzle,
    ClozePuzzle,
    HotspotPuzzle,
    MatchingPuzzle,
    MCQPuzzle,
    NormalizeMethod,
    NumericPuzzle,
    OrderingPuzzle,
    Puzzle,
    PuzzleKind,
    RegexPuzzle,
    TextPuzzle,
)
from ..story_schema.validation import compile_pattern

logger = logging.getLogger(__name__)

_COMBINING_MARKS = re.compile("[\u0300-\u036f]")
_NON_ASCII = re.compile("[^\x00-\x7f]")


@dataclass
class PuzzleResult:
    """Outcome of scoring one answer."""
    correct: bool
    score: float = 0.0
    message: str | None = None
    partial_results: list[bool] | None = None

    @classmethod
    def malformed(cls, message: str) -> PuzzleResult:
        return cls(correct=False, score=0.0, message=message)

    @classmethod
    def binary(cls, correct: bool) -> PuzzleResult:
        return cls(correct=correct, score=1.0 if correct else 0.0)


def normalize_text(text: str, methods: Iterable[NormalizeMethod | str]) -> str:
    """Apply normalisation steps in order: trim, lower, ascii, noaccents."""
    result = text
    for method in methods:
        method = NormalizeMethod(method)
        if method is NormalizeMethod.TRIM:
            result = result.strip()
        elif method is NormalizeMethod.LOWER:
            result = result.lower()
        elif method is NormalizeMethod.ASCII:
            result = _NON_ASCII.sub("", result)
        elif method is NormalizeMethod.NOACCENTS:
            result = _COMBINING_MARKS.sub("", unicodedata.normalize("NFD", result))
    return result


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_collection(value: Any) -> bool:
    return isinstance(value, (Sequence, set, frozenset)) and not isinstance(value, (str, bytes))


def _ratio(hits: int, total: int, correct: bool) -> float:
    if total == 0:
        return 1.0 if correct else 0.0
    return hits / total


class PuzzleEvaluator:
    """Dispatches an answer to the scorer for the puzzle's kind."""

    def evaluate(self, puzzle: Puzzle, answer: Any) -> PuzzleResult:
        handler = self._get_handler(getattr(puzzle, "kind", None))
        if handler is None:
            kind = getattr(puzzle, "kind", None)
            logger.warning("Unknown puzzle kind: %r", kind)
            return PuzzleResult.malformed(f"Unknown puzzle type: {kind}")
        return handler(puzzle, answer)

    def _get_handler(self, kind: str | None) -> Callable[[Any, Any], PuzzleResult] | None:
        handlers = {
            PuzzleKind.MCQ: self._mcq,
            PuzzleKind.TEXT: self._text,
            PuzzleKind.REGEX: self._regex,
            PuzzleKind.NUMERIC: self._numeric,
            PuzzleKind.ARTICLE_DE: self._article_de,
            PuzzleKind.CLOZE_TEXT: self._cloze_text,
            PuzzleKind.MATCHING: self._matching,
            PuzzleKind.ORDERING: self._ordering,
            PuzzleKind.HOTSPOT: self._hotspot,
        }
        try:
            return handlers.get(PuzzleKind(kind))
        except ValueError:
            return None

    def _mcq(self, puzzle: MCQPuzzle, answer: Any) -> PuzzleResult:
        if not _is_collection(answer) or not all(_is_int(index) for index in answer):
            return PuzzleResult.malformed("Answer must be an array of indices")
        return PuzzleResult.binary(set(answer) == set(puzzle.correct))

    def _text(self, puzzle: TextPuzzle, answer: Any) -> PuzzleResult:
        if not isinstance(answer, str):
            return PuzzleResult.malformed("Answer must be a string")

        if not puzzle.accepted_answers:
            # No answer key: any non-blank answer counts
            return PuzzleResult.binary(bool(answer.strip()))

        normalized = normalize_text(answer, puzzle.normalize)
        correct = any(
            normalized == normalize_text(accepted, puzzle.normalize)
            for accepted in puzzle.accepted_answers
        )
        return PuzzleResult.binary(correct)

    def _regex(self, puzzle: RegexPuzzle, answer: Any) -> PuzzleResult:
        if not isinstance(answer, str):
            return PuzzleResult.malformed("Answer must be a string")

        try:
            pattern = compile_pattern(puzzle.pattern, puzzle.flags)
        except re.error as exc:
            logger.warning("Puzzle '%s' has an invalid regex: %s", puzzle.id, exc)
            return PuzzleResult.malformed(f"Invalid regex pattern: {exc}")

        # Sticky flag anchors at the start of the answer
        if "y" in puzzle.flags:
            match = pattern.match(answer)
        else:
            match = pattern.search(answer)
        return PuzzleResult.binary(match is not None)

    def _numeric(self, puzzle: NumericPuzzle, answer: Any) -> PuzzleResult:
        if isinstance(answer, bool) or not isinstance(answer, (int, float, str)):
            return PuzzleResult.malformed("Answer must be a number")
        try:
            value = float(answer.strip() if isinstance(answer, str) else answer)
        except (ValueError, OverflowError):
            return PuzzleResult.malformed("Answer must be a number")

        if math.isnan(value):
            return PuzzleResult.malformed("Answer must be a number")
        return PuzzleResult.binary(abs(value - puzzle.answer) <= puzzle.tolerance)

    def _article_de(self, puzzle: ArticlePuzzle, answer: Any) -> PuzzleResult:
        if not isinstance(answer, str):
            return PuzzleResult.malformed("Answer must be a string")
        return PuzzleResult.binary(answer.strip().lower() == puzzle.gender.lower())

    def _cloze_text(self, puzzle: ClozePuzzle, answer: Any) -> PuzzleResult:
        if not isinstance(answer, Mapping):
            return PuzzleResult.malformed(
                "Answer must be an object with blank_id -> answer mappings"
            )

        results: list[bool] = []
        total_weight = 0.0
        earned_weight = 0.0
        for blank in puzzle.blanks:
            total_weight += blank.weight
            given = answer.get(blank.id)
            normalized = normalize_text(given if isinstance(given, str) else "", blank.normalize)
            blank_correct = any(
                normalized == normalize_text(accepted, blank.normalize)
                for accepted in blank.accepted_answers
            )
            results.append(blank_correct)
            if blank_correct:
                earned_weight += blank.weight

        correct = all(results)
        if puzzle.partial_scoring:
            score = earned_weight / total_weight if total_weight > 0 else (1.0 if correct else 0.0)
        else:
            score = 1.0 if correct else 0.0
        return PuzzleResult(correct=correct, score=score, partial_results=results)

    def _matching(self, puzzle: MatchingPuzzle, answer: Any) -> PuzzleResult:
        message = "Answer must be an array of [left_index, right_index] pairs"
        if not _is_collection(answer):
            return PuzzleResult.malformed(message)

        submitted: set[tuple[int, int]] = set()
        for pair in answer:
            if (
                not _is_collection(pair)
                or isinstance(pair, (set, frozenset))
                or len(pair) != 2
                or not all(_is_int(side) for side in pair)
            ):
                return PuzzleResult.malformed(message)
            submitted.add((pair[0], pair[1]))

        declared = {tuple(pair) for pair in puzzle.pairs}
        correct = submitted == declared
        if not puzzle.partial_scoring:
            return PuzzleResult.binary(correct)
        return PuzzleResult(
            correct=correct,
            score=_ratio(len(submitted & declared), len(declared), correct),
        )

    def _ordering(self, puzzle: OrderingPuzzle, answer: Any) -> PuzzleResult:
        if not _is_collection(answer) or isinstance(answer, (set, frozenset)):
            return PuzzleResult.malformed("Answer must be an array of indices")
        if not all(_is_int(index) for index in answer):
            return PuzzleResult.malformed("Answer must be an array of indices")

        expected = puzzle.correct_order
        if len(answer) != len(expected):
            return PuzzleResult(
                correct=False,
                score=0.0,
                message=f"Expected {len(expected)} positions, got {len(answer)}",
            )

        matched = sum(1 for given, wanted in zip(answer, expected) if given == wanted)
        correct = matched == len(expected)
        if not puzzle.partial_scoring:
            return PuzzleResult.binary(correct)
        return PuzzleResult(correct=correct, score=_ratio(matched, len(expected), correct))

    def _hotspot(self, puzzle: HotspotPuzzle, answer: Any) -> PuzzleResult:
        if not _is_collection(answer) or not all(isinstance(area_id, str) for area_id in answer):
            return PuzzleResult.malformed("Answer must be an array of selected area IDs")

        selected = set(answer)
        correct_ids = {area.id for area in puzzle.areas if area.correct}
        correct = selected == correct_ids
        return PuzzleResult(
            correct=correct,
            score=_ratio(len(selected & correct_ids), len(correct_ids), correct),
        )


_EVALUATOR = PuzzleEvaluator()


def evaluate_puzzle(puzzle: Puzzle, answer: Any) -> PuzzleResult:
    """Convenience function to score an answer."""
    return _EVALUATOR.evaluate(puzzle, answer)
