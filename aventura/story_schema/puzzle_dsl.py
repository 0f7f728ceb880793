"""
Puzzle DSL - Scored mini-challenges attached to nodes.

Nine kinds share a common header (prompt, limits, hints, variants, outcomes,
gating) and add their own answer key:

    mcq         option indices, compared as a set
    text        accepted answers after a normalisation chain
    regex       pattern + flags tested against the raw answer
    numeric     expected value with tolerance
    article_de  German article (der/die/das) for a noun
    cloze_text  fill-in-the-blanks with per-blank weights
    matching    left/right index pairs
    ordering    expected index order
    hotspot     image areas flagged correct
"""

from __future__ import annotations
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from .effect_dsl import Effect
from .media import MediaRef


Number = Union[int, float]


class PuzzleKind(str, Enum):
    MCQ = "mcq"
    TEXT = "text"
    REGEX = "regex"
    NUMERIC = "numeric"
    ARTICLE_DE = "article_de"
    CLOZE_TEXT = "cloze_text"
    MATCHING = "matching"
    ORDERING = "ordering"
    HOTSPOT = "hotspot"


class NormalizeMethod(str, Enum):
    """Text normalisation steps, applied in the declared order."""
    TRIM = "trim"
    LOWER = "lower"
    ASCII = "ascii"
    NOACCENTS = "noaccents"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class PuzzleVariant(_Frozen):
    """Weighted partial override merged into the puzzle when a node is entered."""
    weight: Number
    override: dict[str, Any] = Field(default_factory=dict)


class HintCost(_Frozen):
    currency_id: str
    value: Number


class PuzzleDynamic(_Frozen):
    """
    Dynamic hint rules.

    Hints unlock once attempts exceed ``if_attempts_gt`` and may cost
    currency. ``extra_time_ms`` extends the time limit under the same
    condition.
    """
    if_attempts_gt: int | None = None
    give_hint_cost: HintCost | None = None
    extra_time_ms: int | None = None


class PuzzleOutcome(_Frozen):
    effects: list[Effect] = Field(default_factory=list)
    next_id: str | None = None


class PuzzleBase(_Frozen):
    """Fields shared by every puzzle kind."""
    id: str
    prompt: str = ""
    media: list[MediaRef] = Field(default_factory=list)
    time_limit_ms: int | None = None
    attempts_max: int | None = None
    hints: list[str] = Field(default_factory=list)
    variants: list[PuzzleVariant] = Field(default_factory=list)
    success: PuzzleOutcome | None = None
    failure: PuzzleOutcome | None = None
    gate_choices_until_solved: bool = False
    dynamic: PuzzleDynamic | None = None


class MCQPuzzle(PuzzleBase):
    kind: Literal["mcq"] = "mcq"
    options: list[str]
    correct: list[int]
    multiple: bool = False
    shuffle: bool = False


class TextPuzzle(PuzzleBase):
    kind: Literal["text"] = "text"
    accepted_answers: list[str] = Field(default_factory=list)
    normalize: list[NormalizeMethod] = Field(default_factory=list)


class RegexPuzzle(PuzzleBase):
    kind: Literal["regex"] = "regex"
    pattern: str
    flags: str = ""


class NumericPuzzle(PuzzleBase):
    kind: Literal["numeric"] = "numeric"
    answer: Number
    tolerance: Number = 0


class ArticlePuzzle(PuzzleBase):
    kind: Literal["article_de"] = "article_de"
    noun: str
    gender: Literal["der", "die", "das"]
    case: Literal["NOM", "AKK", "DAT", "GEN"] | None = None


class ClozeBlank(_Frozen):
    id: str
    accepted_answers: list[str]
    normalize: list[NormalizeMethod] = Field(default_factory=list)
    weight: Number = 1


class ClozePuzzle(PuzzleBase):
    kind: Literal["cloze_text"] = "cloze_text"
    blanks: list[ClozeBlank]
    shuffle_blanks: bool = False
    partial_scoring: bool = True


class MatchingPuzzle(PuzzleBase):
    kind: Literal["matching"] = "matching"
    left: list[str]
    right: list[str]
    pairs: list[tuple[int, int]]
    shuffle: bool = False
    partial_scoring: bool = True


class OrderingPuzzle(PuzzleBase):
    kind: Literal["ordering"] = "ordering"
    options: list[str]
    correct_order: list[int]
    partial_scoring: bool = True


class HotspotArea(_Frozen):
    id: str
    shape: Literal["rect", "circle", "poly"]
    coords: list[Number]
    correct: bool = False


class HotspotPuzzle(PuzzleBase):
    kind: Literal["hotspot"] = "hotspot"
    media: list[MediaRef]
    areas: list[HotspotArea]
    allow_multiple: bool = False


Puzzle = Annotated[
    Union[
        MCQPuzzle,
        TextPuzzle,
        RegexPuzzle,
        NumericPuzzle,
        ArticlePuzzle,
        ClozePuzzle,
        MatchingPuzzle,
        OrderingPuzzle,
        HotspotPuzzle,
    ],
    Field(discriminator="kind"),
]

PUZZLE_ADAPTER: TypeAdapter[Puzzle] = TypeAdapter(Puzzle)


def apply_variant(puzzle: Puzzle, variant: PuzzleVariant) -> Puzzle:
    """
    Merge a variant override over a puzzle and re-validate the result.

    Raises pydantic.ValidationError when the merged puzzle is not valid;
    the story validator runs this for every variant at load time.
    """
    if not variant.override:
        return puzzle
    merged = puzzle.model_dump()
    merged.update(variant.override)
    return PUZZLE_ADAPTER.validate_python(merged)
