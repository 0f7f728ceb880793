"""Story schema - declarative story graph and its DSLs."""

from .story import Story, Node, Choice, ItemDef, CurrencyDef, StatDef, NodeOnEnter
from .media import MediaAsset, MediaRef
from .requirement_dsl import RequirementExpr, RequirementOp, AllOf, AnyOf, Not
from .effect_dsl import Effect, EffectOp, LootTable, LootEntry
from .puzzle_dsl import Puzzle, PuzzleKind, PuzzleVariant, NormalizeMethod, apply_variant
from .validation import validate_story, ensure_valid, ValidationResult, StoryValidationError
from .loader import (
    StoryMetadata,
    get_story_metadata,
    load_story,
    load_story_from_file,
    read_story_document,
    load_story_from_json,
    parse_story,
)

__all__ = [
    "Story",
    "Node",
    "Choice",
    "ItemDef",
    "CurrencyDef",
    "StatDef",
    "NodeOnEnter",
    "MediaAsset",
    "MediaRef",
    "RequirementExpr",
    "RequirementOp",
    "AllOf",
    "AnyOf",
    "Not",
    "Effect",
    "EffectOp",
    "LootTable",
    "LootEntry",
    "Puzzle",
    "PuzzleKind",
    "PuzzleVariant",
    "NormalizeMethod",
    "apply_variant",
    "validate_story",
    "ensure_valid",
    "ValidationResult",
    "StoryValidationError",
    "StoryMetadata",
    "get_story_metadata",
    "load_story",
    "load_story_from_file",
    "read_story_document",
    "load_story_from_json",
    "parse_story",
]
