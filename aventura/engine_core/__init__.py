"""
Engine Core - Deterministic rules runtime for a loaded Story.

The engine is the runtime that:
1. Creates and snapshots GameState
2. Evaluates choice requirements
3. Applies effects
4. Scores puzzle answers
5. Drives node traversal and emits events
"""

from .state import (
    GameState,
    PuzzleState,
    TimerState,
    StateSummary,
    create_initial_state,
    clone_state,
    serialize_state,
    deserialize_state,
    state_to_json,
    merge_state,
    validate_state,
    get_state_summary,
    jsonable_answer,
)
from .requirement_evaluator import RequirementEvaluator, evaluate_requirement, is_timer_active
from .effect_resolver import EffectResolver, EffectResult, apply_effects
from .puzzle_evaluator import PuzzleEvaluator, PuzzleResult, evaluate_puzzle, normalize_text
from .random_source import RandomSource, default_random_source, select_weighted
from .events import EventType, GameEvent, Subscription
from .engine import GameEngine, ChoiceAvailability, ChoiceResult, PuzzleAttempt

__all__ = [
    "GameState",
    "PuzzleState",
    "TimerState",
    "StateSummary",
    "create_initial_state",
    "clone_state",
    "jsonable_answer",
    "serialize_state",
    "deserialize_state",
    "state_to_json",
    "merge_state",
    "validate_state",
    "get_state_summary",
    "RequirementEvaluator",
    "evaluate_requirement",
    "is_timer_active",
    "EffectResolver",
    "EffectResult",
    "apply_effects",
    "PuzzleEvaluator",
    "PuzzleResult",
    "evaluate_puzzle",
    "normalize_text",
    "RandomSource",
    "default_random_source",
    "select_weighted",
    "EventType",
    "GameEvent",
    "Subscription",
    "GameEngine",
    "ChoiceAvailability",
    "ChoiceResult",
    "PuzzleAttempt",
]
