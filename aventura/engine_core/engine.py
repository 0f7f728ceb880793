"""
Game Engine - Node-traversal state machine over a Story.

The engine is the single owner of the live GameState. All transitions flow
through it:
- start(): enter the starting node
- make_choice(index): take a choice if it is still available
- solve_puzzle(answer): score an answer to the current node's puzzle
- request_hint(): reveal the next hint under the puzzle's dynamic rules

Design principles:
- Callers only ever see deep copies of state
- Run-time anomalies are reported in results and logged, never raised
- Renderers observe progress through events, not by polling mid-transition
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from pydantic import ValidationError

from ..config import EngineConfig
from ..story_schema import Story
from ..story_schema.effect_dsl import AddCurrency, Effect
from ..story_schema.media import MediaAsset
from ..story_schema.puzzle_dsl import Puzzle, apply_variant
from ..story_schema.story import Choice, Node
from .clock import Clock, system_clock
from .effect_resolver import EffectResolver, EffectResult
from .events import EventChannel, EventType, GameEvent, Listener, Subscription
from .puzzle_evaluator import PuzzleResult, evaluate_puzzle
from .random_source import RandomSource, default_random_source, select_weighted
from .requirement_evaluator import evaluate_requirement, is_timer_active
from .state import (
    GameState,
    PuzzleState,
    create_initial_state,
    deserialize_state,
    jsonable_answer,
)

logger = logging.getLogger(__name__)

Scorer = Callable[[Puzzle, Any], PuzzleResult]

LOCKED_REASON = "This choice is locked"
PUZZLE_GATE_REASON = "puzzle must be solved"
TIME_LIMIT_MESSAGE = "Time limit exceeded"


@dataclass
class ChoiceAvailability:
    """Whether a choice on the current node can be taken right now."""
    choice: Choice
    index: int
    available: bool
    reason: str | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass
class ChoiceResult:
    """
    Result of making a choice.

    Contains:
    - Whether the choice was taken
    - The node the player ended up on
    - The choice's effect result, if it had effects
    - Error (if the choice was rejected)
    """
    success: bool
    node_id: str | None = None
    effect_result: EffectResult | None = None
    error: str | None = None

    @classmethod
    def failure(cls, error: str) -> ChoiceResult:
        """Create a failure result."""
        return cls(success=False, error=error)


@dataclass
class PuzzleAttempt:
    """Result of one solve_puzzle call."""
    success: bool
    result: PuzzleResult | None = None
    attempts: int = 0
    solved: bool = False
    node_id: str | None = None
    effect_result: EffectResult | None = None
    error: str | None = None

    @classmethod
    def failure(cls, error: str, attempts: int = 0) -> PuzzleAttempt:
        """Create a failure result without a score."""
        return cls(success=False, attempts=attempts, error=error)


class GameEngine:
    """
    Runs a play-through of one Story.

    ``rng`` drives loot tables and puzzle variants, ``clock`` returns epoch
    milliseconds for timers and solve timestamps, and ``scorer`` replaces
    local puzzle scoring (for example with a call to a remote authority).
    """

    def __init__(
        self,
        story: Story,
        initial_state: GameState | None = None,
        *,
        config: EngineConfig | None = None,
        rng: RandomSource | None = None,
        clock: Clock | None = None,
        scorer: Scorer | None = None,
    ):
        self._story = story
        self.config = config or EngineConfig()
        self._rng = rng or default_random_source()
        self._clock = clock or system_clock
        self._scorer = scorer or evaluate_puzzle
        self._resolver = EffectResolver(story=story, rng=self._rng, clock=self._clock)
        self._events = EventChannel()
        self._active_puzzle: Puzzle | None = None
        self._state = initial_state.clone() if initial_state else self._new_state()

    def _new_state(self) -> GameState:
        return create_initial_state(self._story, self.config.start_node_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def story(self) -> Story:
        return self._story

    @property
    def state(self) -> GameState:
        """A deep copy of the live state."""
        return self._state.clone()

    def get_state(self) -> GameState:
        return self._state.clone()

    @property
    def current_node(self) -> Node | None:
        return self._story.get_node(self._state.current_node_id)

    def get_node(self, node_id: str) -> Node | None:
        return self._story.get_node(node_id)

    def get_asset(self, asset_id: str) -> MediaAsset | None:
        return self._story.get_asset(asset_id)

    @property
    def active_puzzle(self) -> Puzzle | None:
        """The current node's puzzle with its drawn variant applied."""
        node = self.current_node
        if node is None or node.puzzle is None:
            return None
        if self._active_puzzle is not None and self._active_puzzle.id == node.puzzle.id:
            return self._active_puzzle
        return node.puzzle

    @property
    def is_ended(self) -> bool:
        node = self.current_node
        return bool(node and node.is_ending)

    def is_timer_active(self, timer_flag: str) -> bool:
        return is_timer_active(timer_flag, self._state, self._clock())

    def subscribe(self, listener: Listener) -> Subscription:
        """Register a listener. Keep the handle to unsubscribe later."""
        return self._events.subscribe(listener)

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Enter the current node (the starting node for a fresh state)."""
        return self._enter_node(self._state.current_node_id)

    def _enter_node(self, node_id: str, depth: int = 0) -> bool:
        node = self._story.get_node(node_id)
        if node is None:
            logger.error("Node not found: %s", node_id)
            return False

        self._state.current_node_id = node.id
        self._state.visited.add(node.id)
        self._active_puzzle = None

        if node.on_enter_effects:
            effect_result = self._apply_effects(node.on_enter_effects)
            target = effect_result.goto_node_id
            if target is not None:
                if self._story.get_node(target) is None:
                    logger.warning(
                        "Node '%s' on_enter jumps to unknown node '%s'; ignoring", node.id, target
                    )
                elif depth >= self.config.max_redirect_depth:
                    logger.error(
                        "Redirect limit of %d reached at node '%s'; not following jump to '%s'",
                        self.config.max_redirect_depth,
                        node.id,
                        target,
                    )
                else:
                    logger.debug("Redirecting from '%s' to '%s'", node.id, target)
                    return self._enter_node(target, depth + 1)

        logger.debug("Entered node '%s'", node.id)
        self._emit(GameEvent(type=EventType.NODE_ENTERED, node=node))
        self._emit_state_changed()

        if node.is_ending:
            self._emit(GameEvent(type=EventType.GAME_ENDED, node=node))

        if node.puzzle is not None:
            self._active_puzzle = self._resolve_variant(node.puzzle)
            self._emit(GameEvent(type=EventType.PUZZLE_STARTED, puzzle=self._active_puzzle))

        return True

    def _resolve_variant(self, puzzle: Puzzle) -> Puzzle:
        if not puzzle.variants:
            return puzzle

        variant = select_weighted(
            puzzle.variants,
            [variant.weight for variant in puzzle.variants],
            self._rng,
        )
        if variant is None:
            return puzzle
        try:
            resolved = apply_variant(puzzle, variant)
        except ValidationError:
            logger.exception("Puzzle '%s' variant override is invalid; using base puzzle", puzzle.id)
            return puzzle
        # Progress is keyed by the base id
        if resolved.id != puzzle.id:
            logger.warning(
                "Puzzle '%s' variant renames it to '%s'; keeping the base id", puzzle.id, resolved.id
            )
            resolved = resolved.model_copy(update={"id": puzzle.id})
        return resolved

    # ------------------------------------------------------------------
    # Choices
    # ------------------------------------------------------------------

    def get_available_choices(self) -> list[ChoiceAvailability]:
        """
        Availability of every choice on the current node.

        Recomputed on every call: locks first, then the puzzle gate, then
        the choice's own requirements.
        """
        node = self.current_node
        if node is None:
            return []

        puzzle = node.puzzle
        gated = (
            puzzle is not None
            and puzzle.gate_choices_until_solved
            and not self._state.is_puzzle_solved(puzzle.id)
        )

        availability = []
        for index, choice in enumerate(node.choices):
            if self._state.is_choice_locked(node.id, index):
                availability.append(
                    ChoiceAvailability(choice, index, available=False, reason=LOCKED_REASON)
                )
            elif gated:
                availability.append(
                    ChoiceAvailability(choice, index, available=False, reason=PUZZLE_GATE_REASON)
                )
            else:
                warnings: list[str] = []
                met = evaluate_requirement(choice.requirements, self._state, self._story, warnings)
                availability.append(
                    ChoiceAvailability(
                        choice,
                        index,
                        available=met,
                        reason=None if met else choice.disabled_reason,
                        warnings=warnings,
                    )
                )
        return availability

    def make_choice(self, index: int) -> ChoiceResult:
        """
        Take a choice on the current node.

        Availability is re-checked against the live state. An effect jump
        takes precedence over the choice's declared target.
        """
        node = self.current_node
        if node is None:
            return ChoiceResult.failure("No current node")
        if not 0 <= index < len(node.choices):
            logger.warning("Invalid choice index %d on node '%s'", index, node.id)
            return ChoiceResult.failure(f"Invalid choice index: {index}")

        availability = self.get_available_choices()[index]
        if not availability.available:
            reason = availability.reason or "requirements not met"
            logger.warning("Choice %d on node '%s' not available: %s", index, node.id, reason)
            return ChoiceResult.failure(f"Choice not available: {reason}")

        choice = node.choices[index]
        self._emit(GameEvent(type=EventType.CHOICE_SELECTED, choice=choice, choice_index=index))

        target = choice.next_id
        effect_result = None
        if choice.effects:
            effect_result = self._apply_effects(choice.effects)
            jump = effect_result.goto_node_id
            if jump is not None:
                if self._story.get_node(jump) is not None:
                    target = jump
                else:
                    logger.warning(
                        "Choice %d on node '%s' jumps to unknown node '%s'; using '%s'",
                        index, node.id, jump, choice.next_id,
                    )

        if not self._enter_node(target):
            return ChoiceResult(
                success=False,
                node_id=self._state.current_node_id,
                effect_result=effect_result,
                error=f"Node not found: {target}",
            )
        return ChoiceResult(
            success=True,
            node_id=self._state.current_node_id,
            effect_result=effect_result,
        )

    # ------------------------------------------------------------------
    # Puzzles
    # ------------------------------------------------------------------

    def solve_puzzle(self, answer: Any, *, time_ms: int | None = None) -> PuzzleAttempt:
        """
        Submit an answer to the current node's puzzle.

        ``time_ms`` is the time the player took; when it is reported and the
        puzzle has a time limit, a late answer is scored incorrect.
        """
        puzzle = self.active_puzzle
        if puzzle is None:
            logger.warning("solve_puzzle called with no active puzzle")
            return PuzzleAttempt.failure("No active puzzle")

        progress = self._state.get_puzzle(puzzle.id)
        if progress.solved:
            return PuzzleAttempt(
                success=True,
                attempts=progress.attempts,
                solved=True,
                node_id=self._state.current_node_id,
            )

        if puzzle.attempts_max is not None and progress.attempts >= puzzle.attempts_max:
            return PuzzleAttempt.failure("No attempts remaining", attempts=progress.attempts)

        time_limit = self._time_limit(puzzle, progress)
        try:
            result = self._scorer(puzzle, answer)
        except Exception as e:
            logger.exception("Scoring failed for puzzle '%s'", puzzle.id)
            return PuzzleAttempt.failure(f"Scoring failed: {e}", attempts=progress.attempts)

        if time_ms is not None and time_limit is not None and time_ms > time_limit:
            result = PuzzleResult(correct=False, score=0.0, message=TIME_LIMIT_MESSAGE)

        progress.attempts += 1
        progress.last_answer = jsonable_answer(answer)
        progress.score = result.score
        if time_ms is not None:
            progress.time_ms = time_ms

        outcome = None
        if result.correct:
            progress.solved = True
            progress.solved_at = self._clock()
            outcome = puzzle.success
        elif puzzle.attempts_max is not None and progress.attempts >= puzzle.attempts_max:
            outcome = puzzle.failure

        effect_result = None
        target = None
        if outcome is not None:
            if outcome.effects:
                effect_result = self._apply_effects(outcome.effects)
            target = outcome.next_id
            if target is None and effect_result is not None:
                target = effect_result.goto_node_id

        self._emit(
            GameEvent(
                type=EventType.PUZZLE_COMPLETED,
                puzzle=puzzle,
                result=result,
                success=result.correct,
            )
        )
        self._emit_state_changed()

        if target is not None:
            self._enter_node(target)

        return PuzzleAttempt(
            success=result.correct,
            result=result,
            attempts=progress.attempts,
            solved=progress.solved,
            node_id=self._state.current_node_id,
            effect_result=effect_result,
        )

    def _time_limit(self, puzzle: Puzzle, progress: PuzzleState) -> int | None:
        if puzzle.time_limit_ms is None:
            return None
        dynamic = puzzle.dynamic
        if (
            dynamic is not None
            and dynamic.extra_time_ms
            and dynamic.if_attempts_gt is not None
            and progress.attempts > dynamic.if_attempts_gt
        ):
            return puzzle.time_limit_ms + dynamic.extra_time_ms
        return puzzle.time_limit_ms

    def request_hint(self) -> str | None:
        """
        Reveal the next hint for the active puzzle.

        Returns None when there is no hint left, the attempt threshold has
        not been passed yet, or the player cannot pay the hint cost.
        """
        puzzle = self.active_puzzle
        if puzzle is None or not puzzle.hints:
            return None

        progress = self._state.get_puzzle(puzzle.id)
        if progress.hints_used >= len(puzzle.hints):
            return None

        dynamic = puzzle.dynamic
        if dynamic is not None and dynamic.if_attempts_gt is not None:
            if progress.attempts <= dynamic.if_attempts_gt:
                return None

        if dynamic is not None and dynamic.give_hint_cost is not None:
            cost = dynamic.give_hint_cost
            if self._state.currencies.get(cost.currency_id, 0) < cost.value:
                logger.info("Cannot afford hint for puzzle '%s'", puzzle.id)
                return None
            self._apply_effects([AddCurrency(currency_id=cost.currency_id, value=-cost.value)])

        hint = puzzle.hints[progress.hints_used]
        progress.hints_used += 1
        self._emit_state_changed()
        return hint

    # ------------------------------------------------------------------
    # State lifecycle
    # ------------------------------------------------------------------

    def load_state(self, state: GameState | dict[str, Any] | str):
        """Replace the live state with a copy of ``state`` or a snapshot."""
        if isinstance(state, GameState):
            self._state = state.clone()
        else:
            self._state = deserialize_state(state)
        self._active_puzzle = None
        self._emit_state_changed()

    def reset(self):
        self._state = self._new_state()
        self._active_puzzle = None
        self._emit_state_changed()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _apply_effects(self, effects: list[Effect]) -> EffectResult:
        result = self._resolver.apply(effects, self._state)
        self._emit(GameEvent(type=EventType.EFFECTS_APPLIED, effect_result=result))
        return result

    def _emit_state_changed(self):
        self._emit(GameEvent(type=EventType.STATE_CHANGED, state=self._state.clone()))

    def _emit(self, event: GameEvent):
        self._events.emit(event)
