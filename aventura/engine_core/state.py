"""
Game State - The single mutable aggregate of a play-through.

Design principles:
- Plain dataclasses: the effects engine and the orchestrator mutate in place,
  everyone else works on clones
- Serializable: snapshots round-trip through a pydantic TypeAdapter as plain
  JSON-compatible dicts
- Story-agnostic: catalogs live in the Story, state only holds ids and values
"""

from __future__ import annotations
import json
from copy import deepcopy
from dataclasses import asdict, dataclass, field, is_dataclass
from typing import Any, Union

from pydantic import TypeAdapter, ValidationError
from pydantic_core import to_jsonable_python

from ..errors import StateError
from ..story_schema import Story
from .clock import system_clock

Number = Union[int, float]


@dataclass
class PuzzleState:
    """Progress on one puzzle. Once solved, never unsolved."""
    solved: bool = False
    attempts: int = 0
    time_ms: int | None = None
    score: float | None = None
    last_answer: Any = None
    solved_at: int | None = None
    hints_used: int = 0


@dataclass
class TimerState:
    expires_at: int  # epoch milliseconds


@dataclass
class GameState:
    """
    Everything that changes while playing.

    Missing map entries read as zero / False. ``locked_choices`` maps a node
    id to the choice indices currently locked on it.
    """
    current_node_id: str
    visited: set[str] = field(default_factory=set)
    inventory: dict[str, int] = field(default_factory=dict)
    currencies: dict[str, Number] = field(default_factory=dict)
    stats: dict[str, Number] = field(default_factory=dict)
    flags: dict[str, bool] = field(default_factory=dict)
    puzzles: dict[str, PuzzleState] = field(default_factory=dict)
    timers: dict[str, TimerState] = field(default_factory=dict)
    locked_choices: dict[str, list[int]] = field(default_factory=dict)

    def clone(self) -> GameState:
        """Deep copy the state."""
        return deepcopy(self)

    def get_puzzle(self, puzzle_id: str) -> PuzzleState:
        """Get the progress record for a puzzle, creating it on first use."""
        if puzzle_id not in self.puzzles:
            self.puzzles[puzzle_id] = PuzzleState()
        return self.puzzles[puzzle_id]

    def is_puzzle_solved(self, puzzle_id: str) -> bool:
        progress = self.puzzles.get(puzzle_id)
        return bool(progress and progress.solved)

    def is_choice_locked(self, node_id: str, choice_index: int) -> bool:
        return choice_index in self.locked_choices.get(node_id, [])


@dataclass
class StateSummary:
    current_node_id: str
    visited_count: int
    item_count: int
    total_currency: Number
    puzzles_solved: int
    puzzles_total: int
    active_timers: int


_STATE_ADAPTER: TypeAdapter[GameState] = TypeAdapter(GameState)

# Maps merged key-by-key by merge_state
_MAP_FIELDS = (
    "inventory",
    "currencies",
    "stats",
    "flags",
    "puzzles",
    "timers",
    "locked_choices",
)


def create_initial_state(story: Story, start_node_id: str | None = None) -> GameState:
    """
    Fresh state for a story.

    Items and currencies start at 0, stats at their catalog start value. The
    current node is the override when given, else the first node.
    """
    first = story.first_node
    return GameState(
        current_node_id=start_node_id or (first.id if first else ""),
        inventory={item.id: 0 for item in story.items},
        currencies={currency.id: 0 for currency in story.currencies},
        stats={stat.id: stat.start for stat in story.stats},
    )


def clone_state(state: GameState) -> GameState:
    return state.clone()


def jsonable_answer(answer: Any) -> Any:
    """
    Copy of a player answer as it reads back from a snapshot.

    Tuples and sets become lists; values JSON cannot hold become strings.
    """
    return to_jsonable_python(answer, fallback=str)


def serialize_state(state: GameState) -> dict[str, Any]:
    """Snapshot as a plain JSON-compatible dict."""
    return _STATE_ADAPTER.dump_python(state, mode="json")


def state_to_json(state: GameState, indent: int | None = 2) -> str:
    return json.dumps(serialize_state(state), indent=indent)


def deserialize_state(data: dict[str, Any] | str) -> GameState:
    """
    Restore a snapshot from a dict or a JSON string.

    Raises StateError when the snapshot is malformed.
    """
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as exc:
            raise StateError(f"Invalid state JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise StateError("State snapshot must be a JSON object")
    try:
        return _STATE_ADAPTER.validate_python(data)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        )
        raise StateError(f"Malformed state snapshot: {problems}") from exc


def _plain(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    return value


def merge_state(current: GameState, updates: dict[str, Any]) -> GameState:
    """
    Return a new state with ``updates`` applied.

    Each map is merged key by key, ``visited`` is unioned and any other field
    is replaced. ``current`` is left untouched.
    """
    merged = serialize_state(current)
    for key, value in updates.items():
        if key == "visited":
            merged["visited"] = sorted(set(merged["visited"]) | set(value))
        elif key in _MAP_FIELDS:
            merged[key] = {**merged[key], **_plain(value)}
        else:
            merged[key] = _plain(value)
    return deserialize_state(merged)


def validate_state(state: GameState, story: Story) -> list[str]:
    """Check a state against a story. Returns a list of problems."""
    errors: list[str] = []

    if story.get_node(state.current_node_id) is None:
        errors.append(f"Current node not found: {state.current_node_id}")

    for item_id, qty in state.inventory.items():
        if story.get_item(item_id) is None:
            errors.append(f"Inventory contains undefined item: {item_id}")
        if qty < 0:
            errors.append(f"Item {item_id} has negative quantity {qty}")

    for currency_id, amount in state.currencies.items():
        if story.get_currency(currency_id) is None:
            errors.append(f"State contains undefined currency: {currency_id}")
        if amount < 0:
            errors.append(f"Currency {currency_id} has negative amount {amount}")

    for stat_id, value in state.stats.items():
        stat = story.get_stat(stat_id)
        if stat is None:
            errors.append(f"State contains undefined stat: {stat_id}")
        elif value < stat.min or value > stat.max:
            errors.append(
                f"Stat {stat_id} value {value} is out of bounds [{stat.min}, {stat.max}]"
            )

    return errors


def get_state_summary(state: GameState, now: int | None = None) -> StateSummary:
    if now is None:
        now = system_clock()
    return StateSummary(
        current_node_id=state.current_node_id,
        visited_count=len(state.visited),
        item_count=sum(state.inventory.values()),
        total_currency=sum(state.currencies.values()),
        puzzles_solved=sum(1 for progress in state.puzzles.values() if progress.solved),
        puzzles_total=len(state.puzzles),
        active_timers=sum(1 for timer in state.timers.values() if timer.expires_at > now),
    )
