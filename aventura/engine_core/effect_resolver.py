"""
Effect Resolver - Applies effect lists to game state.

This module is the only place outside the orchestrator that mutates
GameState. It handles:
- Inventory with stack limits, currencies floored at zero, bounded stats
- Flags, timers and choice locks
- Goto requests (recorded, never entered here)
- Loot tables drawn from an injectable random source

Effects run strictly in order and every one is attempted. A failing effect
marks the result unsuccessful and is logged, but never stops the list and
never raises.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from ..story_schema import Story
from ..story_schema.effect_dsl import (
    AddCurrency,
    AddItem,
    AddStat,
    Effect,
    EffectOp,
    Goto,
    LockChoice,
    Log,
    LootTable,
    RemoveItem,
    SetFlag,
    SetTimer,
    UnlockChoice,
)
from .clock import Clock, system_clock
from .random_source import RandomSource, default_random_source, select_weighted
from .state import GameState, TimerState

logger = logging.getLogger(__name__)


@dataclass
class EffectResult:
    """
    Result of applying a list of effects.

    ``goto_node_id`` is the first jump requested anywhere in the list; the
    caller decides whether to follow it.
    """
    success: bool = True
    logs: list[str] = field(default_factory=list)
    goto_node_id: str | None = None

    @classmethod
    def failure(cls, message: str) -> EffectResult:
        """Create a failure result."""
        logger.warning(message)
        return cls(success=False, logs=[message])

    @classmethod
    def ok(cls, message: str, goto_node_id: str | None = None) -> EffectResult:
        return cls(success=True, logs=[message], goto_node_id=goto_node_id)

    def absorb(self, other: EffectResult):
        """Fold another result into this one, keeping the first goto."""
        self.logs.extend(other.logs)
        if not other.success:
            self.success = False
        if other.goto_node_id is not None:
            if self.goto_node_id is None:
                self.goto_node_id = other.goto_node_id
            else:
                self.logs.append(
                    f"Ignoring goto {other.goto_node_id}; already jumping to {self.goto_node_id}"
                )


@dataclass
class EffectResolver:
    """
    Applies effects against a story's catalogs.

    Holds no game state of its own; the state passed to ``apply`` is
    mutated in place.
    """
    story: Story
    rng: RandomSource = field(default_factory=default_random_source)
    clock: Clock = system_clock

    def apply(self, effects: list[Effect] | None, state: GameState) -> EffectResult:
        result = EffectResult()
        for effect in effects or []:
            result.absorb(self._apply_single(effect, state))
        return result

    def _apply_single(self, effect: Any, state: GameState) -> EffectResult:
        handlers: dict[EffectOp, Callable[[Any, GameState], EffectResult]] = {
            EffectOp.ADD_ITEM: self._add_item,
            EffectOp.REMOVE_ITEM: self._remove_item,
            EffectOp.ADD_CURRENCY: self._add_currency,
            EffectOp.ADD_STAT: self._add_stat,
            EffectOp.SET_FLAG: self._set_flag,
            EffectOp.LOG: self._log,
            EffectOp.GOTO: self._goto,
            EffectOp.UNLOCK_CHOICE: self._unlock_choice,
            EffectOp.LOCK_CHOICE: self._lock_choice,
            EffectOp.SET_TIMER: self._set_timer,
            EffectOp.LOOT_TABLE: self._loot_table,
        }

        op = getattr(effect, "op", None)
        try:
            handler = handlers.get(EffectOp(op))
        except ValueError:
            handler = None
        if not handler:
            return EffectResult.failure(f"Unknown effect operation: {op!r}")

        return handler(effect, state)

    def _add_item(self, effect: AddItem, state: GameState) -> EffectResult:
        item = self.story.get_item(effect.item_id)
        if item is None:
            return EffectResult.failure(f"Item not found: {effect.item_id}")

        new_qty = state.inventory.get(effect.item_id, 0) + effect.qty
        new_qty = self._clamp_quantity(item.id, new_qty)
        state.inventory[effect.item_id] = new_qty
        return EffectResult.ok(f"Added {effect.qty} x {item.name} (total: {new_qty})")

    def _remove_item(self, effect: RemoveItem, state: GameState) -> EffectResult:
        item = self.story.get_item(effect.item_id)
        if item is None:
            return EffectResult.failure(f"Item not found: {effect.item_id}")

        new_qty = state.inventory.get(effect.item_id, 0) - effect.qty
        new_qty = self._clamp_quantity(item.id, new_qty)
        state.inventory[effect.item_id] = new_qty
        return EffectResult.ok(f"Removed {effect.qty} x {item.name} (remaining: {new_qty})")

    def _clamp_quantity(self, item_id: str, qty: int) -> int:
        item = self.story.get_item(item_id)
        if not item.stackable:
            qty = min(qty, 1)
        elif item.max_stack is not None:
            qty = min(qty, item.max_stack)
        return max(0, qty)

    def _add_currency(self, effect: AddCurrency, state: GameState) -> EffectResult:
        current = state.currencies.get(effect.currency_id, 0)
        new_amount = max(0, current + effect.value)
        state.currencies[effect.currency_id] = new_amount
        return EffectResult.ok(f"Currency {effect.currency_id}: {current} -> {new_amount}")

    def _add_stat(self, effect: AddStat, state: GameState) -> EffectResult:
        stat = self.story.get_stat(effect.stat_id)
        if stat is None:
            return EffectResult.failure(f"Stat not found: {effect.stat_id}")

        current = state.stats.get(effect.stat_id, stat.start)
        new_value = max(stat.min, min(stat.max, current + effect.value))
        state.stats[effect.stat_id] = new_value
        return EffectResult.ok(f"Stat {stat.name}: {current} -> {new_value}")

    def _set_flag(self, effect: SetFlag, state: GameState) -> EffectResult:
        state.flags[effect.flag] = effect.value
        return EffectResult.ok(f"Flag {effect.flag} set to {effect.value}")

    def _log(self, effect: Log, state: GameState) -> EffectResult:
        return EffectResult.ok(effect.message)

    def _goto(self, effect: Goto, state: GameState) -> EffectResult:
        return EffectResult.ok(f"Jumping to node: {effect.next_id}", goto_node_id=effect.next_id)

    def _unlock_choice(self, effect: UnlockChoice, state: GameState) -> EffectResult:
        locked = state.locked_choices.get(effect.node_id, [])
        state.locked_choices[effect.node_id] = [
            index for index in locked if index != effect.choice_index
        ]
        return EffectResult.ok(f"Unlocked choice {effect.choice_index} in node {effect.node_id}")

    def _lock_choice(self, effect: LockChoice, state: GameState) -> EffectResult:
        locked = state.locked_choices.setdefault(effect.node_id, [])
        if effect.choice_index not in locked:
            locked.append(effect.choice_index)
        return EffectResult.ok(f"Locked choice {effect.choice_index} in node {effect.node_id}")

    def _set_timer(self, effect: SetTimer, state: GameState) -> EffectResult:
        state.timers[effect.timer_flag] = TimerState(
            expires_at=self.clock() + effect.expires_in_ms,
        )
        return EffectResult.ok(
            f"Timer {effect.timer_flag} set to expire in {effect.expires_in_ms}ms"
        )

    def _loot_table(self, effect: LootTable, state: GameState) -> EffectResult:
        if not effect.table:
            return EffectResult.failure("Invalid loot_table effect: empty table")

        entry = select_weighted(
            effect.table,
            [entry.weight for entry in effect.table],
            self.rng,
        )
        if entry is None:
            return EffectResult.failure("Invalid loot_table effect: total weight is zero")

        result = EffectResult.ok("Loot table rolled:")
        result.absorb(self.apply(entry.effects, state))
        return result


def apply_effects(
    effects: list[Effect] | None,
    state: GameState,
    story: Story,
    *,
    rng: RandomSource | None = None,
    clock: Clock | None = None,
) -> EffectResult:
    """
    Convenience function to apply effects.

    Creates an EffectResolver and applies the list to ``state`` in place.
    """
    resolver = EffectResolver(
        story=story,
        rng=rng or default_random_source(),
        clock=clock or system_clock,
    )
    return resolver.apply(effects, state)
