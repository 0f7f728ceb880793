"""
Effect DSL - Operations that mutate game state or redirect the story.

Effects are:
- Tagged: each operation is its own model, selected by ``op``
- Ordered: lists are applied strictly in sequence by the resolver
- Composable: a loot table nests weighted bundles of further effects

Each model carries only the fields its operation needs, and those fields
are required when a story is loaded.
"""

from __future__ import annotations
from enum import Enum
from typing import Annotated, Iterator, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


Number = Union[int, float]


class EffectOp(str, Enum):
    """Effect operations understood by the resolver."""
    # Inventory and economy
    ADD_ITEM = "add_item"
    REMOVE_ITEM = "remove_item"
    ADD_CURRENCY = "add_currency"
    ADD_STAT = "add_stat"
    SET_FLAG = "set_flag"

    # Narrative
    LOG = "log"
    GOTO = "goto"

    # Choice gating
    UNLOCK_CHOICE = "unlock_choice"
    LOCK_CHOICE = "lock_choice"

    # Passive timers
    SET_TIMER = "set_timer"

    # Randomised bundles
    LOOT_TABLE = "loot_table"


class _EffectBase(BaseModel):
    model_config = ConfigDict(frozen=True)


class AddItem(_EffectBase):
    op: Literal["add_item"] = "add_item"
    item_id: str
    qty: int


class RemoveItem(_EffectBase):
    op: Literal["remove_item"] = "remove_item"
    item_id: str
    qty: int


class AddCurrency(_EffectBase):
    """Add (or subtract, with a negative value) currency."""
    op: Literal["add_currency"] = "add_currency"
    currency_id: str
    value: Number


class AddStat(_EffectBase):
    op: Literal["add_stat"] = "add_stat"
    stat_id: str
    value: Number


class SetFlag(_EffectBase):
    op: Literal["set_flag"] = "set_flag"
    flag: str
    value: bool


class Log(_EffectBase):
    """Append a literal message to the effect log."""
    op: Literal["log"] = "log"
    message: str = ""


class Goto(_EffectBase):
    """Ask the caller to jump to another node. Does not enter it."""
    op: Literal["goto"] = "goto"
    next_id: str


class UnlockChoice(_EffectBase):
    op: Literal["unlock_choice"] = "unlock_choice"
    node_id: str
    choice_index: int


class LockChoice(_EffectBase):
    op: Literal["lock_choice"] = "lock_choice"
    node_id: str
    choice_index: int


class SetTimer(_EffectBase):
    """Record an absolute expiry ``expires_in_ms`` from now."""
    op: Literal["set_timer"] = "set_timer"
    timer_flag: str
    expires_in_ms: int


class LootEntry(BaseModel):
    """One weighted bundle of effects in a loot table."""
    model_config = ConfigDict(frozen=True)

    weight: Number
    effects: list[Effect] = Field(default_factory=list)


class LootTable(_EffectBase):
    """Draw exactly one entry, weighted, and apply its effects."""
    op: Literal["loot_table"] = "loot_table"
    table: list[LootEntry] = Field(default_factory=list)


Effect = Annotated[
    Union[
        AddItem,
        RemoveItem,
        AddCurrency,
        AddStat,
        SetFlag,
        Log,
        Goto,
        UnlockChoice,
        LockChoice,
        SetTimer,
        LootTable,
    ],
    Field(discriminator="op"),
]

LootEntry.model_rebuild()
LootTable.model_rebuild()


def iter_effects(effects: list[Effect]) -> Iterator[Effect]:
    """Yield every effect in a list, descending into loot table entries."""
    for effect in effects:
        yield effect
        if isinstance(effect, LootTable):
            for entry in effect.table:
                yield from iter_effects(entry.effects)


# ============================================================================
# Factory functions for common effects
# ============================================================================

def add_item(item_id: str, qty: int = 1) -> AddItem:
    """Create an add_item effect."""
    return AddItem(item_id=item_id, qty=qty)


def remove_item(item_id: str, qty: int = 1) -> RemoveItem:
    """Create a remove_item effect."""
    return RemoveItem(item_id=item_id, qty=qty)


def add_stat(stat_id: str, value: Number) -> AddStat:
    """Create an add_stat effect."""
    return AddStat(stat_id=stat_id, value=value)


def goto(next_id: str) -> Goto:
    """Create a goto effect."""
    return Goto(next_id=next_id)


def loot_table(*entries: tuple[Number, list[Effect]]) -> LootTable:
    """Create a loot table from ``(weight, effects)`` pairs."""
    return LootTable(
        table=[LootEntry(weight=weight, effects=effects) for weight, effects in entries],
    )
