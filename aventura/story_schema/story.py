"""
Story - The declarative, read-only story graph.

A Story holds:
- Metadata (title, language, version)
- Catalogs (assets, items, currencies, stats) that effects and
  requirements refer to by id
- An ordered list of nodes; the first one is the default start

Stories are loaded once and never mutated. Parsing only checks shapes;
cross references are checked by ``validate_story``.
"""

from __future__ import annotations
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from .effect_dsl import Effect
from .media import MediaAsset, MediaRef
from .puzzle_dsl import Puzzle
from .requirement_dsl import RequirementExpr


Number = Union[int, float]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class ItemDef(_Frozen):
    """
    An inventory item.

    Stack rules: non-stackable items cap at 1, stackable items cap at
    ``max_stack`` when it is set and are unbounded otherwise.
    """
    id: str
    name: str
    type: str = "misc"
    stackable: bool = True
    max_stack: int | None = None
    icon: str | None = None
    desc: str | None = None


class CurrencyDef(_Frozen):
    id: str
    name: str
    symbol: str | None = None


class StatDef(_Frozen):
    """A bounded numeric stat. Effects clamp it to [min, max]."""
    id: str
    name: str
    min: Number
    max: Number
    start: Number


class Choice(_Frozen):
    """A labeled transition to ``next_id``, optionally gated and with effects."""
    label: str
    next_id: str
    requirements: RequirementExpr | None = None
    effects: list[Effect] = Field(default_factory=list)
    disabled_reason: str | None = None


class NodeOnEnter(_Frozen):
    effects: list[Effect] = Field(default_factory=list)


class Node(_Frozen):
    """One narrative beat."""
    id: str
    part: int = 1
    type: Literal["ending"] | None = None
    title: str = ""
    text: str = ""
    media: list[MediaRef] = Field(default_factory=list)
    on_enter: NodeOnEnter | None = None
    puzzle: Puzzle | None = None
    choices: list[Choice] = Field(default_factory=list)

    @property
    def is_ending(self) -> bool:
        return self.type == "ending"

    @property
    def on_enter_effects(self) -> list[Effect]:
        return self.on_enter.effects if self.on_enter else []


class Story(_Frozen):
    """
    Complete story document.

    Required metadata defaults to empty strings so that the validator can
    report every missing field in one pass instead of failing on the first.
    """
    title: str = ""
    language: str = ""
    version: str = ""
    assets: list[MediaAsset] = Field(default_factory=list)
    items: list[ItemDef] = Field(default_factory=list)
    currencies: list[CurrencyDef] = Field(default_factory=list)
    stats: list[StatDef] = Field(default_factory=list)
    nodes: list[Node] = Field(default_factory=list)

    # Lookup tables, first definition wins on duplicate ids
    _nodes_by_id: dict[str, Node] = PrivateAttr(default_factory=dict)
    _items_by_id: dict[str, ItemDef] = PrivateAttr(default_factory=dict)
    _stats_by_id: dict[str, StatDef] = PrivateAttr(default_factory=dict)
    _currencies_by_id: dict[str, CurrencyDef] = PrivateAttr(default_factory=dict)
    _assets_by_id: dict[str, MediaAsset] = PrivateAttr(default_factory=dict)

    def model_post_init(self, __context: Any) -> None:
        self._nodes_by_id = _index(self.nodes)
        self._items_by_id = _index(self.items)
        self._stats_by_id = _index(self.stats)
        self._currencies_by_id = _index(self.currencies)
        self._assets_by_id = _index(self.assets)

    @property
    def first_node(self) -> Node | None:
        return self.nodes[0] if self.nodes else None

    def get_node(self, node_id: str) -> Node | None:
        return self._nodes_by_id.get(node_id)

    def get_item(self, item_id: str) -> ItemDef | None:
        return self._items_by_id.get(item_id)

    def get_stat(self, stat_id: str) -> StatDef | None:
        return self._stats_by_id.get(stat_id)

    def get_currency(self, currency_id: str) -> CurrencyDef | None:
        return self._currencies_by_id.get(currency_id)

    def get_asset(self, asset_id: str) -> MediaAsset | None:
        return self._assets_by_id.get(asset_id)

    def puzzles(self) -> list[tuple[Node, Puzzle]]:
        """Every (node, puzzle) pair in node order."""
        return [(node, node.puzzle) for node in self.nodes if node.puzzle is not None]


def _index(entries: list[Any]) -> dict[str, Any]:
    index: dict[str, Any] = {}
    for entry in entries:
        index.setdefault(entry.id, entry)
    return index
