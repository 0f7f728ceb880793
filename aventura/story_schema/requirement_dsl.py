"""
Requirement DSL - Boolean expressions that gate choices.

A requirement expression is either a leaf condition tagged by ``op`` or a
composite:
- {"all_of": [...]}  conjunction
- {"any_of": [...]}  disjunction
- {"not": expr}      negation

Leaf fields are optional at parse time. An incomplete leaf still loads and is
reported by the evaluator, which treats it as false.
"""

from __future__ import annotations
from enum import Enum
from typing import Annotated, Any, Iterator, Literal, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag


Number = Union[int, float]


class RequirementOp(str, Enum):
    """Leaf requirement operations."""
    HAS_ITEM = "has_item"
    INVENTORY_LT = "inventory_lt"
    CURRENCY_GTE = "currency_gte"
    CURRENCY_LT = "currency_lt"
    STAT_GTE = "stat_gte"
    STAT_BETWEEN = "stat_between"
    FLAG_IS = "flag_is"
    PUZZLE_SOLVED = "puzzle_solved"
    VISITED_NODE = "visited_node"


class _Leaf(BaseModel):
    model_config = ConfigDict(frozen=True)


class HasItem(_Leaf):
    """Inventory holds at least ``qty`` of ``item_id``."""
    op: Literal["has_item"] = "has_item"
    item_id: str | None = None
    qty: int | None = None


class InventoryLt(_Leaf):
    """Inventory holds fewer than ``qty`` of ``item_id``."""
    op: Literal["inventory_lt"] = "inventory_lt"
    item_id: str | None = None
    qty: int | None = None


class CurrencyGte(_Leaf):
    op: Literal["currency_gte"] = "currency_gte"
    currency_id: str | None = None
    value: Number | None = None


class CurrencyLt(_Leaf):
    op: Literal["currency_lt"] = "currency_lt"
    currency_id: str | None = None
    value: Number | None = None


class StatGte(_Leaf):
    op: Literal["stat_gte"] = "stat_gte"
    stat_id: str | None = None
    value: Number | None = None


class StatBetween(_Leaf):
    """Inclusive range check on a stat."""
    op: Literal["stat_between"] = "stat_between"
    stat_id: str | None = None
    min: Number | None = None
    max: Number | None = None


class FlagIs(_Leaf):
    op: Literal["flag_is"] = "flag_is"
    flag: str | None = None
    value: bool | None = None


class PuzzleSolved(_Leaf):
    op: Literal["puzzle_solved"] = "puzzle_solved"
    puzzle_id: str | None = None


class VisitedNode(_Leaf):
    op: Literal["visited_node"] = "visited_node"
    node_id: str | None = None


LeafRequirement = Union[
    HasItem,
    InventoryLt,
    CurrencyGte,
    CurrencyLt,
    StatGte,
    StatBetween,
    FlagIs,
    PuzzleSolved,
    VisitedNode,
]


class AllOf(BaseModel):
    """Conjunction. An empty list is true."""
    model_config = ConfigDict(frozen=True)

    all_of: list[RequirementExpr] = Field(default_factory=list)


class AnyOf(BaseModel):
    """Disjunction. An empty list is false."""
    model_config = ConfigDict(frozen=True)

    any_of: list[RequirementExpr] = Field(default_factory=list)


class Not(BaseModel):
    """Negation of a single child expression."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    not_: RequirementExpr = Field(alias="not")


_COMPOSITE_TAGS = {AllOf: "all_of", AnyOf: "any_of", Not: "not"}


def _requirement_tag(value: Any) -> str | None:
    """Pick the union member for raw mappings and parsed models alike."""
    if isinstance(value, dict):
        if "all_of" in value:
            return "all_of"
        if "any_of" in value:
            return "any_of"
        if "not" in value or "not_" in value:
            return "not"
        return value.get("op")
    tag = _COMPOSITE_TAGS.get(type(value))
    if tag:
        return tag
    return getattr(value, "op", None)


RequirementExpr = Annotated[
    Union[
        Annotated[AllOf, Tag("all_of")],
        Annotated[AnyOf, Tag("any_of")],
        Annotated[Not, Tag("not")],
        Annotated[HasItem, Tag("has_item")],
        Annotated[InventoryLt, Tag("inventory_lt")],
        Annotated[CurrencyGte, Tag("currency_gte")],
        Annotated[CurrencyLt, Tag("currency_lt")],
        Annotated[StatGte, Tag("stat_gte")],
        Annotated[StatBetween, Tag("stat_between")],
        Annotated[FlagIs, Tag("flag_is")],
        Annotated[PuzzleSolved, Tag("puzzle_solved")],
        Annotated[VisitedNode, Tag("visited_node")],
    ],
    Discriminator(_requirement_tag),
]

AllOf.model_rebuild()
AnyOf.model_rebuild()
Not.model_rebuild()


def iter_leaves(expr: RequirementExpr | None) -> Iterator[LeafRequirement]:
    """Yield every leaf in an expression tree, depth first."""
    if expr is None:
        return
    if isinstance(expr, AllOf):
        for child in expr.all_of:
            yield from iter_leaves(child)
    elif isinstance(expr, AnyOf):
        for child in expr.any_of:
            yield from iter_leaves(child)
    elif isinstance(expr, Not):
        yield from iter_leaves(expr.not_)
    else:
        yield expr
