"""
Requirement Evaluator - Decides whether a choice's gate is open.

Evaluates the requirement DSL against game state:
- Composites: all_of (short-circuit AND), any_of (short-circuit OR), not
- Leaves: inventory, currency, stat, flag, puzzle and visited checks

Evaluation is total and pure. It never raises and never mutates state: an
incomplete leaf evaluates to False and is reported through the optional
warnings list and the module logger.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from ..story_schema import Story
from ..story_schema.requirement_dsl import (
    AllOf,
    AnyOf,
    CurrencyGte,
    CurrencyLt,
    FlagIs,
    HasItem,
    InventoryLt,
    Not,
    PuzzleSolved,
    RequirementExpr,
    RequirementOp,
    StatBetween,
    StatGte,
    VisitedNode,
)
from .clock import system_clock
from .state import GameState

logger = logging.getLogger(__name__)


@dataclass
class RequirementContext:
    """
    Context for evaluating requirements.

    Provides read access to:
    - Current game state
    - The story catalogs
    - A sink for warnings about malformed leaves
    """
    state: GameState
    story: Story
    warnings: list[str] = field(default_factory=list)

    def warn(self, message: str):
        logger.warning(message)
        self.warnings.append(message)


class RequirementEvaluator:
    """
    Evaluates requirement expressions.

    Expressions can be:
    - None: no requirement, always true
    - Leaves: {"op": "has_item", "item_id": "key", "qty": 1}
    - Composites: {"all_of": [...]}, {"any_of": [...]}, {"not": {...}}
    """

    def evaluate(self, expr: RequirementExpr | None, context: RequirementContext) -> bool:
        if expr is None:
            return True

        if isinstance(expr, AllOf):
            return all(self.evaluate(child, context) for child in expr.all_of)
        if isinstance(expr, AnyOf):
            return any(self.evaluate(child, context) for child in expr.any_of)
        if isinstance(expr, Not):
            return not self.evaluate(expr.not_, context)

        return self._evaluate_leaf(expr, context)

    def _evaluate_leaf(self, leaf: Any, context: RequirementContext) -> bool:
        handler = self._get_handler(getattr(leaf, "op", None))
        if handler is None:
            context.warn(f"Unknown requirement operation: {getattr(leaf, 'op', leaf)!r}")
            return False
        return handler(leaf, context)

    def _get_handler(self, op: str | None) -> Callable[[Any, RequirementContext], bool] | None:
        """Get the handler function for a leaf operation."""
        handlers = {
            RequirementOp.HAS_ITEM: self._has_item,
            RequirementOp.INVENTORY_LT: self._inventory_lt,
            RequirementOp.CURRENCY_GTE: self._currency_gte,
            RequirementOp.CURRENCY_LT: self._currency_lt,
            RequirementOp.STAT_GTE: self._stat_gte,
            RequirementOp.STAT_BETWEEN: self._stat_between,
            RequirementOp.FLAG_IS: self._flag_is,
            RequirementOp.PUZZLE_SOLVED: self._puzzle_solved,
            RequirementOp.VISITED_NODE: self._visited_node,
        }
        try:
            return handlers.get(RequirementOp(op))
        except ValueError:
            return None

    @staticmethod
    def _incomplete(leaf: Any, context: RequirementContext, *fields: str) -> bool:
        missing = [name for name in fields if getattr(leaf, name) is None]
        if missing:
            context.warn(
                f"Requirement '{leaf.op}' is missing {', '.join(missing)}; treating as false"
            )
            return True
        return False

    # ------------------------------------------------------------------
    # Leaf handlers
    # ------------------------------------------------------------------

    def _has_item(self, leaf: HasItem, context: RequirementContext) -> bool:
        if self._incomplete(leaf, context, "item_id", "qty"):
            return False
        return context.state.inventory.get(leaf.item_id, 0) >= leaf.qty

    def _inventory_lt(self, leaf: InventoryLt, context: RequirementContext) -> bool:
        if self._incomplete(leaf, context, "item_id", "qty"):
            return False
        return context.state.inventory.get(leaf.item_id, 0) < leaf.qty

    def _currency_gte(self, leaf: CurrencyGte, context: RequirementContext) -> bool:
        if self._incomplete(leaf, context, "currency_id", "value"):
            return False
        return context.state.currencies.get(leaf.currency_id, 0) >= leaf.value

    def _currency_lt(self, leaf: CurrencyLt, context: RequirementContext) -> bool:
        if self._incomplete(leaf, context, "currency_id", "value"):
            return False
        return context.state.currencies.get(leaf.currency_id, 0) < leaf.value

    def _stat_gte(self, leaf: StatGte, context: RequirementContext) -> bool:
        if self._incomplete(leaf, context, "stat_id", "value"):
            return False
        return context.state.stats.get(leaf.stat_id, 0) >= leaf.value

    def _stat_between(self, leaf: StatBetween, context: RequirementContext) -> bool:
        if self._incomplete(leaf, context, "stat_id", "min", "max"):
            return False
        return leaf.min <= context.state.stats.get(leaf.stat_id, 0) <= leaf.max

    def _flag_is(self, leaf: FlagIs, context: RequirementContext) -> bool:
        if self._incomplete(leaf, context, "flag", "value"):
            return False
        return context.state.flags.get(leaf.flag, False) == leaf.value

    def _puzzle_solved(self, leaf: PuzzleSolved, context: RequirementContext) -> bool:
        if self._incomplete(leaf, context, "puzzle_id"):
            return False
        return context.state.is_puzzle_solved(leaf.puzzle_id)

    def _visited_node(self, leaf: VisitedNode, context: RequirementContext) -> bool:
        if self._incomplete(leaf, context, "node_id"):
            return False
        return leaf.node_id in context.state.visited


_EVALUATOR = RequirementEvaluator()


def evaluate_requirement(
    expr: RequirementExpr | None,
    state: GameState,
    story: Story,
    warnings: list[str] | None = None,
) -> bool:
    """
    Convenience function to evaluate a requirement expression.

    Warnings about incomplete leaves are appended to ``warnings`` when given.
    """
    context = RequirementContext(
        state=state,
        story=story,
        warnings=warnings if warnings is not None else [],
    )
    return _EVALUATOR.evaluate(expr, context)


def is_timer_active(timer_flag: str, state: GameState, now: int | None = None) -> bool:
    """True while the timer exists and has not reached its expiry."""
    timer = state.timers.get(timer_flag)
    if timer is None:
        return False
    if now is None:
        now = system_clock()
    return now < timer.expires_at
