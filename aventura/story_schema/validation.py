"""
Story Validation - Static checks on a parsed story graph.

Validates that:
1. Required metadata is present and there is at least one node
2. Identifiers are unique (nodes, catalog entries, puzzles)
3. References resolve (choice targets, outcome targets, gotos, locked
   choices, media, items, stats, visited-node requirements)
4. Invariants hold (endings have no choices, stat bounds are ordered,
   regex puzzles compile, variant overrides produce valid puzzles with
   resolvable references and keep the puzzle id)

Problems that only make a story suspicious (unreferenced nodes, unknown
currencies, redirect loops through on_enter gotos) are warnings.
"""

from __future__ import annotations
import re
from dataclasses import dataclass, field
from typing import Iterable

from pydantic import ValidationError

from ..errors import AventuraError
from .effect_dsl import (
    AddCurrency,
    AddItem,
    AddStat,
    Effect,
    Goto,
    LockChoice,
    LootTable,
    RemoveItem,
    UnlockChoice,
    iter_effects,
)
from .puzzle_dsl import Puzzle, RegexPuzzle, apply_variant
from .requirement_dsl import (
    CurrencyGte,
    CurrencyLt,
    HasItem,
    InventoryLt,
    PuzzleSolved,
    StatBetween,
    StatGte,
    VisitedNode,
    iter_leaves,
)
from .story import Node, Story


class StoryValidationError(AventuraError):
    """Raised when a story fails validation. Lists every violation."""

    def __init__(self, errors: list[str], warnings: list[str] | None = None):
        self.errors = errors
        self.warnings = warnings or []
        super().__init__(
            f"Story validation failed with {len(errors)} error(s):\n"
            + "\n".join(f"  - {error}" for error in errors)
        )


@dataclass
class ValidationResult:
    """Result of validation, with errors and warnings."""
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


JS_REGEX_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "u": 0,
    "g": 0,
    "y": 0,
}


def compile_pattern(pattern: str, flags: str = "") -> re.Pattern[str]:
    """
    Compile a puzzle pattern with single-letter flags.

    Raises re.error for an unknown flag or an invalid pattern.
    """
    compiled_flags = 0
    for flag in flags:
        if flag not in JS_REGEX_FLAGS:
            raise re.error(f"unknown flag '{flag}'")
        compiled_flags |= JS_REGEX_FLAGS[flag]
    return re.compile(pattern, compiled_flags)


def validate_story(story: Story) -> ValidationResult:
    """
    Validate a complete story.

    Returns ValidationResult with errors and warnings. Use ``ensure_valid``
    to raise StoryValidationError instead.
    """
    errors: list[str] = []
    warnings: list[str] = []

    # Basic field validation
    for field_name in ("title", "language", "version"):
        if not getattr(story, field_name):
            errors.append(f"Missing required field: {field_name}")
    if not story.nodes:
        errors.append("Story must have at least one node")

    # Collect valid IDs for reference checking
    node_ids = _collect_ids("node", [node.id for node in story.nodes], errors)
    asset_ids = _collect_ids("asset", [asset.id for asset in story.assets], errors)
    item_ids = _collect_ids("item", [item.id for item in story.items], errors)
    stat_ids = _collect_ids("stat", [stat.id for stat in story.stats], errors)
    currency_ids = _collect_ids(
        "currency", [currency.id for currency in story.currencies], errors
    )
    puzzle_ids = _collect_ids(
        "puzzle", [puzzle.id for _, puzzle in story.puzzles()], errors
    )

    for stat in story.stats:
        if stat.min > stat.max:
            errors.append(f"Stat '{stat.id}' has min {stat.min} greater than max {stat.max}")
        elif not stat.min <= stat.start <= stat.max:
            errors.append(
                f"Stat '{stat.id}' start {stat.start} is outside [{stat.min}, {stat.max}]"
            )

    checker = _ReferenceChecker(
        story=story,
        node_ids=node_ids,
        asset_ids=asset_ids,
        item_ids=item_ids,
        stat_ids=stat_ids,
        currency_ids=currency_ids,
        puzzle_ids=puzzle_ids,
        errors=errors,
        warnings=warnings,
    )
    referenced: set[str] = set()
    for node in story.nodes:
        referenced |= checker.check_node(node)

    # Unreferenced nodes (the first node is the default entry point)
    if story.nodes:
        start_id = story.nodes[0].id
        for node in story.nodes:
            if node.id != start_id and node.id not in referenced:
                warnings.append(f"Node '{node.id}' is not referenced by any choice, outcome or goto")

    warnings.extend(_find_redirect_cycles(story))

    return ValidationResult(
        valid=len(errors) == 0,
        errors=errors,
        warnings=warnings,
    )


def ensure_valid(story: Story) -> ValidationResult:
    """Validate and raise StoryValidationError if any error was found."""
    result = validate_story(story)
    if not result.valid:
        raise StoryValidationError(result.errors, result.warnings)
    return result


def _collect_ids(kind: str, ids: list[str], errors: list[str]) -> set[str]:
    seen: set[str] = set()
    for entry_id in ids:
        if entry_id in seen:
            errors.append(f"Duplicate {kind} ID: {entry_id}")
        seen.add(entry_id)
    return seen


@dataclass
class _ReferenceChecker:
    """Walks one node at a time and records dangling references."""
    story: Story
    node_ids: set[str]
    asset_ids: set[str]
    item_ids: set[str]
    stat_ids: set[str]
    currency_ids: set[str]
    puzzle_ids: set[str]
    errors: list[str]
    warnings: list[str]

    def check_node(self, node: Node) -> set[str]:
        """Validate one node. Returns the node ids it references."""
        referenced: set[str] = set()
        where = f"Node '{node.id}'"

        for ref in node.media:
            if ref.asset_id not in self.asset_ids:
                self.errors.append(f"{where} references undefined asset: {ref.asset_id}")

        referenced |= self._check_effects(node.on_enter_effects, f"{where} on_enter")

        if node.is_ending and node.choices:
            self.errors.append(f"Ending node '{node.id}' should not have choices")

        for index, choice in enumerate(node.choices):
            choice_where = f"{where} choices[{index}]"
            referenced.add(choice.next_id)
            if choice.next_id not in self.node_ids:
                self.errors.append(
                    f"{choice_where} references unknown node '{choice.next_id}'"
                )
            if choice.next_id == node.id and node.puzzle is None and not choice.effects:
                self.errors.append(
                    f"Node '{node.id}' has infinite loop choice without puzzle or effects"
                )
            referenced |= self._check_effects(choice.effects, f"{choice_where} effects")
            self._check_requirement(choice, choice_where)

        if node.puzzle is not None:
            referenced |= self._check_puzzle(node.puzzle)

        return referenced

    def _check_puzzle(
        self, puzzle: Puzzle, where: str | None = None, fields: set[str] | None = None
    ) -> set[str]:
        """
        Check a puzzle's references. For a resolved variant, ``fields`` limits
        the checks to the keys its override replaced.
        """
        referenced: set[str] = set()
        is_variant = fields is not None
        where = where or f"Puzzle '{puzzle.id}'"

        def changed(*names: str) -> bool:
            return fields is None or any(name in fields for name in names)

        for ref in (puzzle.media if changed("media") else []):
            if ref.asset_id not in self.asset_ids:
                self.errors.append(f"{where} references undefined asset: {ref.asset_id}")

        for label, outcome in (("success", puzzle.success), ("failure", puzzle.failure)):
            if outcome is None or not changed(label):
                continue
            if outcome.next_id is not None:
                referenced.add(outcome.next_id)
                if outcome.next_id not in self.node_ids:
                    self.errors.append(
                        f"{where} {label} references unknown node '{outcome.next_id}'"
                    )
            referenced |= self._check_effects(outcome.effects, f"{where} {label} effects")

        if isinstance(puzzle, RegexPuzzle) and changed("kind", "pattern", "flags"):
            self._check_pattern(puzzle, where)

        if is_variant:
            return referenced

        dynamic = puzzle.dynamic
        if dynamic is not None and dynamic.give_hint_cost is not None:
            currency_id = dynamic.give_hint_cost.currency_id
            if currency_id not in self.currency_ids:
                self.warnings.append(f"{where} hint cost uses undeclared currency: {currency_id}")

        for index, variant in enumerate(puzzle.variants):
            variant_where = f"{where} variants[{index}]"
            if variant.override.get("id", puzzle.id) != puzzle.id:
                self.errors.append(f"{variant_where} override must not change the puzzle id")
                continue
            try:
                resolved = apply_variant(puzzle, variant)
            except ValidationError as exc:
                self.errors.append(
                    f"{variant_where} override is invalid: "
                    f"{exc.error_count()} problem(s)"
                )
                continue
            referenced |= self._check_puzzle(
                resolved, variant_where, set(variant.override)
            )

        return referenced

    def _check_pattern(self, puzzle: RegexPuzzle, where: str) -> None:
        try:
            compile_pattern(puzzle.pattern, puzzle.flags)
        except re.error as exc:
            self.errors.append(f"{where} has an invalid regex: {exc}")

    def _check_effects(self, effects: list[Effect], where: str) -> set[str]:
        referenced: set[str] = set()
        for effect in iter_effects(effects):
            if isinstance(effect, (AddItem, RemoveItem)):
                if effect.item_id not in self.item_ids:
                    self.errors.append(f"{where} references undefined item: {effect.item_id}")
            elif isinstance(effect, AddStat):
                if effect.stat_id not in self.stat_ids:
                    self.errors.append(f"{where} references undefined stat: {effect.stat_id}")
            elif isinstance(effect, AddCurrency):
                if effect.currency_id not in self.currency_ids:
                    self.warnings.append(
                        f"{where} uses undeclared currency: {effect.currency_id}"
                    )
            elif isinstance(effect, Goto):
                referenced.add(effect.next_id)
                if effect.next_id not in self.node_ids:
                    self.errors.append(f"{where} goto references unknown node '{effect.next_id}'")
            elif isinstance(effect, (LockChoice, UnlockChoice)):
                self._check_choice_target(effect, where)
            elif isinstance(effect, LootTable):
                if not effect.table or sum(entry.weight for entry in effect.table) <= 0:
                    self.warnings.append(f"{where} has a loot table with no positive weight")
        return referenced

    def _check_choice_target(self, effect: LockChoice | UnlockChoice, where: str) -> None:
        target = self.story.get_node(effect.node_id)
        if target is None:
            self.errors.append(f"{where} {effect.op} references unknown node '{effect.node_id}'")
        elif not 0 <= effect.choice_index < len(target.choices):
            self.errors.append(
                f"{where} {effect.op} index {effect.choice_index} is out of range "
                f"for node '{effect.node_id}'"
            )

    def _check_requirement(self, choice, where: str) -> None:
        for leaf in iter_leaves(choice.requirements):
            if isinstance(leaf, (HasItem, InventoryLt)):
                if leaf.item_id is not None and leaf.item_id not in self.item_ids:
                    self.errors.append(f"{where} requirement references undefined item: {leaf.item_id}")
            elif isinstance(leaf, (StatGte, StatBetween)):
                if leaf.stat_id is not None and leaf.stat_id not in self.stat_ids:
                    self.errors.append(f"{where} requirement references undefined stat: {leaf.stat_id}")
            elif isinstance(leaf, (CurrencyGte, CurrencyLt)):
                if leaf.currency_id is not None and leaf.currency_id not in self.currency_ids:
                    self.warnings.append(
                        f"{where} requirement uses undeclared currency: {leaf.currency_id}"
                    )
            elif isinstance(leaf, VisitedNode):
                if leaf.node_id is not None and leaf.node_id not in self.node_ids:
                    self.errors.append(
                        f"{where} requirement references unknown node '{leaf.node_id}'"
                    )
            elif isinstance(leaf, PuzzleSolved):
                if leaf.puzzle_id is not None and leaf.puzzle_id not in self.puzzle_ids:
                    self.warnings.append(
                        f"{where} requirement references unknown puzzle '{leaf.puzzle_id}'"
                    )


def _first_goto(effects: Iterable[Effect]) -> str | None:
    for effect in effects:
        if isinstance(effect, Goto):
            return effect.next_id
    return None


def _find_redirect_cycles(story: Story) -> list[str]:
    """
    Find loops made of unconditional on_enter gotos.

    Only top-level gotos count; a goto inside a loot table is a chance, not
    a certainty.
    """
    redirects: dict[str, str] = {}
    for node in story.nodes:
        target = _first_goto(node.on_enter_effects)
        if target is not None and story.get_node(target) is not None:
            redirects[node.id] = target

    warnings: list[str] = []
    reported: set[str] = set()
    for start in sorted(redirects):
        path: list[str] = []
        current: str | None = start
        while current in redirects and current not in path:
            path.append(current)
            current = redirects[current]
        if current in path:
            cycle = path[path.index(current):]
            if not reported.intersection(cycle):
                reported.update(cycle)
                loop = " -> ".join(cycle + [cycle[0]])
                warnings.append(f"on_enter redirect cycle detected: {loop}")
    return warnings
