"""
Tests for story schema validation.

Tests:
- Story parsing and the three tagged unions
- Semantic errors reported by validate_story
- Warnings that do not block loading
"""

import pytest

from ..story_schema import (
    StoryValidationError,
    ensure_valid,
    parse_story,
    validate_story,
)
from ..story_schema.effect_dsl import AddItem, LootTable
from ..story_schema.puzzle_dsl import ClozePuzzle, MCQPuzzle
from ..story_schema.requirement_dsl import AllOf, FlagIs, HasItem, Not
from .conftest import lighthouse_data


def _story(nodes, **extra):
    data = {"title": "T", "language": "en", "version": "1", "nodes": nodes}
    data.update(extra)
    return data


def _errors(data):
    return validate_story(parse_story(data)).errors


def _warnings(data):
    return validate_story(parse_story(data)).warnings


class TestStoryParsing:
    """Tests for parsing story documents into models."""

    def test_lighthouse_story_is_valid(self, story_data):
        """The fixture story has no errors and no warnings."""
        result = validate_story(parse_story(story_data))
        assert result.valid
        assert result.errors == []
        assert result.warnings == []

    def test_lookup_helpers(self, story):
        """Catalog lookups resolve by id."""
        assert story.first_node.id == "start"
        assert story.get_node("vault").is_ending
        assert story.get_item("silver_key").stackable is False
        assert story.get_stat("reputation").max == 10
        assert story.get_currency("gold").symbol == "g"
        assert story.get_asset("img_shore").type == "image"
        assert story.get_node("missing") is None

    def test_effects_parse_by_op(self, story):
        """Effects are discriminated on their op tag."""
        door = story.get_node("door")
        effect = door.puzzle.success.effects[0]
        assert isinstance(effect, AddItem)
        assert effect.qty == 1

    def test_requirement_composites_parse(self):
        """all_of, any_of and not parse recursively."""
        data = _story([
            {
                "id": "a",
                "choices": [{
                    "label": "go",
                    "next_id": "b",
                    "requirements": {
                        "all_of": [
                            {"op": "has_item", "item_id": "k", "qty": 1},
                            {"not": {"op": "flag_is", "flag": "cursed", "value": True}},
                        ]
                    },
                }],
            },
            {"id": "b"},
        ], items=[{"id": "k", "name": "Key"}])
        story = parse_story(data)
        requirement = story.get_node("a").choices[0].requirements
        assert isinstance(requirement, AllOf)
        assert isinstance(requirement.all_of[0], HasItem)
        assert isinstance(requirement.all_of[1], Not)
        assert isinstance(requirement.all_of[1].not_, FlagIs)

    def test_incomplete_requirement_leaf_still_parses(self):
        """Leaf fields are optional so the evaluator can report them."""
        data = _story([
            {"id": "a", "choices": [{"label": "go", "next_id": "b", "requirements": {"op": "has_item"}}]},
            {"id": "b"},
        ])
        story = parse_story(data)
        assert isinstance(story.get_node("a").choices[0].requirements, HasItem)

    def test_unknown_effect_op_is_rejected(self):
        """An unknown op tag is a load error, not a silent no-op."""
        data = _story([{"id": "a", "on_enter": {"effects": [{"op": "explode"}]}}])
        with pytest.raises(StoryValidationError) as exc_info:
            parse_story(data)
        assert any("on_enter" in error for error in exc_info.value.errors)

    def test_unknown_requirement_op_is_rejected(self):
        data = _story([
            {"id": "a", "choices": [{"label": "go", "next_id": "b", "requirements": {"op": "is_lucky"}}]},
            {"id": "b"},
        ])
        with pytest.raises(StoryValidationError):
            parse_story(data)

    def test_unknown_puzzle_kind_is_rejected(self):
        data = _story([{"id": "a", "puzzle": {"id": "p", "kind": "crossword"}}])
        with pytest.raises(StoryValidationError):
            parse_story(data)

    def test_effect_missing_field_is_reported(self):
        """Required effect fields are enforced at load time."""
        data = _story([{"id": "a", "on_enter": {"effects": [{"op": "add_item", "item_id": "x"}]}}])
        with pytest.raises(StoryValidationError) as exc_info:
            parse_story(data)
        assert any("qty" in error for error in exc_info.value.errors)

    def test_nested_loot_table_parses(self):
        data = _story([
            {
                "id": "a",
                "on_enter": {"effects": [{
                    "op": "loot_table",
                    "table": [
                        {"weight": 1, "effects": [{"op": "log", "message": "nothing"}]},
                        {"weight": 2, "effects": [{"op": "add_currency", "currency_id": "gold", "value": 5}]},
                    ],
                }]},
            },
        ], currencies=[{"id": "gold", "name": "Gold"}])
        story = parse_story(data)
        effect = story.get_node("a").on_enter_effects[0]
        assert isinstance(effect, LootTable)
        assert [entry.weight for entry in effect.table] == [1, 2]

    def test_puzzle_defaults(self):
        data = _story([
            {"id": "a", "puzzle": {
                "id": "p",
                "kind": "cloze_text",
                "blanks": [{"id": "b1", "accepted_answers": ["x"]}],
            }},
        ])
        puzzle = parse_story(data).get_node("a").puzzle
        assert isinstance(puzzle, ClozePuzzle)
        assert puzzle.partial_scoring is True
        assert puzzle.blanks[0].weight == 1
        assert puzzle.gate_choices_until_solved is False

    def test_non_mapping_document_is_rejected(self):
        with pytest.raises(StoryValidationError):
            parse_story(["not", "a", "story"])


class TestValidateStory:
    """Tests for errors found by validate_story."""

    def test_missing_metadata(self):
        data = {"nodes": [{"id": "a"}]}
        errors = _errors(data)
        assert "Missing required field: title" in errors
        assert "Missing required field: language" in errors
        assert "Missing required field: version" in errors

    def test_no_nodes(self):
        assert "Story must have at least one node" in _errors(_story([]))

    def test_duplicate_node_id(self):
        errors = _errors(_story([{"id": "a"}, {"id": "a"}]))
        assert "Duplicate node ID: a" in errors

    def test_duplicate_catalog_ids(self):
        data = _story(
            [{"id": "a"}],
            items=[{"id": "k", "name": "Key"}, {"id": "k", "name": "Key again"}],
            stats=[
                {"id": "hp", "name": "HP", "min": 0, "max": 10, "start": 5},
                {"id": "hp", "name": "HP", "min": 0, "max": 10, "start": 5},
            ],
        )
        errors = _errors(data)
        assert "Duplicate item ID: k" in errors
        assert "Duplicate stat ID: hp" in errors

    def test_duplicate_puzzle_ids(self):
        puzzle = {"id": "p", "kind": "numeric", "answer": 1}
        data = _story([
            {"id": "a", "puzzle": puzzle, "choices": [{"label": "on", "next_id": "b"}]},
            {"id": "b", "puzzle": puzzle},
        ])
        assert "Duplicate puzzle ID: p" in _errors(data)

    def test_dangling_choice_target(self):
        errors = _errors(_story([{"id": "a", "choices": [{"label": "go", "next_id": "nowhere"}]}]))
        assert any("unknown node 'nowhere'" in error for error in errors)

    def test_dangling_goto_inside_loot_table(self):
        data = _story([{
            "id": "a",
            "on_enter": {"effects": [{
                "op": "loot_table",
                "table": [{"weight": 1, "effects": [{"op": "goto", "next_id": "lost"}]}],
            }]},
        }])
        assert any("goto references unknown node 'lost'" in error for error in _errors(data))

    def test_dangling_puzzle_outcome(self):
        data = _story([{
            "id": "a",
            "puzzle": {"id": "p", "kind": "numeric", "answer": 4, "success": {"next_id": "gone"}},
        }])
        assert any("success references unknown node 'gone'" in error for error in _errors(data))

    def test_visited_node_requirement_must_resolve(self):
        data = _story([
            {"id": "a", "choices": [{
                "label": "go",
                "next_id": "b",
                "requirements": {"op": "visited_node", "node_id": "ghost"},
            }]},
            {"id": "b"},
        ])
        assert any("unknown node 'ghost'" in error for error in _errors(data))

    def test_ending_with_choices(self):
        data = _story([
            {"id": "a", "choices": [{"label": "go", "next_id": "end"}]},
            {"id": "end", "type": "ending", "choices": [{"label": "again", "next_id": "a"}]},
        ])
        assert "Ending node 'end' should not have choices" in _errors(data)

    def test_undeclared_asset(self):
        data = _story([{"id": "a", "media": [{"asset_id": "missing.png"}]}])
        assert any("undefined asset: missing.png" in error for error in _errors(data))

    def test_undeclared_item_in_effect_and_requirement(self):
        data = _story([
            {
                "id": "a",
                "on_enter": {"effects": [{"op": "add_item", "item_id": "gem", "qty": 1}]},
                "choices": [{
                    "label": "go",
                    "next_id": "b",
                    "requirements": {"op": "has_item", "item_id": "amulet", "qty": 1},
                }],
            },
            {"id": "b"},
        ])
        errors = _errors(data)
        assert any("undefined item: gem" in error for error in errors)
        assert any("undefined item: amulet" in error for error in errors)

    def test_undeclared_stat(self):
        data = _story([{"id": "a", "on_enter": {"effects": [{"op": "add_stat", "stat_id": "luck", "value": 1}]}}])
        assert any("undefined stat: luck" in error for error in _errors(data))

    def test_stat_bounds(self):
        data = _story(
            [{"id": "a"}],
            stats=[
                {"id": "inverted", "name": "Inverted", "min": 10, "max": 0, "start": 5},
                {"id": "outside", "name": "Outside", "min": 0, "max": 10, "start": 11},
            ],
        )
        errors = _errors(data)
        assert any("'inverted' has min 10 greater than max 0" in error for error in errors)
        assert any("'outside' start 11 is outside" in error for error in errors)

    def test_self_loop_choice_without_puzzle_or_effects(self):
        data = _story([{"id": "a", "choices": [{"label": "wait", "next_id": "a"}]}])
        assert "Node 'a' has infinite loop choice without puzzle or effects" in _errors(data)

    def test_self_loop_with_effects_is_allowed(self):
        data = _story(
            [{"id": "a", "choices": [{
                "label": "rest",
                "next_id": "a",
                "effects": [{"op": "add_stat", "stat_id": "hp", "value": 1}],
            }]}],
            stats=[{"id": "hp", "name": "HP", "min": 0, "max": 10, "start": 5}],
        )
        assert _errors(data) == []

    def test_invalid_regex(self):
        data = _story([{"id": "a", "puzzle": {"id": "p", "kind": "regex", "pattern": "(unclosed"}}])
        assert any("invalid regex" in error for error in _errors(data))

    def test_invalid_regex_flag(self):
        data = _story([{"id": "a", "puzzle": {"id": "p", "kind": "regex", "pattern": "x", "flags": "q"}}])
        assert any("invalid regex" in error for error in _errors(data))

    def test_invalid_variant_override(self):
        data = _story([{"id": "a", "puzzle": {
            "id": "p",
            "kind": "mcq",
            "options": ["a", "b"],
            "correct": [0],
            "variants": [{"weight": 1, "override": {"correct": "first"}}],
        }}])
        assert any("variants[0] override is invalid" in error for error in _errors(data))

    def test_valid_variant_override(self):
        data = _story([{"id": "a", "puzzle": {
            "id": "p",
            "kind": "mcq",
            "options": ["a", "b"],
            "correct": [0],
            "variants": [{"weight": 1, "override": {"correct": [1]}}],
        }}])
        assert _errors(data) == []

    def _variant_story(self, override):
        return _story([{"id": "a", "puzzle": {
            "id": "p",
            "kind": "text",
            "accepted_answers": ["x"],
            "success": {"next_id": "a"},
            "variants": [{"weight": 1, "override": override}],
        }}])

    def test_variant_outcome_target_must_exist(self):
        errors = _errors(self._variant_story({"success": {"next_id": "nowhere"}}))
        assert "Puzzle 'p' variants[0] success references unknown node 'nowhere'" in errors

    def test_variant_outcome_effects_are_checked(self):
        override = {"failure": {"effects": [
            {"op": "add_item", "item_id": "ghost_lamp", "qty": 1},
            {"op": "goto", "next_id": "lost"},
        ]}}
        errors = _errors(self._variant_story(override))
        assert "Puzzle 'p' variants[0] failure effects references undefined item: ghost_lamp" in errors
        assert any("variants[0] failure effects goto references unknown node 'lost'" in e for e in errors)

    def test_variant_media_is_checked(self):
        errors = _errors(self._variant_story({"media": [{"asset_id": "img_missing"}]}))
        assert "Puzzle 'p' variants[0] references undefined asset: img_missing" in errors

    def test_variant_cannot_change_puzzle_id(self):
        errors = _errors(self._variant_story({"id": "other"}))
        assert "Puzzle 'p' variants[0] override must not change the puzzle id" in errors

    def test_variant_repeating_its_own_id_is_fine(self):
        assert _errors(self._variant_story({"id": "p", "accepted_answers": ["y"]})) == []

    def test_base_errors_are_not_repeated_per_variant(self):
        data = self._variant_story({"accepted_answers": ["y"]})
        data["nodes"][0]["puzzle"]["success"] = {"next_id": "nowhere"}
        assert _errors(data) == ["Puzzle 'p' success references unknown node 'nowhere'"]

    def test_story_with_dangling_variant_target_does_not_load(self):
        with pytest.raises(StoryValidationError):
            ensure_valid(parse_story(self._variant_story({"success": {"next_id": "nowhere"}})))

    def test_lock_choice_index_out_of_range(self):
        data = _story([
            {
                "id": "a",
                "on_enter": {"effects": [{"op": "lock_choice", "node_id": "b", "choice_index": 3}]},
                "choices": [{"label": "go", "next_id": "b"}],
            },
            {"id": "b", "choices": [{"label": "back", "next_id": "a"}]},
        ])
        assert any("index 3 is out of range for node 'b'" in error for error in _errors(data))

    def test_lock_choice_unknown_node(self):
        data = _story([{"id": "a", "on_enter": {"effects": [
            {"op": "unlock_choice", "node_id": "ghost", "choice_index": 0},
        ]}}])
        assert any("unlock_choice references unknown node 'ghost'" in error for error in _errors(data))

    def test_ensure_valid_raises_with_every_error(self):
        data = _story([
            {"id": "a", "choices": [{"label": "go", "next_id": "x"}]},
            {"id": "a"},
        ])
        with pytest.raises(StoryValidationError) as exc_info:
            ensure_valid(parse_story(data))
        assert len(exc_info.value.errors) >= 2
        assert "Duplicate node ID: a" in str(exc_info.value)


class TestValidationWarnings:
    """Tests for non-fatal findings."""

    def test_unreferenced_node(self):
        data = _story([{"id": "a"}, {"id": "orphan"}])
        result = validate_story(parse_story(data))
        assert result.valid
        assert any("'orphan' is not referenced" in warning for warning in result.warnings)

    def test_first_node_is_exempt(self):
        warnings = _warnings(_story([{"id": "a"}]))
        assert not any("not referenced" in warning for warning in warnings)

    def test_undeclared_currency(self):
        data = _story([{"id": "a", "on_enter": {"effects": [
            {"op": "add_currency", "currency_id": "gems", "value": 1},
        ]}}])
        result = validate_story(parse_story(data))
        assert result.valid
        assert any("undeclared currency: gems" in warning for warning in result.warnings)

    def test_unknown_puzzle_in_requirement(self):
        data = _story([
            {"id": "a", "choices": [{
                "label": "go",
                "next_id": "b",
                "requirements": {"op": "puzzle_solved", "puzzle_id": "sphinx"},
            }]},
            {"id": "b"},
        ])
        assert any("unknown puzzle 'sphinx'" in warning for warning in _warnings(data))

    def test_zero_weight_loot_table(self):
        data = _story([{"id": "a", "on_enter": {"effects": [
            {"op": "loot_table", "table": [{"weight": 0, "effects": []}]},
        ]}}])
        assert any("no positive weight" in warning for warning in _warnings(data))

    def test_redirect_cycle(self):
        data = _story([
            {"id": "a", "choices": [{"label": "go", "next_id": "b"}]},
            {"id": "b", "on_enter": {"effects": [{"op": "goto", "next_id": "c"}]}},
            {"id": "c", "on_enter": {"effects": [{"op": "goto", "next_id": "b"}]}},
        ])
        result = validate_story(parse_story(data))
        assert result.valid
        assert "on_enter redirect cycle detected: b -> c -> b" in result.warnings

    def test_lighthouse_has_no_redirect_cycle(self):
        assert _warnings(lighthouse_data()) == []
