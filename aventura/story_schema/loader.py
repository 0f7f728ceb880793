"""
Story Loader - Parse story documents and fail closed.

Accepts a plain mapping, a JSON string or a path. Shape errors reported by
pydantic and semantic errors found by ``validate_story`` surface through the
same StoryValidationError so callers see every problem at once.
"""

from __future__ import annotations
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from ..errors import StoryLoadError
from .story import Story
from .validation import StoryValidationError, validate_story

logger = logging.getLogger(__name__)


@dataclass
class StoryMetadata:
    """Summary counts for a loaded story."""
    title: str
    language: str
    version: str
    node_count: int
    asset_count: int
    item_count: int
    currency_count: int
    stat_count: int
    puzzle_count: int
    ending_count: int
    puzzle_kinds: set[str] = field(default_factory=set)


def _format_pydantic_errors(exc: ValidationError) -> list[str]:
    errors = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "story"
        errors.append(f"{location}: {error['msg']}")
    return errors


def parse_story(data: Any) -> Story:
    """
    Parse a mapping into a Story without semantic validation.

    Raises StoryValidationError when the document does not fit the shape.
    """
    if not isinstance(data, dict):
        raise StoryValidationError(["Story document must be a JSON object"])
    try:
        return Story.model_validate(data)
    except ValidationError as exc:
        raise StoryValidationError(_format_pydantic_errors(exc)) from exc


def load_story(data: Any) -> Story:
    """
    Parse and validate a story document.

    Warnings are logged; any error raises StoryValidationError listing all
    of them.
    """
    story = parse_story(data)
    result = validate_story(story)
    for warning in result.warnings:
        logger.warning("Story '%s': %s", story.title, warning)
    if not result.valid:
        raise StoryValidationError(result.errors, result.warnings)
    logger.debug("Loaded story '%s' with %d nodes", story.title, len(story.nodes))
    return story


def load_story_from_json(text: str) -> Story:
    """Decode a JSON string and load it. Raises StoryLoadError on bad JSON."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise StoryLoadError(f"Invalid story JSON: {exc}") from exc
    return load_story(data)


def read_story_document(path: str | Path) -> Any:
    """Read and decode a story file without parsing it. Raises StoryLoadError."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise StoryLoadError(f"Story file not found: {path}") from exc
    except OSError as exc:
        raise StoryLoadError(f"Unable to read story file: {path}") from exc

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise StoryLoadError(f"Invalid JSON in {path}: {exc}") from exc
    return data


def load_story_from_file(path: str | Path) -> Story:
    """Load a story from disk and raise StoryLoadError on read failure."""
    return load_story(read_story_document(path))


def get_story_metadata(story: Story) -> StoryMetadata:
    puzzles = [puzzle for _, puzzle in story.puzzles()]
    return StoryMetadata(
        title=story.title,
        language=story.language,
        version=story.version,
        node_count=len(story.nodes),
        asset_count=len(story.assets),
        item_count=len(story.items),
        currency_count=len(story.currencies),
        stat_count=len(story.stats),
        puzzle_count=len(puzzles),
        ending_count=sum(1 for node in story.nodes if node.is_ending),
        puzzle_kinds={puzzle.kind for puzzle in puzzles},
    )
