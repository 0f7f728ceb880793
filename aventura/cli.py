"""
Aventura CLI - Command-line interface for story files.

Usage:
    aventura validate <story_file>   Validate a story and list problems
    aventura info <story_file>       Print story metadata as JSON
"""

import argparse
import json
import logging
import sys

from .config import EngineConfig
from .errors import StoryLoadError
from .story_schema import (
    StoryValidationError,
    get_story_metadata,
    load_story_from_file,
    parse_story,
    read_story_document,
    validate_story,
)


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Aventura - Interactive story rules runtime",
        prog="aventura",
    )
    parser.add_argument("--log-level", help="Logging level (default from AVENTURA_LOG_LEVEL)")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Validate command
    validate_parser = subparsers.add_parser("validate", help="Validate a story file")
    validate_parser.add_argument("story_file", help="Path to story JSON file")

    # Info command
    info_parser = subparsers.add_parser("info", help="Show story metadata")
    info_parser.add_argument("story_file", help="Path to story JSON file")

    args = parser.parse_args(argv)

    config = EngineConfig.from_env()
    logging.basicConfig(
        level=(args.log_level or config.log_level).upper(),
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command == "validate":
        cmd_validate(args)
    elif args.command == "info":
        cmd_info(args)
    else:
        parser.print_help()
        sys.exit(1)


def _report(path, errors, warnings):
    print(f"Invalid story: {path}")
    for error in errors:
        print(f"  - {error}")
    if warnings:
        print("\nWarnings:")
        for warning in warnings:
            print(f"  - {warning}")
    sys.exit(1)


def _load(path):
    try:
        return load_story_from_file(path)
    except StoryLoadError as e:
        print(f"Error: {e}")
        sys.exit(1)
    except StoryValidationError as e:
        _report(path, e.errors, e.warnings)


def cmd_validate(args):
    """Validate a story file."""
    print(f"Validating: {args.story_file}")
    try:
        story = parse_story(read_story_document(args.story_file))
    except StoryLoadError as e:
        print(f"Error: {e}")
        sys.exit(1)
    except StoryValidationError as e:
        _report(args.story_file, e.errors, e.warnings)

    result = validate_story(story)
    if not result.valid:
        _report(args.story_file, result.errors, result.warnings)
    if result.warnings:
        print("Warnings:")
        for warning in result.warnings:
            print(f"  - {warning}")
    print(f"OK: '{story.title}' ({len(story.nodes)} nodes)")


def cmd_info(args):
    """Print story metadata."""
    story = _load(args.story_file)
    metadata = get_story_metadata(story)
    payload = {
        "title": metadata.title,
        "language": metadata.language,
        "version": metadata.version,
        "nodes": metadata.node_count,
        "assets": metadata.asset_count,
        "items": metadata.item_count,
        "currencies": metadata.currency_count,
        "stats": metadata.stat_count,
        "puzzles": metadata.puzzle_count,
        "endings": metadata.ending_count,
        "puzzle_kinds": sorted(metadata.puzzle_kinds),
    }
    print(json.dumps(payload, indent=2))


if __name__ == "__main__":
    main()
