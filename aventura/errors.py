"""Exceptions raised at the load-time and snapshot boundaries."""


class AventuraError(Exception):
    """Base exception for the rules runtime."""


class StoryLoadError(AventuraError):
    """Raised when a story document cannot be read or decoded."""


class StateError(AventuraError):
    """Raised when a game state snapshot cannot be restored."""
