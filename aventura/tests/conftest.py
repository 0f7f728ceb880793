"""
Pytest fixtures for Aventura tests.
"""

import pytest

from ..story_schema import Story, load_story
from ..engine_core.engine import GameEngine
from ..engine_core.state import GameState, create_initial_state


class SequenceRandom:
    """Random source that replays a fixed sequence of draws, cycling."""

    def __init__(self, *values: float):
        self.values = list(values) or [0.0]
        self.calls = 0

    def random(self) -> float:
        value = self.values[self.calls % len(self.values)]
        self.calls += 1
        return value


class FakeClock:
    """Millisecond clock under test control."""

    def __init__(self, now: int = 1_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int):
        self.now += ms


def lighthouse_data() -> dict:
    """A small story touching every catalog and most node features."""
    return {
        "title": "The Lighthouse",
        "language": "en",
        "version": "1.0",
        "assets": [
            {"id": "img_shore", "type": "image", "src": "shore.png", "alt": "A rocky shore"},
            {"id": "img_lens", "type": "image", "src": "lens.png"},
        ],
        "items": [
            {"id": "silver_key", "name": "Silver Key", "stackable": False},
            {"id": "torch", "name": "Torch", "stackable": True, "max_stack": 3},
            {"id": "herb", "name": "Herb"},
        ],
        "currencies": [{"id": "gold", "name": "Gold", "symbol": "g"}],
        "stats": [{"id": "reputation", "name": "Reputation", "min": 0, "max": 10, "start": 5}],
        "nodes": [
            {
                "id": "start",
                "title": "The Shore",
                "text": "Waves crash below the lighthouse.",
                "media": [{"asset_id": "img_shore", "role": "background"}],
                "on_enter": {"effects": [{"op": "log", "message": "You arrive at the shore."}]},
                "choices": [
                    {"label": "Walk to the door", "next_id": "door"},
                    {
                        "label": "Open the vault",
                        "next_id": "vault",
                        "requirements": {"op": "has_item", "item_id": "silver_key", "qty": 1},
                        "disabled_reason": "The vault is locked",
                    },
                ],
            },
            {
                "id": "door",
                "title": "The Door",
                "text": "A voice asks: who tends the light?",
                "puzzle": {
                    "id": "door_riddle",
                    "kind": "text",
                    "prompt": "Who tends the light?",
                    "accepted_answers": ["keeper", "the keeper"],
                    "normalize": ["trim", "lower"],
                    "attempts_max": 3,
                    "time_limit_ms": 30000,
                    "hints": ["It guards the light.", "It starts with K."],
                    "dynamic": {
                        "if_attempts_gt": 0,
                        "give_hint_cost": {"currency_id": "gold", "value": 2},
                        "extra_time_ms": 10000,
                    },
                    "gate_choices_until_solved": True,
                    "success": {
                        "effects": [
                            {"op": "add_item", "item_id": "silver_key", "qty": 1},
                            {"op": "add_stat", "stat_id": "reputation", "value": 2},
                        ]
                    },
                    "failure": {
                        "effects": [{"op": "add_stat", "stat_id": "reputation", "value": -3}],
                        "next_id": "washed_away",
                    },
                },
                "choices": [{"label": "Return to the shore", "next_id": "start"}],
            },
            {
                "id": "vault",
                "type": "ending",
                "title": "The Vault",
                "text": "The lens of the lighthouse is yours.",
                "media": [{"asset_id": "img_lens"}],
            },
            {
                "id": "washed_away",
                "type": "ending",
                "title": "Washed Away",
                "text": "The tide takes you.",
            },
        ],
    }


@pytest.fixture
def story_data() -> dict:
    """Raw lighthouse story document."""
    return lighthouse_data()


@pytest.fixture
def story(story_data: dict) -> Story:
    """Loaded and validated lighthouse story."""
    return load_story(story_data)


@pytest.fixture
def initial_state(story: Story) -> GameState:
    return create_initial_state(story)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine(story: Story, fake_clock: FakeClock) -> GameEngine:
    """Engine over the lighthouse story with a fixed clock and random source."""
    return GameEngine(story, rng=SequenceRandom(0.0), clock=fake_clock)


@pytest.fixture
def recorder():
    """Listener that records every event it receives."""
    events = []

    def listener(event):
        events.append(event)

    listener.events = events
    return listener
