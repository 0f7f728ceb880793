"""
Aventura - Rules runtime for branching interactive fiction.

Loads a declarative story graph and provides:
- Story validation (fail closed, every problem reported at once)
- Requirement evaluation for gated choices
- Effects on inventory, currencies, stats, flags, timers and choice locks
- Scoring for nine puzzle kinds
- A node-traversal engine with events for renderers
"""

__version__ = "0.1.0"
