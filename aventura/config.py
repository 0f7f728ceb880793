"""
Engine configuration.

Defaults suit interactive play. ``EngineConfig.from_env()`` reads overrides
from the environment:

    AVENTURA_MAX_REDIRECT_DEPTH   cap on chained on_enter gotos (default 32)
    AVENTURA_START_NODE           node to start from instead of the first
    AVENTURA_LOG_LEVEL            logging level used by the CLI (default WARNING)
"""

from __future__ import annotations
import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_MAX_REDIRECT_DEPTH = 32


@dataclass
class EngineConfig:
    max_redirect_depth: int = DEFAULT_MAX_REDIRECT_DEPTH
    start_node_id: str | None = None
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> EngineConfig:
        depth_raw = os.getenv("AVENTURA_MAX_REDIRECT_DEPTH")
        depth = DEFAULT_MAX_REDIRECT_DEPTH
        if depth_raw:
            try:
                depth = max(0, int(depth_raw))
            except ValueError:
                logger.warning(
                    "Ignoring AVENTURA_MAX_REDIRECT_DEPTH=%r; expected an integer", depth_raw
                )

        return cls(
            max_redirect_depth=depth,
            start_node_id=os.getenv("AVENTURA_START_NODE") or None,
            log_level=os.getenv("AVENTURA_LOG_LEVEL", "WARNING").upper(),
        )
