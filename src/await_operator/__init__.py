"""Await operator.

Resume paused workflows once a watched resource matching declarative filters
appears:
- configuration loaded from `.env`
- structured logging
- one-shot Observers driven by an idempotent reconciler
"""

__version__ = "0.1.0"

from await_operator.operator.config import OperatorSettings

__all__ = ["__version__", "OperatorSettings"]
