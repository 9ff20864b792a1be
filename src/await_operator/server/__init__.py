"""FastAPI server adapter for the await operator.

This module exposes a REST API over the reconciler: Await intents can be
created, inspected and deleted, and an external scheduler can drive
reconciliation through a single endpoint.

Design intent:
- Keep business logic in `await_operator.operator.*`
- Keep server-specific concerns (routing, CORS, wiring) here
"""

from __future__ import annotations

__all__ = ["create_app"]

from await_operator.server.app import create_app
