"""Await intents and their thread-safe store.

An intent declares "resume workflow W when a resource R matching filters F
appears". The store is in-memory and, when given a path, mirrors its content to
a JSON file so that intents survive restarts (best-effort).
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, Field

from await_operator.operator.errors import IntentNotFoundError
from await_operator.operator.resources import ResourceDescriptor

logger = logging.getLogger(__name__)


class NamespacedWorkflow(BaseModel):
    name: str
    namespace: str


class AwaitStatus(BaseModel):
    phase: str | None = None
    started_at: str | None = None
    finished_at: str | None = None
    message: str | None = None


class AwaitIntent(BaseModel):
    name: str
    namespace: str = Field(default="default")
    workflow: NamespacedWorkflow
    resource: ResourceDescriptor
    filters: list[str] = Field(default_factory=list)
    status: AwaitStatus = Field(default_factory=AwaitStatus)

    @property
    def intent_id(self) -> str:
        return intent_id(self.namespace, self.name)


def intent_id(namespace: str, name: str) -> str:
    return f"{namespace}/{name}"


def utc_iso_now() -> str:
    return datetime.now(tz=UTC).isoformat()


class AwaitStore:
    """Intents keyed by ``namespace/name``."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._lock = threading.Lock()
        self._intents: dict[str, AwaitIntent] = {}
        if path is not None:
            self._intents = {i.intent_id: i for i in self._load_file(path)}

    @staticmethod
    def _load_file(path: Path) -> list[AwaitIntent]:
        if not path.exists():
            return []
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning(
                "Await state file is not valid JSON; treating as empty",
                extra={"path": str(path)},
            )
            return []
        if not isinstance(raw, list):
            logger.warning(
                "Await state file has unexpected shape; treating as empty",
                extra={"path": str(path)},
            )
            return []
        return [AwaitIntent.model_validate(item) for item in raw]

    def _save_unlocked(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = [i.model_dump(mode="json") for i in self._intents.values()]
        self._path.write_text(
            json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8"
        )

    def list(self) -> list[AwaitIntent]:
        with self._lock:
            return list(self._intents.values())

    def get(self, key: str) -> AwaitIntent:
        with self._lock:
            found = self._intents.get(key)
        if found is None:
            raise IntentNotFoundError(key)
        return found

    def put(self, intent: AwaitIntent) -> AwaitIntent:
        """Create or replace an intent; the status of a replaced intent is kept."""

        with self._lock:
            existing = self._intents.get(intent.intent_id)
            if existing is not None:
                intent = intent.model_copy(update={"status": existing.status})
            self._intents[intent.intent_id] = intent
            self._save_unlocked()
            return intent

    def delete(self, key: str) -> AwaitIntent:
        with self._lock:
            removed = self._intents.pop(key, None)
            if removed is None:
                raise IntentNotFoundError(key)
            self._save_unlocked()
            return removed

    def update_status(self, key: str, **updates: object) -> AwaitIntent | None:
        """Merge status fields; returns None when the intent is gone."""

        with self._lock:
            intent = self._intents.get(key)
            if intent is None:
                return None
            status = intent.status.model_copy(update=updates)
            updated = intent.model_copy(update={"status": status})
            self._intents[key] = updated
            self._save_unlocked()
            return updated
