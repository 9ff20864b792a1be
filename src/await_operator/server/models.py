"""Pydantic models for the REST server."""

from __future__ import annotations

from pydantic import BaseModel

from await_operator.operator.controller import ReconcileOutcome
from await_operator.operator.observer import ObserverState


class ReconcileResponse(BaseModel):
    intent_id: str
    outcome: ReconcileOutcome
    requeue: bool


class ApiObserver(BaseModel):
    intent_id: str
    state: ObserverState
    resource: str
    namespace: str
    started_at: str


class DeleteResponse(BaseModel):
    intent_id: str
    observer_cancelled: bool
