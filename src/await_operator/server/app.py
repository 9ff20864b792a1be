"""FastAPI app factory.

Endpoints are intentionally thin wrappers over the store and the reconciler.
`POST /api/v1/awaits/{namespace}/{name}/reconcile` is the entry point for an
external scheduler: a 503 means "requeue with backoff", anything else is final
for the cycle.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from await_operator import __version__
from await_operator.operator.config import OperatorSettings
from await_operator.operator.controller import AwaitReconciler
from await_operator.operator.errors import AwaitOperatorError, IntentNotFoundError
from await_operator.operator.intents import AwaitIntent, AwaitStore, intent_id
from await_operator.operator.runtime import OperatorRuntime, build_runtime
from await_operator.server.config import ServerSettings
from await_operator.server.models import ApiObserver, DeleteResponse, ReconcileResponse

logger = logging.getLogger(__name__)

ReconcilerFactory = Callable[[AwaitStore], AwaitReconciler]


class _ReconcilerProvider:
    """Build the reconciler on first use so the server starts without credentials."""

    def __init__(self, store: AwaitStore, factory: ReconcilerFactory | None) -> None:
        self._store = store
        self._factory = factory
        self._lock = threading.Lock()
        self._runtime: OperatorRuntime | None = None
        self._reconciler: AwaitReconciler | None = None

    @property
    def current(self) -> AwaitReconciler | None:
        with self._lock:
            return self._reconciler

    def get(self) -> AwaitReconciler:
        with self._lock:
            if self._reconciler is not None:
                return self._reconciler
            if self._factory is not None:
                self._reconciler = self._factory(self._store)
                return self._reconciler
            try:
                settings = OperatorSettings()
            except ValidationError as e:
                raise HTTPException(
                    status_code=409,
                    detail="KUBE_TOKEN (or KUBE_TOKEN_FILE) is required for this endpoint",
                ) from e
            self._runtime = build_runtime(settings, self._store)
            self._reconciler = self._runtime.reconciler
            return self._reconciler

    def close(self) -> None:
        with self._lock:
            if self._runtime is not None:
                self._runtime.close()
            elif self._reconciler is not None:
                self._reconciler.shutdown()


def create_app(*, reconciler_factory: ReconcilerFactory | None = None) -> FastAPI:
    settings = ServerSettings()
    store = AwaitStore(settings.awaits_state_file)
    provider = _ReconcilerProvider(store, reconciler_factory)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        provider.close()

    app = FastAPI(
        title="Await Operator",
        version=__version__,
        description="REST API over the await operator's intents and reconciler.",
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.parsed_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def _reconcile(key: str) -> ReconcileResponse:
        try:
            result = provider.get().reconcile(key)
        except AwaitOperatorError as e:
            logger.warning("Reconcile failed; caller should requeue", extra={"intent": key})
            raise HTTPException(status_code=503, detail=str(e)) from e
        return ReconcileResponse(intent_id=key, outcome=result.outcome, requeue=result.requeue)

    @app.get("/api/v1/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    @app.get("/api/v1/awaits", response_model=list[AwaitIntent])
    def list_awaits() -> list[AwaitIntent]:
        return store.list()

    @app.post("/api/v1/awaits", response_model=AwaitIntent, status_code=201)
    def create_await(intent: AwaitIntent) -> AwaitIntent:
        saved = store.put(intent)
        logger.info("Await intent stored", extra={"intent": saved.intent_id})
        if settings.reconcile_on_create:
            try:
                _reconcile(saved.intent_id)
            except HTTPException as e:
                # Creation succeeded; the scheduler will retry reconciliation.
                logger.warning(
                    "Initial reconcile failed", extra={"intent": saved.intent_id, "error": e.detail}
                )
        return store.get(saved.intent_id)

    @app.get("/api/v1/awaits/{namespace}/{name}", response_model=AwaitIntent)
    def get_await(namespace: str, name: str) -> AwaitIntent:
        try:
            return store.get(intent_id(namespace, name))
        except IntentNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e

    @app.delete("/api/v1/awaits/{namespace}/{name}", response_model=DeleteResponse)
    def delete_await(namespace: str, name: str) -> DeleteResponse:
        key = intent_id(namespace, name)
        try:
            store.delete(key)
        except IntentNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        reconciler = provider.current
        cancelled = reconciler.forget(key) if reconciler is not None else False
        return DeleteResponse(intent_id=key, observer_cancelled=cancelled)

    @app.post("/api/v1/awaits/{namespace}/{name}/reconcile", response_model=ReconcileResponse)
    def reconcile_await(namespace: str, name: str) -> ReconcileResponse:
        return _reconcile(intent_id(namespace, name))

    @app.get("/api/v1/observers", response_model=list[ApiObserver])
    def list_observers() -> list[ApiObserver]:
        reconciler = provider.current
        if reconciler is None:
            return []
        return [
            ApiObserver(
                intent_id=info.intent_id,
                state=info.state,
                resource=info.resource,
                namespace=info.namespace,
                started_at=info.started_at,
            )
            for info in reconciler.observers()
        ]

    return app
