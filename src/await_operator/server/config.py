"""Configuration for the REST server.

The server can start without cluster credentials: intents can be listed and
stored locally. Endpoints that need the cluster or the Argo Server validate
credentials at request time.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerSettings(BaseSettings):
    """Settings for the REST API.

    Notes:
        - Unlike :class:`await_operator.operator.config.OperatorSettings`, this does
          NOT require a Kubernetes token at startup.
    """

    await_state_path: Path = Field(default=Path("await_state"), validation_alias="AWAIT_STATE_PATH")

    reconcile_on_create: bool = Field(
        default=True,
        validation_alias="AWAIT_RECONCILE_ON_CREATE",
        description="Reconcile an intent as soon as it is created or replaced.",
    )

    cors_origins: str = Field(
        default="http://localhost:5173,http://127.0.0.1:5173",
        validation_alias="AWAIT_CORS_ORIGINS",
        description="Comma-separated list of allowed CORS origins.",
    )

    model_config = SettingsConfigDict(env_prefix="", env_file=".env", extra="ignore")

    @property
    def awaits_state_file(self) -> Path:
        return self.await_state_path / "awaits.json"

    def parsed_cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]
