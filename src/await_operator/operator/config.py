"""Configuration for the await operator.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)

Inside a cluster the service account token is picked up from the standard
mount path, so only `KUBE_API_URL` / `ARGO_SERVER_URL` usually need overriding.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SERVICE_ACCOUNT_TOKEN = Path("/var/run/secrets/kubernetes.io/serviceaccount/token")


class OperatorSettings(BaseSettings):
    """Settings for the operator process.

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `OperatorSettings(_env_file=path_to_env)`.
    """

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    kube_api_url: str = Field(
        default="https://kubernetes.default.svc",
        validation_alias="KUBE_API_URL",
        description="Kubernetes API server base URL",
    )
    kube_token: str = Field(
        default="",
        validation_alias="KUBE_TOKEN",
        description="Bearer token for the Kubernetes API (read from KUBE_TOKEN_FILE when empty)",
    )
    kube_token_file: Path = Field(
        default=SERVICE_ACCOUNT_TOKEN,
        validation_alias="KUBE_TOKEN_FILE",
        description="File holding the Kubernetes bearer token",
    )
    kube_ca_file: Path | None = Field(
        default=None,
        validation_alias="KUBE_CA_FILE",
        description="CA bundle used to verify the API server certificate",
    )
    kube_verify_tls: bool = Field(
        default=True,
        validation_alias="KUBE_VERIFY_TLS",
        description="Verify the API server TLS certificate",
    )
    kube_watch_timeout_seconds: int | None = Field(
        default=None,
        ge=1,
        validation_alias="KUBE_WATCH_TIMEOUT_SECONDS",
        description="Server-side timeout for a single watch request (None = server default)",
    )

    argo_server_url: str = Field(
        default="https://argo-server.argo:2746",
        validation_alias="ARGO_SERVER_URL",
        description="Argo Server base URL",
    )
    argo_token: str = Field(
        default="",
        validation_alias="ARGO_TOKEN",
        description="Bearer token for the Argo Server (defaults to the Kubernetes token)",
    )
    argo_verify_tls: bool = Field(
        default=True,
        validation_alias="ARGO_VERIFY_TLS",
        description="Verify the Argo Server TLS certificate",
    )

    await_state_path: Path = Field(
        default=Path("await_state"),
        validation_alias="AWAIT_STATE_PATH",
        description="Directory where Await intents are persisted",
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
    )

    @model_validator(mode="after")
    def _require_kube_auth(self) -> OperatorSettings:
        if not self.kube_token.strip() and self.kube_token_file.is_file():
            self.kube_token = self.kube_token_file.read_text(encoding="utf-8").strip()
        if not self.kube_token.strip():
            raise ValueError("KUBE_TOKEN (or a readable KUBE_TOKEN_FILE) is required")
        return self

    @property
    def kube_verify(self) -> bool | str:
        """Value for `requests`' ``verify``: a CA bundle path when configured."""

        if self.kube_ca_file is not None:
            return str(self.kube_ca_file)
        return self.kube_verify_tls

    @property
    def argo_bearer_token(self) -> str:
        return self.argo_token.strip() or self.kube_token

    @property
    def awaits_state_file(self) -> Path:
        """Path where Await intents are persisted."""

        return self.await_state_path / "awaits.json"
