"""Application configuration via environment variables."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEVELOPMENT_SIGNING_KEY = "driftgate-dev-key"


class Settings(BaseSettings):
    """Service-wide configuration options."""

    api_v1_prefix: str = "/v1"
    environment: str = "development"
    service_base_url: str = "http://localhost:8000"

    artifacts_dir: str = "artifacts"
    policy_path: str = "policy/rules.json"
    history_path: str = "memory/decisions.json"
    history_backend: str = "file"
    redis_url: str = "redis://localhost:6379/0"
    history_redis_key: str = "driftgate:decisions"

    signing_key: str | None = None
    signing_algorithm: str = "hmac-sha256"
    receipt_verify_key: str | None = None
    receipt_issuer: str = "driftgate/governor"
    receipt_expiry_hours: float | None = 24

    reasoning_api_key: str | None = None
    reasoning_api_keys: list[str] = Field(default_factory=list)
    reasoning_model: str = "gemini-2.5-flash"
    reasoning_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    reasoning_timeout_seconds: float = 45.0
    reasoning_max_retries: int = 2
    reasoning_backoff_base_seconds: float = 0.5

    precedent_similarity_threshold: float = 0.6
    impact_max_depth: int = 3
    impact_confidence_decay: float = 0.15
    impact_confidence_floor: float = 0.4

    events_backend: str = "off"
    events_path: str = "data/governance_events.jsonl"
    otel_enabled: bool = False
    otel_exporter: str = "console"
    otel_prometheus_port: int = 9464
    otel_otlp_endpoint: str | None = None

    model_config = SettingsConfigDict(env_prefix="driftgate_", env_file=".env", extra="ignore")

    @property
    def is_production(self) -> bool:
        return self.environment.lower().strip() in {"production", "prod"}

    def reasoning_credentials(self) -> list[str]:
        """Configured reasoning-service keys in rotation order, de-duplicated."""

        keys: list[str] = []
        for key in [self.reasoning_api_key, *self.reasoning_api_keys]:
            if key and key not in keys:
                keys.append(key)
        return keys


settings = Settings()
