"""Configurações Pydantic Settings para o hub de atendimento."""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
    """Configurações da aplicação. Carrega de env e .env.

    Credenciais por canal (access_token) ficam em Channel.config; aqui só o que é global.
    """
    model_config = SettingsConfigDict(env_file=".env", env_prefix="AH_", case_sensitive=False)

    # Flask
    flask_debug: bool = Field(default=False)
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # DB
    database_url: str = Field(..., description="URL do Postgres, ex: postgresql+psycopg://user:pass@db:5432/app")

    # WhatsApp Cloud API
    graph_api_base_url: str = Field(default="https://graph.facebook.com")
    graph_api_version: str = Field(default="v21.0")
    http_timeout_s: float = Field(default=30.0)
    app_secret: str = Field(default="", description="APP_SECRET para assinar Webhook")
    verify_token: str = Field(default="", description="VERIFY_TOKEN para verificação do hub.challenge")
    default_template_language: str = Field(default="es")

    # Fila / retentativas
    max_delivery_attempts: int = Field(default=5)
    max_ingest_attempts: int = Field(default=3)
    max_publish_attempts: int = Field(default=5)
    retry_backoff_s: list[int] = Field(default_factory=lambda: [10, 30, 60, 300, 900])
    default_retry_after_s: int = Field(default=10)
    worker_batch_size: int = Field(default=20)
    worker_poll_interval_s: float = Field(default=1.0)
    task_lease_s: int = Field(default=300)

    # Broadcast em tempo real (opcional)
    broadcast_url: str | None = Field(default=None)
    broadcast_token: str | None = Field(default=None)

    # Logs
    log_level: str = Field(default="INFO")
