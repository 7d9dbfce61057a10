from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    log_level: str = "INFO"

    # Storage
    session_backend: Literal["memory", "redis"] = "memory"
    redis_url: Optional[str] = None
    redis_socket_timeout_seconds: float = 5.0
    redis_session_prefix: str = "sessions:"
    redis_seen_prefix: str = "seen:"
    session_ttl_seconds: int = 3600
    session_memory_limit: int = 50_000
    idempotency_ttl_seconds: int = 6 * 60 * 60
    idempotency_memory_limit: int = 5000
    session_lock_timeout_seconds: float = 60.0

    # Workflow policy
    require_media: bool = True
    media_starts_session: bool = True
    idle_timeout_seconds: int = 3600
    sweep_interval_seconds: float = 30.0
    sweep_enabled: bool = True
    result_message_interval_seconds: float = 0.5

    # Downstream forwarding
    forward_url: Optional[str] = None
    forward_auth_header: Optional[str] = None
    forward_max_attempts: int = 5
    forward_initial_delay_seconds: float = 0.5
    forward_max_delay_seconds: float = 8.0
    forward_timeout_seconds: float = 15.0

    # WhatsApp Cloud API
    whatsapp_access_token: Optional[str] = None
    whatsapp_phone_number_id: Optional[str] = None
    whatsapp_verify_token: Optional[str] = None
    whatsapp_graph_version: str = "v21.0"
    whatsapp_enable_location_request: bool = False
    media_max_bytes: int = 20 * 1024 * 1024
    media_timeout_seconds: float = 20.0

    # OpenAI
    openai_api_key: Optional[str] = None
    openai_stt_model: str = "whisper-1"
    openai_extraction_model: str = "gpt-4o-mini"
    openai_language: str = "tr"
    openai_timeout_seconds: float = 60.0


settings = Settings()
