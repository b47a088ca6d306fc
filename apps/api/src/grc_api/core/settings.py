from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./grc.db"
    redis_url: str = "redis://localhost:6379/0"
    secret_key: str = "change-me"

    # Application URLs
    frontend_url: str = "http://localhost:3000"
    api_base_url: str = "http://localhost:8000"

    # Local server
    server_host: str = "127.0.0.1"
    server_port: int = 8000

    # Session tokens
    jwt_algorithm: str = "HS256"
    session_ttl_days: int = 30
    session_cookie_name: str = "session_token"
    session_cookie_secure: bool = False

    # Magic links
    magic_link_expiry_minutes: int = 4320
    magic_link_rate_limit: int = 10
    magic_link_rate_window_seconds: int = 900

    # Receipt uploads
    receipt_upload_rate_limit: int = 10
    receipt_upload_rate_window_seconds: int = 60
    receipt_upload_max_bytes: int = 20 * 1024 * 1024
    receipt_reupload_days: int = 7

    # Veryfi OCR
    veryfi_base_url: str = "https://api.veryfi.com/api/v8/partner"
    veryfi_client_id: str = ""
    veryfi_username: str = ""
    veryfi_api_key: str = ""
    veryfi_timeout_seconds: float = 60.0

    # Receipt image storage
    receipt_storage_bucket: str | None = None
    receipt_storage_region: str | None = None
    receipt_storage_endpoint: str | None = None
    receipt_storage_prefix: str = "receipts"
    receipt_storage_public_base_url: str | None = None
    receipt_storage_acl: str = "private"
    receipt_storage_force_path_style: bool = False

    # Transactional email
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None
    smtp_use_tls: bool = True
    smtp_sender_email: str = "hello@localcityplaces.com"
    admin_notification_recipients: list[str] = Field(default_factory=list)

    @field_validator("admin_notification_recipients", mode="before")
    @classmethod
    def _parse_recipient_list(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip() for item in value if str(item).strip()]
        return []

    # Broadcast email (Postmark)
    postmark_base_url: str = "https://api.postmarkapp.com"
    postmark_server_token: str = ""
    postmark_from_email: str = "Local City Places <news@localcityplaces.com>"
    postmark_message_stream: str = "broadcast"
    postmark_batch_size: int = 500

    # Lifecycle scheduler
    qualification_scheduler_enabled: bool = False
    qualification_scheduler_interval_seconds: int = 3600
    grc_claim_expiry_days: int = 90


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
