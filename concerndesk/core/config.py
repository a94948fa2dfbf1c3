# concerndesk/core/config.py
import json
from typing import List, Literal, Optional, Union

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # ==== Інфраструктура ====
    database_url: str = "postgresql+asyncpg://app:app@db:5432/concerndesk"
    redis_url: str = "redis://redis:6379/0"
    # створювати схему при старті (dev/тести); у проді alembic upgrade head
    auto_create_schema: bool = False

    # ==== Безпека / Auth ====
    jwt_secret: str = "changeme"
    jwt_alg: str = "HS256"
    jwt_expires_min: int = 60 * 24  # 1 доба

    # ==== CORS ====
    # CORS_ORIGINS=http://localhost:4000,http://127.0.0.1:4000
    cors_origins: Union[str, List[str]] = [
        "http://localhost:4000",
        "http://127.0.0.1:4000",
        "http://localhost:5173",
    ]

    # ==== Заявки ====
    ticket_prefix: str = "BRT"
    ticket_id_width: int = 6

    # ==== Вкладення ====
    upload_dir: str = "uploads"
    max_upload_mb: int = 5

    # ==== Нотифікації ====
    notifications_backend: Literal["rq", "log", "none"] = "rq"
    notifications_queue: str = "notifications"
    notify_admin_email: str = "admin@brototype.com"
    webhook_url: Optional[str] = None
    webhook_secret: Optional[str] = None

    # ==== Realtime ====
    # перевіряти доступ до заявки при join-concern
    ws_authorize_joins: bool = False
    ws_queue_size: int = 100

    # ==== Bootstrap Admin ====
    admin_email: str = "admin@brototype.com"
    admin_password: str = "admin123"
    admin_name: str = "Admin User"

    # ==== Логування / Оточення ====
    env: str = "dev"          # dev|staging|prod
    log_level: str = "INFO"   # DEBUG|INFO|WARNING|ERROR
    # необроблена помилка у фоновій задачі зупиняє процес
    fatal_on_unhandled: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v):
        if isinstance(v, str):
            s = v.strip()
            if s.startswith("[") and s.endswith("]"):
                try:
                    parsed = json.loads(s)
                    return [str(i).strip() for i in parsed if str(i).strip()]
                except ValueError:
                    pass
            return [i.strip() for i in s.split(",") if i.strip()]
        return v

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024


settings = Settings()
