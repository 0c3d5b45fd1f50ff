from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    # App Info
    app_name: str = "BranchStock API"
    version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # Database
    database_url: str = "sqlite:///./branchstock.db"
    sqlite_busy_timeout_seconds: float = Field(default=30.0, description="Espera máxima por el lock de escritura de SQLite")

    # Security
    secret_key: str = "change-me-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 10080  # 1 week

    allowed_origins: List[str] = ["http://localhost:3000"]

    # Requisitions
    max_items_per_requisition: int = Field(default=50, description="Máximo de items por requisición")
    max_item_quantity: int = Field(default=10000, description="Cantidad máxima por item")
    max_request_body_size: int = Field(default=100_000, description="Tamaño máximo del body en bytes")
    default_list_limit: int = 50
    max_list_limit: int = 200

    # Rate limiting (best-effort)
    rate_limit_storage_uri: str = "memory://"
    rate_limit_window_seconds: int = 60
    rate_limit_public: int = 50
    rate_limit_requester: int = 100
    rate_limit_approver: int = 200
    rate_limit_admin: int = 200

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")


settings = Settings()
