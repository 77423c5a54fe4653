from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import EmailStr
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # --- Database ---
    database_url: str = "sqlite:///lodge_dev.db"

    # --- Security / JWT ---
    jwt_secret: str = "dev-secret-please-change"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24  # 24 hours
    refresh_token_expire_minutes: int = 60 * 24 * 30  # 30 days
    admin_bootstrap_email: Optional[str] = None

    # --- Throttling ---
    # Honour X-Forwarded-For only when the API sits behind a trusted proxy.
    trust_forwarded_for: bool = False
    login_attempts_per_minute: int = 10
    contact_messages_limit: int = 5
    contact_window_seconds: int = 300

    # --- CORS ---
    cors_allow_origins: List[str] = ["http://localhost:5173", "http://localhost:8080"]

    # --- Storage ---
    file_storage_backend: str = "local"
    uploads_dir: str = "uploads"
    uploads_public_prefix: str = "uploads"
    api_base_url: str = "http://localhost:8000"
    s3_bucket: Optional[str] = None
    s3_region: Optional[str] = None
    s3_access_key: Optional[str] = None
    s3_secret_key: Optional[str] = None
    s3_endpoint_url: Optional[str] = None

    # --- Email ---
    email_backend: str = "local"
    sendgrid_api_key: Optional[str] = None
    email_host: Optional[str] = None
    email_port: int = 587
    email_host_user: Optional[str] = None
    email_host_password: Optional[str] = None
    email_use_tls: bool = True
    email_from_address: Optional[EmailStr] = None
    email_from_name: str = "Secretaria da Loja"
    email_reply_to: Optional[EmailStr] = None
    email_output_dir: str = "uploads/emails"
    email_reply_timeout_seconds: float = 5.0

    # --- Reports ---
    pdf_output_dir: str = "uploads/pdfs"
    lodge_name: str = "Loja Maçônica"
    currency_symbol: str = "R$"

    # --- Logging ---
    log_level: str = "INFO"
    log_json: bool = False

    @property
    def uploads_root_path(self) -> Path:
        return Path(self.uploads_dir)


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()

# Ensure path directory exists (for SQLite)
if settings.database_url.startswith("sqlite:///"):
    db_path = Path(settings.database_url.replace("sqlite:///", ""))
    db_path.parent.mkdir(parents=True, exist_ok=True)

# --- SQLAlchemy setup ---
engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False}
    if settings.database_url.startswith("sqlite")
    else {},
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()
