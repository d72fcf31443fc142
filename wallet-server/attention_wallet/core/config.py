"""Application configuration using pydantic settings with structured sections."""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerSettings(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8000
    reload: bool = False


class DatabaseSettings(BaseModel):
    url: str = Field(default="sqlite+aiosqlite:///./wallet_local.db", alias="url")
    echo: bool = False
    pool_size: Optional[int] = None
    max_overflow: Optional[int] = None


class SecuritySettings(BaseModel):
    secret_key: str = Field(default="change-me", min_length=8)
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7


class LedgerSettings(BaseModel):
    backup_threshold: int = Field(default=50, gt=0)
    recent_transactions_limit: int = 100


class SyncSettings(BaseModel):
    retry_interval: float = 30.0
    watch_interval: float = 5.0
    stalled_after_cycles: int = 3


class BackupSettings(BaseModel):
    routine_interval_hours: int = 24
    cleanup_interval_hours: int = 24
    max_backups: int = 5
    retention_days: int = 7
    transactions_per_backup: int = 100
    version: str = "1.0.0"


class ConnectivitySettings(BaseModel):
    probe_host: Optional[str] = None
    probe_port: int = 443
    timeout: float = 5.0
    poll_interval: float = 10.0


class BillingSettings(BaseModel):
    tokens_per_minute: int = Field(default=5, gt=0)
    tick_interval: float = 1.0


class QuestSettings(BaseModel):
    min_confidence: int = Field(default=70, ge=0, le=100)


class RemoteSettings(BaseModel):
    backend: Literal["memory"] = "memory"


class Settings(BaseSettings):
    """Top-level application settings with nested sections."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    environment: Literal["development", "staging", "production", "test"] = "development"
    debug: bool = False
    project_name: str = "Attention Wallet"
    api_prefix: str = "/api"

    server: ServerSettings = ServerSettings()
    database: DatabaseSettings = DatabaseSettings()
    security: SecuritySettings = SecuritySettings()
    ledger: LedgerSettings = LedgerSettings()
    sync: SyncSettings = SyncSettings()
    backup: BackupSettings = BackupSettings()
    connectivity: ConnectivitySettings = ConnectivitySettings()
    billing: BillingSettings = BillingSettings()
    quests: QuestSettings = QuestSettings()
    remote: RemoteSettings = RemoteSettings()

    @property
    def database_url(self) -> str:
        return self.database.url

    @property
    def host(self) -> str:
        return self.server.host

    @property
    def port(self) -> int:
        return self.server.port

    @property
    def secret_key(self) -> str:
        return self.security.secret_key

    @property
    def algorithm(self) -> str:
        return self.security.algorithm

    @property
    def access_token_expire_minutes(self) -> int:
        return self.security.access_token_expire_minutes


@lru_cache()
def get_settings() -> Settings:
    return Settings()
