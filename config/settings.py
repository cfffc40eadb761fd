"""Configuration management using pydantic-settings."""
from typing import Optional

from pydantic_settings import BaseSettings
from sqlalchemy.engine import URL


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # CORS: the web client lives on a single origin
    cors_origin: str = "https://interflare.net"

    # Cache store
    cache_database_url: str = "sqlite:///./gameinfo_cache.db"
    cache_namespace: str = "if.game"

    # Source database (CoreProtect read replica, not the master db)
    sql_driver: str = "mysql+pymysql"
    sql_host: Optional[str] = None
    sql_user: Optional[str] = None
    sql_pass: Optional[str] = None
    sql_db: Optional[str] = None
    source_database_url: Optional[str] = None
    source_schema: Optional[str] = "creative"

    # Background refresh
    refresh_single_flight: bool = False
    refresh_inflight_ttl_seconds: int = 300

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def source_url(self):
        """
        URL for the source database.

        An explicit SOURCE_DATABASE_URL wins; otherwise the URL is composed
        from the SQL_* credentials.
        """
        if self.source_database_url:
            return self.source_database_url
        return URL.create(
            self.sql_driver,
            username=self.sql_user,
            password=self.sql_pass,
            host=self.sql_host,
            database=self.sql_db,
        )


settings = Settings()
