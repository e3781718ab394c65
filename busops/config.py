from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    # Core
    environment: str = Field(default="dev")
    app_name: str = Field(default="BusOps")
    tz_default: str = Field(default="Europe/Paris", alias="TZ_DEFAULT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database
    database_url: str = Field(
        default="sqlite:///./var/busops.db",
        alias="DATABASE_URL",
        description="Embedded store; any SQLAlchemy URL works, e.g. sqlite:///:memory: for tests",
    )
    auto_create_db: bool = Field(default=True, alias="AUTO_CREATE_DB")

    # JWT (UI adapter session tokens)
    jwt_secret: str = Field(default="change-me", alias="JWT_SECRET")
    jwt_algorithm: str = Field(default="HS256")
    jwt_ttl_seconds: int = Field(default=60 * 60 * 12, alias="JWT_TTL")  # 12 hours

    # Work time
    max_daily_minutes: int = Field(default=23 * 60 + 59, alias="MAX_DAILY_MINUTES")  # HH:MM with HH <= 23

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        populate_by_name = True
