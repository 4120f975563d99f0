from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = ""
    environment: str = "dev"
    # Cache settings
    cache_backend: str = "memory"  # memory, redis
    cache_max_size: int = 1000
    cache_ttl: int = 300  # 5 minutes, used for filtered reports
    cache_ttl_long: int = 1800  # 30 minutes, used for dashboard and top performers
    cache_prefix: str = "analytics"
    redis_url: str = "redis://localhost:6379/0"
    redis_connect_timeout: float = 5.0
    # Report settings
    report_concurrency: int = 1  # Subjects analysed in parallel; >1 needs a data source safe for concurrent use
    top_performers_per_subject: int = 3
    top_performers_max_limit: int = 100
    # Import settings
    import_batch_size: int = 1000
    # CORS settings
    cors_origins: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]


class LoggingSettings(BaseSettings):
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "text"  # "text" or "json"
    ENV: str = "dev"  # dev | staging | prod

    class Config:
        env_prefix = "APP_"


logging_settings = LoggingSettings()

settings = Settings()  # type: ignore
