import os
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    database_url: str = os.getenv("DATABASE_URL", "")
    mysql_host: str = os.getenv("MYSQL_HOST", "localhost")
    mysql_port: int = int(os.getenv("MYSQL_PORT", "3306"))
    mysql_user: str = os.getenv("MYSQL_USER", "bookstore_user")
    mysql_password: str = os.getenv("MYSQL_PASSWORD", "bookstore_pass")
    mysql_database: str = os.getenv("MYSQL_DATABASE", "bookstore")

    # Connection pool
    db_pool_size: int = int(os.getenv("DB_POOL_SIZE", "5"))
    db_max_overflow: int = int(os.getenv("DB_MAX_OVERFLOW", "10"))
    db_pool_recycle: int = int(os.getenv("DB_POOL_RECYCLE", "1800"))
    db_connect_timeout: int = int(os.getenv("DB_CONNECT_TIMEOUT", "30"))
    wait_for_db_timeout: int = int(os.getenv("WAIT_FOR_DB_TIMEOUT", "60"))
    auto_create_tables: bool = os.getenv("AUTO_CREATE_TABLES", "true").lower() == "true"

    # Application
    app_name: str = "Bookstore API"
    debug: bool = os.getenv("DEBUG", "false").lower() == "true"
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Order placement
    max_retry_attempts: int = int(os.getenv("MAX_RETRY_ATTEMPTS", "5"))

    # Reports
    low_stock_threshold: int = int(os.getenv("LOW_STOCK_THRESHOLD", "10"))
    dashboard_low_stock_limit: int = int(os.getenv("DASHBOARD_LOW_STOCK_LIMIT", "10"))
    currency: str = os.getenv("CURRENCY", "VND")

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()


# Database URL
def get_database_url() -> str:
    if settings.database_url:
        return settings.database_url
    return f"mysql+pymysql://{settings.mysql_user}:{settings.mysql_password}@{settings.mysql_host}:{settings.mysql_port}/{settings.mysql_database}"
