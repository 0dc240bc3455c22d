from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Durable store (SQLAlchemy async URL)
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/app-data.db"

    # "database": durable store with local fallback
    # "local": local key/value file only (no durable backend)
    STORE_BACKEND: str = "database"
    LOCAL_STORE_PATH: str = "./data/local-storage.json"

    # App
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Bridge (outbound provider calls)
    BRIDGE_TIMEOUT: float = 300.0
    ANTHROPIC_VERSION: str = "2023-06-01"
    CLAUDE_DEFAULT_MAX_TOKENS: int = 4096

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
