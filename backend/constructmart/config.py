from pydantic_settings import BaseSettings
from typing import List

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./constructmart.db"
    APP_HOST: str = "127.0.0.1"
    APP_PORT: int = 1337
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    RESET_DB: bool = False

    JWT_SECRET: str = "constructmart_jwt_secret"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_TTL_HOURS: int = 24
    REMEMBER_ME_TTL_DAYS: int = 7
    RESET_TOKEN_TTL_MINUTES: int = 60
    BCRYPT_ROUNDS: int = 12

    FRONTEND_ORIGINS: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    TAX_RATE: float = 0.10
    FLAT_SHIPPING_CENTS: int = 1500
    CURRENCY: str = "USD"

    STORAGE_DIR: str = "./storage"
    LOCK_DIR: str = ""  # empty -> system temp dir
    LOCK_TIMEOUT_SECONDS: int = 10

    SCHEDULER_ENABLED: bool = True
    PROMOTION_REFRESH_SECONDS: int = 60

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

settings = Settings()
