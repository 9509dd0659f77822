from pydantic_settings import BaseSettings
from functools import lru_cache

class Settings(BaseSettings):
    SERVICE_NAME: str = "orders-service"
    SERVICE_VERSION: str = "1.0.0"
    LOG_LEVEL: str = "INFO"
    DATABASE_URL: str = "sqlite:///./grocery.db"
    JWT_SECRET: str = "change-me"
    JWT_ALG: str = "HS256"
    ADMIN_ROLES: list[str] = ["admin", "super_admin"]
    RIDER_ROLES: list[str] = ["rider"]
    ORDER_NUMBER_PREFIX: str = "ORD"

    class Config:
        env_file = ".env"

@lru_cache
def get_settings() -> Settings:
    return Settings()
