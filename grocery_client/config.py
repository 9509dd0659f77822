from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

class ClientSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="GROCERY_", env_file=".env", extra="ignore")

    API_BASE_URL: str = "http://localhost:8000"
    REQUEST_TIMEOUT: float = 15.0
    RESPONSE_CACHE_SIZE: int = 64

@lru_cache
def get_client_settings() -> ClientSettings:
    return ClientSettings()
