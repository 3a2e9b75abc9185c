from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./hatchsync.db"
    cloud_base_url: str = "https://api.zylonlabs.com"
    cloud_api_key: str = "demo_api_key"  # the demo key selects DemoTransport
    client_version: str = "1.0.0"
    demo_mode: bool = False
    demo_failure_rate: float = 0.05

    batch_size: int = 100
    sync_interval_seconds: float = 2.0
    tick_seconds: float = 2.0
    max_retry_attempts: int = 3
    transport_timeout_seconds: float = 5.0
    breaker_cooldown_seconds: float = 30.0
    store_timeout_seconds: float = 5.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
