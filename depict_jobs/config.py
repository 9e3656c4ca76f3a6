"""Configuration settings for the job queue service."""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    # Redis
    redis_url: str = "redis://localhost:6379"
    redis_enabled: bool = True  # False forces degraded mode without probing
    
    # Queue engine
    queue_backend: str = "redis"  # "redis" or "memory"
    queue_key_prefix: str = "depict"
    store_probe_timeout_seconds: float = 3.0
    poll_interval_ms: int = 1000
    stall_interval_ms: int = 30000  # Active job without heartbeat for this long is stalled
    stall_check_interval_ms: int = 30000
    shutdown_grace_ms: int = 10000
    start_workers: bool = True
    
    # Server
    port: int = 5001
    debug: bool = False
    log_level: str = "INFO"
    log_format: str = "json"  # "json" or "text"
    
    # CORS (comma-separated list of allowed origins)
    cors_origins: str = "http://localhost:3000"
    
    # Mail
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = "noreply@carbondepict.com"
    smtp_use_tls: bool = True
    client_url: str = "http://localhost:3000"
    email_concurrency: int = 5
    
    # Notification bridge (real-time service webhook)
    notification_webhook_url: str = ""
    service_token: str = ""  # Bearer token for service-to-service auth
    
    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def clear_settings_cache():
    """Clear settings cache (useful for testing)."""
    get_settings.cache_clear()
