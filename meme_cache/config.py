from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="MEME_CACHE_", env_file=".env", extra="ignore")

    # API
    api_base_url: str = "http://localhost:3000"
    api_key: str = ""
    request_timeout: float = 30.0
    api_retries: int = 0  # retries for 429/5xx and transport errors

    # Cache
    cache_backend: str = "memory"  # "memory" or "redis"
    redis_url: str = ""
    cache_text_max_entries: int = 100
    cache_image_max_entries: int = 500
    cache_search_max_entries: int = 50
    cache_assets_max_entries: int = 200

    # Embedding status batching
    status_batch_size: int = 50
    status_batch_interval: float = 5.0
    status_max_retries: int = 10
    status_retry_delay: float = 10.0
    status_failure_backoff: float = 5.0

    # Real-time connection
    realtime_path: str = "/api/sse/embedding-updates"
    realtime_control_path: str = "/api/realtime/control"
    realtime_max_reconnect_attempts: int = 5
    realtime_queue_size: int = 100
    realtime_ping_interval: float = 30.0

    # Connection pool
    pool_max_concurrent: int = 4
    pool_request_timeout: float = 30.0

    log_level: str = "INFO"

    def validate_backend(self) -> None:
        """Fail fast on an unusable cache backend selection."""
        if self.cache_backend not in ("memory", "redis"):
            raise ValueError(
                f"Unknown cache backend {self.cache_backend!r}. Use 'memory' or 'redis'."
            )
        if self.cache_backend == "redis" and not self.redis_url.startswith(
            ("redis://", "rediss://", "unix://")
        ):
            raise ValueError(
                "MEME_CACHE_REDIS_URL must be set to a redis://, rediss:// or unix:// URL "
                "when the redis cache backend is selected."
            )

    def cache_limits(self) -> dict[str, int]:
        return {
            "text": self.cache_text_max_entries,
            "image": self.cache_image_max_entries,
            "search": self.cache_search_max_entries,
            "assets": self.cache_assets_max_entries,
        }

    def url_for(self, path: str) -> str:
        return f"{self.api_base_url.rstrip('/')}/{path.lstrip('/')}"


settings = Settings()
