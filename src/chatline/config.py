from pydantic_settings import BaseSettings


class Config(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str
    host: str
    port: int
    debug: bool
    cors_origins: list[str] = []
    # Realtime stream cadence (seconds / tick counts)
    realtime_tick_interval: float = 3.0
    realtime_error_backoff: float = 5.0  # Sleep after a storage fault before retrying the tick
    realtime_presence_every: int = 10  # Sweep + user_status + heartbeat every N ticks
    realtime_refresh_every: int = 5  # Refresh session liveness every N ticks
    presence_stale_after: int = 5 * 60  # Sessions idle longer than this no longer count as online
    presence_hard_delete_after: int = 10 * 60  # Sessions idle longer than this are deleted

    model_config = {
        "env_file": [".env"],
        "env_prefix": "CHATLINE_",
        "extra": "ignore",
    }
