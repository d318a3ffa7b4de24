from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "netdisk"
    app_env: str = "dev"

    kv_backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    redis_key_prefix: str = ""
    store_timeout_seconds: float = 5.0

    blob_dir: str = "data/blobs"
    blob_chunk_size: int = 64 * 1024
    max_upload_size_bytes: int = 100 * 1024 * 1024

    session_ttl_seconds: int = 24 * 60 * 60
    share_ttl_seconds: int = 7 * 24 * 60 * 60

    # Per-username in-process lock around ledger read-modify-write.
    # Does not protect against writers in other processes.
    serialize_ledger_writes: bool = True

    cors_allow_origin: str = "*"
    cors_allow_methods: str = "GET, POST, PUT, DELETE, OPTIONS"
    cors_allow_headers: str = "Content-Type, Authorization"

    log_level: str = "INFO"
    log_file: str | None = None

    model_config = SettingsConfigDict(env_file=".env", env_prefix="NETDISK_")

    def cors_headers(self) -> dict[str, str]:
        return {
            "Access-Control-Allow-Origin": self.cors_allow_origin,
            "Access-Control-Allow-Methods": self.cors_allow_methods,
            "Access-Control-Allow-Headers": self.cors_allow_headers,
        }


@lru_cache
def get_settings() -> Settings:
    return Settings()
