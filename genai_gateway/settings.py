from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict

OPENAI_API_BASE = "https://api.openai.com"


class Settings(BaseSettings):
    openai_api_key: str | None = None
    openai_base_url: str | None = None
    vcap_services: str | None = None
    service_bindings_path: str | None = None
    default_model: str = "gpt-4"
    default_max_tokens: int = 1024
    default_temperature: float = 0.5
    upstream_verify_ssl: bool = True
    upstream_timeout_seconds: float | None = None
    stream_chunk_size: int = 20
    stream_chunk_delay_seconds: float = 0.01
    provider_path_suffixes: str = "/openai"
    frontend_dist_path: str | None = None
    app_env: str = "development"
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
    )

    @property
    def has_binding_snapshot(self) -> bool:
        return bool(self.vcap_services or self.service_bindings_path)

    @property
    def provider_path_suffixes_list(self) -> list[str]:
        suffixes = []
        for item in _split_csv(self.provider_path_suffixes):
            suffix = "/" + item.strip("/")
            if suffix != "/":
                suffixes.append(suffix)
        return suffixes


def _split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def get_settings() -> Settings:
    """Read settings from the current environment.

    Not cached: backend credentials and service bindings may change between
    requests and every request must observe the current values.
    """
    return Settings()
