"""Configuration for the OpenAPI MCP Adapter."""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="", case_sensitive=False, env_file=".env", extra="ignore"
    )

    service_name: str = Field(default="openapi-mcp-adapter")
    service_version: str = Field(default="1.0.0")

    openapi_document: str = Field(default="swagger.json")

    api_base_url: Optional[str] = Field(default=None)
    api_token: str = Field(default="")
    api_token_header: str = Field(default="authtoken")
    api_timeout_seconds: float = Field(default=15)

    adapter_transport: str = Field(default="stdio")
    adapter_host: str = Field(default="127.0.0.1")
    adapter_port: int = Field(default=8000)
    adapter_path: str = Field(default="/mcp")
    adapter_json_response: bool = Field(default=False)
    adapter_auth_token: Optional[str] = Field(default=None)

    adapter_allowed_hosts: Optional[str] = Field(default=None)
    adapter_allowed_origins: Optional[str] = Field(default=None)

    adapter_log_level: str = Field(default="INFO")

    def allowed_hosts(self) -> List[str]:
        return _split(self.adapter_allowed_hosts)

    def allowed_origins(self) -> List[str]:
        return _split(self.adapter_allowed_origins)

    def dns_rebinding_protection(self) -> bool:
        return bool(self.allowed_hosts() or self.allowed_origins())


def _split(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
