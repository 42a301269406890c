"""Configuration schema using Pydantic."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from wabridge.pairing.backend import DEFAULT_QR_URL_TEMPLATE


class GatewayConfig(BaseModel):
    """Gateway/server configuration."""
    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


class PairingConfig(BaseModel):
    """Pairing handshake configuration."""
    mode: Literal["timer", "manual"] = "timer"  # manual = wait for POST /numbers/{id}/link
    link_delay_seconds: float = 8.0
    qr_url_template: str = DEFAULT_QR_URL_TEMPLATE


class RegistryConfig(BaseModel):
    """Where channel records live."""
    backend: Literal["memory", "json"] = "memory"
    path: str = "~/.wabridge/numbers.json"


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    file: str = ""  # Empty = stderr only


class Config(BaseSettings):
    """Root configuration for wabridge."""
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    pairing: PairingConfig = Field(default_factory=PairingConfig)
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="WABRIDGE_",
        env_nested_delimiter="__",
    )

    @property
    def registry_path(self) -> Path:
        """Get expanded registry file path."""
        return Path(self.registry.path).expanduser()

    @property
    def base_url(self) -> str:
        """URL the CLI uses to reach a locally running gateway."""
        host = "127.0.0.1" if self.gateway.host in ("0.0.0.0", "") else self.gateway.host
        return f"http://{host}:{self.gateway.port}"
