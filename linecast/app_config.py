"""Typed settings for the server and client commands.

Precedence (later wins): built-in defaults, environment (`EnvironConfig`),
YAML config file, command line flags.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from linecast.shared.config import config, load_config_file, save_config_file
from linecast.utils.app_errors import ConfigError

DEFAULT_STREAM_CHANNEL = "fileStream"
DEFAULT_INIT_CHANNEL = "initChannel"


def parse_listen_addr(addr: str) -> tuple[str, int]:
    """Split a listen address into host and port.

    ``:8080`` listens on all interfaces; ``host:port`` and ``[v6]:port`` are
    accepted as well.
    """
    value = addr.strip()
    host, sep, port_text = value.rpartition(":")
    if not sep:
        raise ConfigError(f"invalid listen address '{addr}': missing port")

    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]

    try:
        port = int(port_text)
    except ValueError as exc:
        raise ConfigError(f"invalid listen address '{addr}': bad port '{port_text}'") from exc

    if not 0 <= port <= 65535:
        raise ConfigError(f"invalid listen address '{addr}': port out of range")

    return host or "0.0.0.0", port


class ServerSettings(BaseModel):
    addr: str = Field(default_factory=lambda: config.get_str("SERVER_ADDR", ":8080"))
    file: str = Field(default_factory=lambda: config.get_str("SERVER_FILE", "sample.txt"))
    delay: int = Field(default_factory=lambda: config.get_int("SERVER_DELAY_MS", 1000), ge=0)
    stun: str = Field(default_factory=lambda: config.get_str("SERVER_STUN"))

    gathering_timeout: float = Field(
        default_factory=lambda: config.get_float("GATHERING_TIMEOUT_SECONDS", 10.0), gt=0
    )
    session_open_timeout: float = Field(
        default_factory=lambda: config.get_float("SESSION_OPEN_TIMEOUT_SECONDS", 30.0), gt=0
    )
    max_offer_bytes: int = Field(
        default_factory=lambda: config.get_int("MAX_OFFER_BYTES", 65536), gt=0
    )
    # how long a finished session waits for the peer to hang up before closing
    close_grace: float = Field(
        default_factory=lambda: config.get_float("SESSION_CLOSE_GRACE_SECONDS", 2.0), ge=0
    )
    debug: bool = Field(default_factory=lambda: config.get_bool("DEBUG"))

    @property
    def listen(self) -> tuple[str, int]:
        return parse_listen_addr(self.addr)


class ClientSettings(BaseModel):
    server: str = Field(
        default_factory=lambda: config.get_str("CLIENT_SERVER_URL", "http://localhost:8080/offer")
    )
    output: str = Field(default_factory=lambda: config.get_str("CLIENT_OUTPUT"))
    stun: str = Field(default_factory=lambda: config.get_str("CLIENT_STUN"))

    gathering_timeout: float = Field(
        default_factory=lambda: config.get_float("GATHERING_TIMEOUT_SECONDS", 10.0), gt=0
    )
    http_timeout: float = Field(
        default_factory=lambda: config.get_float("HTTP_TIMEOUT_SECONDS", 30.0), gt=0
    )
    debug: bool = Field(default_factory=lambda: config.get_bool("DEBUG"))


class LinecastConfig(BaseModel):
    """Shape of the YAML config file."""

    server: ServerSettings = Field(default_factory=ServerSettings)
    client: ClientSettings = Field(default_factory=ClientSettings)


def _drop_unset(overrides: dict[str, Any] | None) -> dict[str, Any]:
    return {key: value for key, value in (overrides or {}).items() if value is not None}


def load_settings(
    config_path: str | None = None,
    *,
    server: dict[str, Any] | None = None,
    client: dict[str, Any] | None = None,
) -> LinecastConfig:
    """Build settings from env, the config file and command line overrides.

    Args:
        config_path: YAML file; None looks for ./config.yaml
        server: Server flag overrides, None values are ignored
        client: Client flag overrides, None values are ignored

    Raises:
        ConfigError: If the config file is unreadable or a value is invalid
    """
    data = load_config_file(config_path)

    server_data = {**(data.get("server") or {}), **_drop_unset(server)}
    client_data = {**(data.get("client") or {}), **_drop_unset(client)}

    try:
        return LinecastConfig(
            server=ServerSettings.model_validate(server_data),
            client=ClientSettings.model_validate(client_data),
        )
    except ValidationError as exc:
        raise ConfigError(f"invalid configuration: {exc}") from exc


def save_settings(settings: LinecastConfig, path: str) -> Path:
    return save_config_file(settings.model_dump(), path)
