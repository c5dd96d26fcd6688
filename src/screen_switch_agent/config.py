"""
Screen Switch Agent configuration.

Values come from environment variables, optionally loaded from standard env
files.

Priority (lowest -> highest):
1) /etc/screen-switch/agent.env (system install)
2) ~/.config/screen-switch-agent/.env (user install)
3) ./.env (project override)
4) process environment variables (always win)

Broker settings (load_broker_config) are re-read before every connection
attempt so edits take effect on the next reconnect. Agent settings
(load_settings) are read once at startup.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from dotenv import load_dotenv

from screen_switch_agent.core.backoff import (
    DEFAULT_CEILING_S,
    DEFAULT_EXPONENTIAL_MAX_RETRIES,
    DEFAULT_FIXED_DELAY_S,
    DEFAULT_FIXED_MAX_RETRIES,
    DEFAULT_INITIAL_DELAY_S,
    AnyBackoff,
    BackoffMode,
    build_backoff,
)
from screen_switch_agent.core.decoder import PayloadMode
from screen_switch_agent.mqtt_topics import DEFAULT_CONTROL_TOPIC, TopicSchema, TopicSchemaError

DEFAULT_CLIENT_ID = "auto_screen_switch"
DEFAULT_KEEPALIVE_S = 30
DEFAULT_CONNECT_TIMEOUT_S = 10.0
DEFAULT_POLL_TIMEOUT_MS = 500


class ConfigError(ValueError):
    """Raised when configuration is missing or invalid."""


def _env_paths() -> Iterable[Path]:
    # 1) system install
    yield Path("/etc/screen-switch/agent.env")

    # 2) user config dir
    if sys.platform == "win32":
        base = Path(os.environ.get("APPDATA", str(Path.home())))
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config")))
    yield base / "screen-switch-agent" / ".env"

    # 3) project override
    yield Path(".env")


def load_env_files() -> None:
    """Fill missing environment variables from the env files above."""
    for p in _env_paths():
        if p.is_file():
            # do not override existing env vars; later files can fill missing
            try:
                load_dotenv(p, override=False)
            except ValueError as exc:  # includes UnicodeDecodeError
                raise ConfigError(f"Cannot read {p}: {exc}") from exc


def _require_env(key: str) -> str:
    v = os.getenv(key)
    if v is None or v.strip() == "":
        raise ConfigError(f"Missing required environment variable: {key}")
    return v.strip()


def _optional_env(key: str) -> Optional[str]:
    v = os.getenv(key)
    if v is None or v.strip() == "":
        return None
    return v.strip()


def _parse_int(key: str, raw: str) -> int:
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"Invalid integer for {key}: {raw!r}") from exc


def _parse_float(key: str, raw: str) -> float:
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"Invalid number for {key}: {raw!r}") from exc


def _parse_enum(key: str, raw: str, enum_cls):
    try:
        return enum_cls(raw.lower())
    except ValueError as exc:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ConfigError(f"Invalid value for {key}: {raw!r} (allowed: {allowed})") from exc


@dataclass(frozen=True, slots=True)
class Credentials:
    username: str
    password: str

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password='***')"


@dataclass(frozen=True, slots=True)
class BrokerConfig:
    broker_address: str
    broker_port: int
    credentials: Optional[Credentials] = None

    def __post_init__(self) -> None:
        if not self.broker_address:
            raise ConfigError("Broker address must not be empty")
        if not (1 <= self.broker_port <= 65535):
            raise ConfigError(f"MQTT_PORT out of range: {self.broker_port}")


@dataclass(frozen=True, slots=True)
class BackoffSettings:
    mode: BackoffMode = BackoffMode.FIXED
    max_retries: int = DEFAULT_FIXED_MAX_RETRIES
    delay_s: float = DEFAULT_FIXED_DELAY_S
    initial_s: float = DEFAULT_INITIAL_DELAY_S
    ceiling_s: float = DEFAULT_CEILING_S

    def build(self) -> AnyBackoff:
        try:
            return build_backoff(
                self.mode,
                max_retries=self.max_retries,
                delay_s=self.delay_s,
                initial_s=self.initial_s,
                ceiling_s=self.ceiling_s,
            )
        except ValueError as exc:
            raise ConfigError(f"Invalid backoff settings: {exc}") from exc


@dataclass(frozen=True, slots=True)
class AgentSettings:
    topics: TopicSchema
    client_id: str = DEFAULT_CLIENT_ID
    keepalive_s: int = DEFAULT_KEEPALIVE_S
    connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S
    poll_timeout_s: float = DEFAULT_POLL_TIMEOUT_MS / 1000.0
    payload_mode: PayloadMode = PayloadMode.AUTO
    backoff: BackoffSettings = BackoffSettings()


def load_broker_config(*, dotenv_enabled: bool = True) -> BrokerConfig:
    """
    Read broker address, port and optional credentials.

    Called before every connection attempt. Raises ConfigError on failure.
    """
    if dotenv_enabled:
        load_env_files()

    host = _require_env("MQTT_HOST")
    port = _parse_int("MQTT_PORT", _require_env("MQTT_PORT"))

    username = _optional_env("MQTT_USERNAME")
    password = os.getenv("MQTT_PASSWORD")
    credentials = None
    if username is not None and password:
        credentials = Credentials(username=username, password=password)
    elif username is not None or password:
        raise ConfigError("MQTT_USERNAME and MQTT_PASSWORD must be set together")

    return BrokerConfig(broker_address=host, broker_port=port, credentials=credentials)


def _load_backoff_settings() -> BackoffSettings:
    mode = _parse_enum(
        "SCREEN_SWITCH_BACKOFF",
        os.getenv("SCREEN_SWITCH_BACKOFF", BackoffMode.FIXED.value),
        BackoffMode,
    )
    default_retries = (
        DEFAULT_FIXED_MAX_RETRIES if mode is BackoffMode.FIXED else DEFAULT_EXPONENTIAL_MAX_RETRIES
    )
    raw_retries = _optional_env("SCREEN_SWITCH_MAX_RETRIES")
    max_retries = (
        _parse_int("SCREEN_SWITCH_MAX_RETRIES", raw_retries) if raw_retries else default_retries
    )

    settings = BackoffSettings(
        mode=mode,
        max_retries=max_retries,
        delay_s=_parse_float(
            "SCREEN_SWITCH_RETRY_DELAY",
            os.getenv("SCREEN_SWITCH_RETRY_DELAY", str(DEFAULT_FIXED_DELAY_S)),
        ),
        initial_s=_parse_float(
            "SCREEN_SWITCH_BACKOFF_INITIAL",
            os.getenv("SCREEN_SWITCH_BACKOFF_INITIAL", str(DEFAULT_INITIAL_DELAY_S)),
        ),
        ceiling_s=_parse_float(
            "SCREEN_SWITCH_BACKOFF_CEILING",
            os.getenv("SCREEN_SWITCH_BACKOFF_CEILING", str(DEFAULT_CEILING_S)),
        ),
    )
    # validate eagerly so a bad policy fails at startup, not on first retry
    settings.build()
    return settings


def load_settings(*, dotenv_enabled: bool = True) -> AgentSettings:
    """
    Read the agent settings that stay fixed for the process lifetime.

    Raises ConfigError on failure.
    """
    if dotenv_enabled:
        load_env_files()

    try:
        topics = TopicSchema(
            control=os.getenv("SCREEN_SWITCH_TOPIC", DEFAULT_CONTROL_TOPIC),
            availability=_optional_env("SCREEN_SWITCH_AVAILABILITY_TOPIC"),
        )
    except TopicSchemaError as exc:
        raise ConfigError(str(exc)) from exc

    client_id = os.getenv("SCREEN_SWITCH_CLIENT_ID", DEFAULT_CLIENT_ID).strip()
    if not client_id:
        raise ConfigError("SCREEN_SWITCH_CLIENT_ID must not be empty")

    keepalive_s = _parse_int(
        "SCREEN_SWITCH_KEEPALIVE", os.getenv("SCREEN_SWITCH_KEEPALIVE", str(DEFAULT_KEEPALIVE_S))
    )
    if keepalive_s < 1:
        raise ConfigError("SCREEN_SWITCH_KEEPALIVE must be >= 1")

    connect_timeout_s = _parse_float(
        "SCREEN_SWITCH_CONNECT_TIMEOUT",
        os.getenv("SCREEN_SWITCH_CONNECT_TIMEOUT", str(DEFAULT_CONNECT_TIMEOUT_S)),
    )
    if connect_timeout_s <= 0:
        raise ConfigError("SCREEN_SWITCH_CONNECT_TIMEOUT must be > 0")

    poll_timeout_ms = _parse_int(
        "SCREEN_SWITCH_POLL_TIMEOUT_MS",
        os.getenv("SCREEN_SWITCH_POLL_TIMEOUT_MS", str(DEFAULT_POLL_TIMEOUT_MS)),
    )
    if poll_timeout_ms < 10:
        raise ConfigError("SCREEN_SWITCH_POLL_TIMEOUT_MS must be >= 10")

    payload_mode = _parse_enum(
        "SCREEN_SWITCH_PAYLOAD_MODE",
        os.getenv("SCREEN_SWITCH_PAYLOAD_MODE", PayloadMode.AUTO.value),
        PayloadMode,
    )

    return AgentSettings(
        topics=topics,
        client_id=client_id,
        keepalive_s=keepalive_s,
        connect_timeout_s=connect_timeout_s,
        poll_timeout_s=poll_timeout_ms / 1000.0,
        payload_mode=payload_mode,
        backoff=_load_backoff_settings(),
    )
