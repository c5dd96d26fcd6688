from __future__ import annotations

import pytest

from screen_switch_agent.config import (
    BackoffSettings,
    BrokerConfig,
    ConfigError,
    load_broker_config,
    load_settings,
)
from screen_switch_agent.core.backoff import BackoffMode, ExponentialBackoff, FixedBackoff
from screen_switch_agent.core.decoder import PayloadMode


# -------------------------
# broker config
# -------------------------
def test_missing_required_env_raises(clean_env):
    with pytest.raises(ConfigError) as exc:
        load_broker_config(dotenv_enabled=False)

    assert "Missing required environment variable: MQTT_HOST" in str(exc.value)


def test_valid_env_loads(broker_env):
    broker_env.setenv("MQTT_HOST", "10.0.0.1")

    cfg = load_broker_config(dotenv_enabled=False)

    assert cfg.broker_address == "10.0.0.1"
    assert cfg.broker_port == 1883
    assert cfg.credentials is None


def test_credentials_loaded_when_both_set(broker_env):
    broker_env.setenv("MQTT_USERNAME", "display")
    broker_env.setenv("MQTT_PASSWORD", "secret")

    cfg = load_broker_config(dotenv_enabled=False)

    assert cfg.credentials.username == "display"
    assert cfg.credentials.password == "secret"
    assert "secret" not in repr(cfg)


@pytest.mark.parametrize("key", ["MQTT_USERNAME", "MQTT_PASSWORD"])
def test_half_credentials_raise(broker_env, key):
    broker_env.setenv(key, "x")

    with pytest.raises(ConfigError) as exc:
        load_broker_config(dotenv_enabled=False)

    assert "must be set together" in str(exc.value)


def test_invalid_port_not_int_raises(broker_env):
    broker_env.setenv("MQTT_PORT", "not-a-number")

    with pytest.raises(ConfigError) as exc:
        load_broker_config(dotenv_enabled=False)

    assert "Invalid integer for MQTT_PORT" in str(exc.value)


@pytest.mark.parametrize("port", ["0", "65536", "-1"])
def test_port_out_of_range_raises(broker_env, port: str):
    broker_env.setenv("MQTT_PORT", port)

    with pytest.raises(ConfigError) as exc:
        load_broker_config(dotenv_enabled=False)

    assert "MQTT_PORT out of range" in str(exc.value)


def test_broker_config_rejects_empty_address():
    with pytest.raises(ConfigError):
        BrokerConfig(broker_address="", broker_port=1883)


def test_config_is_reread_on_every_call(broker_env):
    first = load_broker_config(dotenv_enabled=False)
    broker_env.setenv("MQTT_HOST", "broker.lan")
    second = load_broker_config(dotenv_enabled=False)

    assert first.broker_address == "localhost"
    assert second.broker_address == "broker.lan"


def test_env_file_fills_missing_values(clean_env, tmp_path):
    clean_env.chdir(tmp_path)
    clean_env.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    (tmp_path / ".env").write_text("MQTT_HOST=from-file\nMQTT_PORT=1884\n")
    clean_env.setenv("MQTT_PORT", "1885")  # process env wins

    cfg = load_broker_config()

    assert cfg.broker_address == "from-file"
    assert cfg.broker_port == 1885


# -------------------------
# agent settings
# -------------------------
def test_settings_defaults(clean_env):
    settings = load_settings(dotenv_enabled=False)

    assert settings.topics.control == "pi5/display"
    assert settings.topics.availability is None
    assert settings.client_id == "auto_screen_switch"
    assert settings.keepalive_s == 30
    assert settings.poll_timeout_s == pytest.approx(0.5)
    assert settings.payload_mode is PayloadMode.AUTO
    assert settings.backoff.mode is BackoffMode.FIXED
    assert settings.backoff.max_retries == 5
    assert isinstance(settings.backoff.build(), FixedBackoff)


def test_exponential_backoff_defaults_to_ten_retries(clean_env):
    clean_env.setenv("SCREEN_SWITCH_BACKOFF", "exponential")

    settings = load_settings(dotenv_enabled=False)
    policy = settings.backoff.build()

    assert isinstance(policy, ExponentialBackoff)
    assert policy.max_retries == 10
    assert policy.initial_s == 1.0
    assert policy.ceiling_s == 60.0


def test_settings_overrides(clean_env):
    clean_env.setenv("SCREEN_SWITCH_TOPIC", "office/screen")
    clean_env.setenv("SCREEN_SWITCH_AVAILABILITY_TOPIC", "office/screen/status")
    clean_env.setenv("SCREEN_SWITCH_PAYLOAD_MODE", "LEGACY")
    clean_env.setenv("SCREEN_SWITCH_POLL_TIMEOUT_MS", "250")
    clean_env.setenv("SCREEN_SWITCH_MAX_RETRIES", "3")

    settings = load_settings(dotenv_enabled=False)

    assert settings.topics.control == "office/screen"
    assert settings.topics.availability == "office/screen/status"
    assert settings.payload_mode is PayloadMode.LEGACY
    assert settings.poll_timeout_s == pytest.approx(0.25)
    assert settings.backoff.max_retries == 3


@pytest.mark.parametrize(
    "key,value,fragment",
    [
        ("SCREEN_SWITCH_BACKOFF", "linear", "Invalid value for SCREEN_SWITCH_BACKOFF"),
        ("SCREEN_SWITCH_PAYLOAD_MODE", "xml", "Invalid value for SCREEN_SWITCH_PAYLOAD_MODE"),
        ("SCREEN_SWITCH_MAX_RETRIES", "0", "Invalid backoff settings"),
        ("SCREEN_SWITCH_RETRY_DELAY", "soon", "Invalid number for SCREEN_SWITCH_RETRY_DELAY"),
        ("SCREEN_SWITCH_TOPIC", "a/#/b", "control topic"),
        ("SCREEN_SWITCH_POLL_TIMEOUT_MS", "1", "SCREEN_SWITCH_POLL_TIMEOUT_MS"),
    ],
)
def test_invalid_settings_raise(clean_env, key, value, fragment):
    clean_env.setenv(key, value)

    with pytest.raises(ConfigError) as exc:
        load_settings(dotenv_enabled=False)

    assert fragment in str(exc.value)


def test_backoff_settings_build_wraps_errors():
    with pytest.raises(ConfigError):
        BackoffSettings(mode=BackoffMode.EXPONENTIAL, initial_s=10, ceiling_s=5).build()


def test_undecodable_env_file_raises_config_error(clean_env, tmp_path):
    clean_env.chdir(tmp_path)
    clean_env.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    (tmp_path / ".env").write_bytes(b"MQTT_HOST=\xff\xfe\n")

    with pytest.raises(ConfigError) as exc:
        load_broker_config()

    assert "Cannot read .env" in str(exc.value)
