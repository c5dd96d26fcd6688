"""
Pytest configuration and shared fixtures
"""
import os
import sys
from types import SimpleNamespace

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))


BROKER_ENV = ["MQTT_HOST", "MQTT_PORT", "MQTT_USERNAME", "MQTT_PASSWORD"]
SETTINGS_ENV = [
    "SCREEN_SWITCH_TOPIC",
    "SCREEN_SWITCH_AVAILABILITY_TOPIC",
    "SCREEN_SWITCH_CLIENT_ID",
    "SCREEN_SWITCH_KEEPALIVE",
    "SCREEN_SWITCH_CONNECT_TIMEOUT",
    "SCREEN_SWITCH_POLL_TIMEOUT_MS",
    "SCREEN_SWITCH_PAYLOAD_MODE",
    "SCREEN_SWITCH_BACKOFF",
    "SCREEN_SWITCH_MAX_RETRIES",
    "SCREEN_SWITCH_RETRY_DELAY",
    "SCREEN_SWITCH_BACKOFF_INITIAL",
    "SCREEN_SWITCH_BACKOFF_CEILING",
]


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every variable the agent reads."""
    for key in BROKER_ENV + SETTINGS_ENV:
        # setenv first so values written later by load_dotenv are undone too
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    return monkeypatch


@pytest.fixture
def broker_env(clean_env):
    """Minimal valid broker environment"""
    clean_env.setenv("MQTT_HOST", "localhost")
    clean_env.setenv("MQTT_PORT", "1883")
    return clean_env


class FakeReasonCode:
    """Stands in for paho.mqtt.reasoncodes.ReasonCode."""

    def __init__(self, value: int = 0, name: str = "Success"):
        self.value = value
        self.name = name

    @property
    def is_failure(self) -> bool:
        return self.value >= 0x80

    def __str__(self) -> str:
        return self.name


class FakePahoClient:
    """
    Controllable paho client. loop_start() delivers CONNACK and subscribe()
    delivers SUBACK synchronously, unless the test set them to None.
    """

    def __init__(self, *args, **kwargs):
        self.ctor_kwargs = kwargs
        self.connack = FakeReasonCode(0)
        self.suback = [FakeReasonCode(0, "Granted QoS 0")]
        self.connect_error = None
        self.subscribe_result = 0
        self.credentials = None
        self.will = None
        self.address = None
        self.subscriptions = []
        self.published = []
        self.connected = False
        self.loop_started = False
        self.loop_stopped = False
        self.disconnected = False
        self.on_connect = None
        self.on_subscribe = None
        self.on_message = None
        self.on_disconnect = None

    def username_pw_set(self, username, password=None):
        self.credentials = (username, password)

    def will_set(self, topic, payload=None, qos=0, retain=False):
        self.will = (topic, payload, qos, retain)

    def connect(self, host, port=1883, keepalive=60):
        if self.connect_error is not None:
            raise self.connect_error
        self.address = (host, port, keepalive)

    def loop_start(self):
        self.loop_started = True
        if self.connack is not None:
            self.connected = not self.connack.is_failure
            self.on_connect(self, None, {}, self.connack, None)

    def subscribe(self, topic, qos=0):
        self.subscriptions.append((topic, qos))
        if self.subscribe_result == 0 and self.suback is not None:
            self.on_subscribe(self, None, 1, self.suback, None)
        return (self.subscribe_result, 1)

    def publish(self, topic, payload=None, qos=0, retain=False):
        self.published.append((topic, payload, qos, retain))

    def is_connected(self):
        return self.connected

    def disconnect(self):
        self.disconnected = True
        self.connected = False

    def loop_stop(self):
        self.loop_stopped = True

    # test helpers
    def deliver(self, payload: bytes, topic: str = "pi5/display"):
        self.on_message(self, None, SimpleNamespace(topic=topic, payload=payload))

    def drop(self, reason_code):
        self.connected = False
        self.on_disconnect(self, None, {}, reason_code, None)


@pytest.fixture
def fake_paho(monkeypatch):
    """
    Patch paho.mqtt.client.Client to return controllable fakes.
    Attributes in `options` are applied to every client created.
    """
    created = []
    options = {}

    def _ctor(*args, **kwargs):
        client = FakePahoClient(*args, **kwargs)
        client.__dict__.update(options)
        created.append(client)
        return client

    monkeypatch.setattr("paho.mqtt.client.Client", _ctor)
    return SimpleNamespace(created=created, options=options, reason=FakeReasonCode)
