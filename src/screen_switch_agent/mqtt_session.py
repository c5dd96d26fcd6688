"""
MQTT connection session for Screen Switch Agent.

A session is one physical broker connection: connect, wait for CONNACK,
subscribe to the control topic, wait for SUBACK, then hand inbound messages
to the caller through poll_next(). paho's network thread only enqueues
events; all decisions are taken by whoever polls. Sessions never retry.
"""

from __future__ import annotations

import json
import logging
import queue
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Union

import paho.mqtt.client as mqtt

from screen_switch_agent.config import DEFAULT_CLIENT_ID, DEFAULT_CONNECT_TIMEOUT_S, DEFAULT_KEEPALIVE_S, BrokerConfig
from screen_switch_agent.mqtt_topics import TopicSchema

# How often a blocked open() re-checks its abort predicate
ABORT_CHECK_S = 0.1

_CONNACK = "connack"
_SUBACK = "suback"
_MESSAGE = "message"
_DISCONNECT = "disconnect"


class ConnectError(Exception):
    """Connect or subscribe failed; this session is unusable."""


class SessionAborted(ConnectError):
    """open() was abandoned because the caller asked to stop."""


@dataclass(frozen=True, slots=True)
class Message:
    payload: bytes
    topic: str = ""


@dataclass(frozen=True, slots=True)
class Idle:
    pass


@dataclass(frozen=True, slots=True)
class Disconnected:
    reason: str


@dataclass(frozen=True, slots=True)
class TransportError:
    error: str


PollResult = Union[Message, Idle, Disconnected, TransportError]

IDLE = Idle()


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _is_failure(reason_code: Any) -> bool:
    if hasattr(reason_code, "is_failure"):
        return bool(reason_code.is_failure)
    return int(reason_code) != 0


class ConnectionSession:
    """
    Use ConnectionSession.open() to create one; it returns only once the
    subscription is acknowledged.
    """

    def __init__(
        self,
        client: mqtt.Client,
        topics: TopicSchema,
        client_id: str,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._client = client
        self._topics = topics
        self._client_id = client_id
        self._log = logger if logger is not None else logging.getLogger(__name__)

        self._events: "queue.Queue[tuple[str, Any]]" = queue.Queue()
        self._pending: deque[Message] = deque()
        self._finished: Optional[PollResult] = None
        self._closed = False

    @classmethod
    def open(
        cls,
        config: BrokerConfig,
        *,
        topics: TopicSchema,
        client_id: str = DEFAULT_CLIENT_ID,
        keepalive_s: int = DEFAULT_KEEPALIVE_S,
        connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S,
        abort: Optional[Callable[[], bool]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> "ConnectionSession":
        """
        Connect and subscribe as one step.

        Raises ConnectError (or SessionAborted) on failure; the underlying
        client is already torn down when the exception reaches the caller.
        """
        client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id,
            protocol=mqtt.MQTTv311,
        )
        session = cls(client, topics, client_id, logger=logger)
        log = session._log

        if config.credentials is not None:
            client.username_pw_set(config.credentials.username, config.credentials.password)
            log.info("Using credentials for MQTT user %s", config.credentials.username)
        else:
            log.info("Using anonymous MQTT connection")

        if topics.has_availability:
            # Broker publishes this on unexpected disconnect.
            client.will_set(
                topics.availability,
                payload=session._availability_payload("offline"),
                qos=1,
                retain=True,
            )

        client.on_connect = session._on_connect
        client.on_subscribe = session._on_subscribe
        client.on_message = session._on_message
        client.on_disconnect = session._on_disconnect

        log.info("Connecting to MQTT broker %s:%s", config.broker_address, config.broker_port)
        try:
            client.connect(config.broker_address, config.broker_port, keepalive=keepalive_s)
            client.loop_start()
            session._handshake(connect_timeout_s, abort)
        except ConnectError:
            session.close()
            raise
        except (OSError, ValueError) as exc:
            session.close()
            raise ConnectError(
                f"cannot connect to {config.broker_address}:{config.broker_port}: {exc}"
            ) from exc

        return session

    # -------------------------
    # paho callbacks (network thread)
    # -------------------------
    def _on_connect(self, client: mqtt.Client, userdata: Any, flags: Any, reason_code: Any, properties: Any) -> None:
        self._events.put((_CONNACK, reason_code))

    def _on_subscribe(self, client: mqtt.Client, userdata: Any, mid: int, reason_code_list: Any, properties: Any) -> None:
        self._events.put((_SUBACK, list(reason_code_list)))

    def _on_message(self, client: mqtt.Client, userdata: Any, msg: mqtt.MQTTMessage) -> None:
        self._events.put((_MESSAGE, Message(payload=bytes(msg.payload), topic=msg.topic)))

    def _on_disconnect(self, client: mqtt.Client, userdata: Any, flags: Any, reason_code: Any, properties: Any) -> None:
        self._events.put((_DISCONNECT, reason_code))

    # -------------------------
    # handshake
    # -------------------------
    def _await(self, kind: str, timeout_s: float, abort: Optional[Callable[[], bool]]) -> Any:
        deadline = time.monotonic() + timeout_s
        while True:
            if abort is not None and abort():
                raise SessionAborted("connection attempt aborted")
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ConnectError(f"timed out after {timeout_s:.1f}s waiting for {kind}")
            try:
                event, value = self._events.get(timeout=min(remaining, ABORT_CHECK_S))
            except queue.Empty:
                continue
            if event == kind:
                return value
            if event == _DISCONNECT:
                raise ConnectError(f"connection lost while waiting for {kind}: {value}")
            if event == _MESSAGE:
                self._pending.append(value)

    def _handshake(self, timeout_s: float, abort: Optional[Callable[[], bool]]) -> None:
        rc = self._await(_CONNACK, timeout_s, abort)
        if _is_failure(rc):
            raise ConnectError(f"broker refused connection: {rc}")
        self._log.info("Connected to MQTT broker as %s", self._client_id)

        topic = self._topics.control
        self._log.info("Subscribing to %s", topic)
        result, _mid = self._client.subscribe(topic, qos=0)
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise ConnectError(f"subscribe to {topic} failed: {mqtt.error_string(result)}")

        codes = self._await(_SUBACK, timeout_s, abort)
        rejected = [str(c) for c in codes if _is_failure(c)]
        if rejected:
            raise ConnectError(f"broker rejected subscription to {topic}: {', '.join(rejected)}")
        self._log.info("Subscribed: %s", topic)

        if self._topics.has_availability:
            self._publish_availability("online")

    # -------------------------
    # availability
    # -------------------------
    def _availability_payload(self, state: str) -> str:
        return json.dumps({"state": state, "client_id": self._client_id, "ts": _utc_iso()})

    def _publish_availability(self, state: str) -> None:
        self._client.publish(
            self._topics.availability,
            payload=self._availability_payload(state),
            qos=1,
            retain=True,
        )

    # -------------------------
    # public API
    # -------------------------
    def poll_next(self, timeout: float) -> PollResult:
        """
        Wait up to `timeout` seconds for the next bus event.

        Returns Idle on timeout. After Disconnected/TransportError the session
        is finished and keeps returning that result.
        """
        if self._finished is not None:
            return self._finished
        if self._pending:
            return self._pending.popleft()

        try:
            event, value = self._events.get(timeout=timeout)
        except queue.Empty:
            return IDLE

        if event == _MESSAGE:
            return value
        if event == _DISCONNECT:
            if _is_failure(value):
                self._finished = TransportError(str(value))
            else:
                self._finished = Disconnected(str(value))
            return self._finished
        # late CONNACK/SUBACK from paho's own reconnect attempts
        return IDLE

    def close(self) -> None:
        """Publish offline (if configured), disconnect and stop the network loop. Idempotent."""
        if self._closed:
            return
        self._closed = True
        try:
            if self._topics.has_availability and self._client.is_connected():
                self._publish_availability("offline")
            self._client.disconnect()
            self._client.loop_stop()
        except Exception:
            self._log.exception("Error closing MQTT session")
        self._log.info("MQTT session closed")
