"""
Lifecycle supervisor: owns the bus connection and the agent state machine.

    DISCONNECTED --Start--> CONNECTING --open ok--> CONNECTED
         ^                      |  ^                    |
         |                 open fails               lost/error
         |                      v  |                    v
         +---retries exhausted-- RECONNECTING <---------+

Stop from any active state closes the session and returns to DISCONNECTED.
The supervisor runs on a single thread and multiplexes the host command
channel with the session poll; nothing else mutates its state.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol

from screen_switch_agent.config import (
    DEFAULT_CLIENT_ID,
    DEFAULT_CONNECT_TIMEOUT_S,
    DEFAULT_KEEPALIVE_S,
    DEFAULT_POLL_TIMEOUT_MS,
    BrokerConfig,
    ConfigError,
)
from screen_switch_agent.core.backoff import BackoffPolicy
from screen_switch_agent.core.channels import Channel, ChannelClosed, HostCommand, StatusEvent
from screen_switch_agent.core.decoder import PayloadDecoder, SetPower
from screen_switch_agent.core.gate import ActuationGate
from screen_switch_agent.mqtt_session import (
    ConnectError,
    ConnectionSession,
    Disconnected,
    Idle,
    Message,
    PollResult,
    SessionAborted,
)
from screen_switch_agent.mqtt_topics import TopicSchema


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


@dataclass(slots=True)
class ConnectionStats:
    attempts: int = 0
    successes: int = 0
    failures: int = 0
    total_uptime_s: float = 0.0
    connected_since: Optional[float] = None  # monotonic

    def uptime_s(self, now: float) -> float:
        """Total uptime including the current connection, if any."""
        if self.connected_since is None:
            return self.total_uptime_s
        return self.total_uptime_s + max(0.0, now - self.connected_since)


class Session(Protocol):
    def poll_next(self, timeout: float) -> PollResult:
        ...

    def close(self) -> None:
        ...


SessionOpener = Callable[..., Session]


class _Stop(Exception):
    """Internal: a Stop command (or closed channel) ended the current run."""


class Supervisor:
    def __init__(
        self,
        commands: Channel[HostCommand],
        status: Channel[StatusEvent],
        gate: ActuationGate,
        backoff: BackoffPolicy,
        *,
        topics: TopicSchema,
        config_loader: Callable[[], BrokerConfig],
        decoder: Optional[PayloadDecoder] = None,
        session_opener: SessionOpener = ConnectionSession.open,
        client_id: str = DEFAULT_CLIENT_ID,
        keepalive_s: int = DEFAULT_KEEPALIVE_S,
        connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S,
        poll_timeout_s: float = DEFAULT_POLL_TIMEOUT_MS / 1000.0,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._commands = commands
        self._status = status
        self._gate = gate
        self._backoff = backoff
        self._topics = topics
        self._config_loader = config_loader
        self._decoder = decoder if decoder is not None else PayloadDecoder()
        self._session_opener = session_opener
        self._client_id = client_id
        self._keepalive_s = keepalive_s
        self._connect_timeout_s = connect_timeout_s
        self._poll_timeout_s = poll_timeout_s
        self._clock = clock
        self._log = logger if logger is not None else logging.getLogger(__name__)

        self._state = ConnectionState.DISCONNECTED
        self._stats = ConnectionStats()
        self._retries = 0
        self._session: Optional[Session] = None
        self._stop_pending = False
        self._channel_closed = False

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def stats(self) -> ConnectionStats:
        return self._stats

    # -------------------------
    # main loop
    # -------------------------
    def run(self) -> None:
        """Serve host commands until the command channel is closed."""
        self._log.info("Supervisor ready; waiting for Start")
        try:
            while True:
                command = self._commands.receive()
                if command is HostCommand.START:
                    self._run_agent()
                elif command is HostCommand.STOP:
                    self._log.info("Stop received while idle; nothing to do")
        except ChannelClosed:
            self._log.info("Host command channel closed; supervisor exiting")
        finally:
            self._close_session()
            self._set_state(ConnectionState.DISCONNECTED)

    def _run_agent(self) -> None:
        """One Start: connect, serve, reconnect, until Stop, retry exhaustion or config error."""
        self._retries = 0
        self._stop_pending = False
        try:
            while True:
                self._set_state(ConnectionState.CONNECTING)
                try:
                    config = self._config_loader()
                except (ConfigError, OSError) as exc:
                    self._log.error("Configuration error: %s", exc)
                    self._set_state(ConnectionState.DISCONNECTED)
                    self._emit(StatusEvent.error(f"Configuration error: {exc}"))
                    self._emit(StatusEvent.stopped())
                    return

                session = self._connect(config)
                if session is not None:
                    self._serve(session)

                self._set_state(ConnectionState.RECONNECTING)
                self._retries += 1
                if self._backoff.should_stop(self._retries):
                    message = f"Giving up after {self._retries} failed connection attempts"
                    self._log.error(message)
                    self._set_state(ConnectionState.DISCONNECTED)
                    self._emit(StatusEvent.error(message))
                    self._emit(StatusEvent.stopped())
                    return

                delay = self._backoff.next_delay(self._retries - 1)
                self._log.info(
                    "Retrying in %.1fs (%d/%d)", delay, self._retries, self._backoff.max_retries
                )
                self._wait(delay)
        except _Stop:
            self._close_session()
            self._set_state(ConnectionState.DISCONNECTED)
            if self._channel_closed:
                raise ChannelClosed()
            self._log.info("Agent stopped by host")
            self._emit(StatusEvent.stopped())

    def _connect(self, config: BrokerConfig) -> Optional[Session]:
        self._stats.attempts += 1
        try:
            session = self._session_opener(
                config,
                topics=self._topics,
                client_id=self._client_id,
                keepalive_s=self._keepalive_s,
                connect_timeout_s=self._connect_timeout_s,
                abort=self._stop_requested,
                logger=self._log,
            )
        except SessionAborted:
            raise _Stop()
        except ConnectError as exc:
            self._stats.failures += 1
            self._log.error("Connection attempt %d failed: %s", self._stats.attempts, exc)
            if self._stop_requested():
                raise _Stop()
            return None

        self._session = session
        self._retries = 0
        self._stats.successes += 1
        self._stats.connected_since = self._clock()
        self._set_state(ConnectionState.CONNECTED)
        self._log.info(
            "Ready for commands on %s (attempts=%d successes=%d failures=%d)",
            self._topics.control,
            self._stats.attempts,
            self._stats.successes,
            self._stats.failures,
        )
        self._emit(StatusEvent.started())
        return session

    def _serve(self, session: Session) -> None:
        """Poll the open session until it is lost. Raises _Stop on Stop."""
        while True:
            if self._stop_requested():
                raise _Stop()

            result = session.poll_next(self._poll_timeout_s)
            if isinstance(result, Idle):
                continue
            if isinstance(result, Message):
                self._dispatch(result.payload)
                continue

            if isinstance(result, Disconnected):
                self._log.warning("Broker closed the connection: %s", result.reason)
            else:
                self._log.error("MQTT connection error: %s", result.error)
            self._stats.failures += 1
            self._close_session()
            return

    def _dispatch(self, payload: bytes) -> None:
        command = self._decoder.decode(payload)
        if not isinstance(command, SetPower):
            label = command.action if command.action is not None else payload[:64]
            self._log.warning("Unknown command %r; supported: 'on', 'off'", label)
            return

        self._log.info(
            "Received display %s%s",
            "on" if command.on else "off",
            f" from {command.source}" if command.source else "",
        )
        try:
            self._gate.apply(command.on)
        except Exception:
            self._log.exception("Display actuation failed")

    # -------------------------
    # host command handling
    # -------------------------
    def _handle_command(self, command: Optional[HostCommand]) -> None:
        if command is HostCommand.STOP:
            self._stop_pending = True
        elif command is HostCommand.START:
            self._log.info("Start ignored; agent already %s", self._state.value)

    def _stop_requested(self) -> bool:
        """Drain pending host commands without blocking; True once Stop (or close) was seen."""
        while not self._stop_pending:
            try:
                command = self._commands.receive(timeout=0)
            except ChannelClosed:
                self._channel_closed = True
                self._stop_pending = True
                break
            if command is None:
                break
            self._handle_command(command)
        return self._stop_pending

    def _wait(self, delay_s: float) -> None:
        """Backoff sleep that wakes early on Stop. Raises _Stop."""
        deadline = self._clock() + delay_s
        remaining = delay_s
        while True:
            try:
                command = self._commands.receive(timeout=max(0.0, remaining))
            except ChannelClosed:
                self._channel_closed = True
                raise _Stop()
            if command is None:
                return
            self._handle_command(command)
            if self._stop_pending:
                raise _Stop()
            remaining = deadline - self._clock()
            if remaining <= 0:
                return

    # -------------------------
    # helpers
    # -------------------------
    def _close_session(self) -> None:
        if self._session is None:
            return
        session, self._session = self._session, None
        if self._stats.connected_since is not None:
            now = self._clock()
            session_s = max(0.0, now - self._stats.connected_since)
            total_s = self._stats.uptime_s(now)
            self._stats.total_uptime_s = total_s
            self._stats.connected_since = None
            self._log.info("Session lasted %.1fs (total uptime %.1fs)", session_s, total_s)
        session.close()

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        self._log.info("Connection state: %s -> %s", self._state.value, state.value)
        self._state = state

    def _emit(self, event: StatusEvent) -> None:
        if not self._status.send(event):
            self._log.warning("Status channel closed; dropped %s", event.kind.value)
