"""
Host controller: owns the supervisor thread and both channels.

The CLI (service mode or interactive console) drives the agent only through
start()/stop() and reads back status events; it never touches supervisor
state directly.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from screen_switch_agent.actuator import DisplayActuator
from screen_switch_agent.config import AgentSettings, BrokerConfig, load_broker_config
from screen_switch_agent.core.channels import (
    Channel,
    HostCommand,
    StatusEvent,
    StatusKind,
    command_channel,
    status_channel,
)
from screen_switch_agent.core.decoder import PayloadDecoder
from screen_switch_agent.core.gate import ActuationGate
from screen_switch_agent.core.supervisor import ConnectionState, SessionOpener, Supervisor
from screen_switch_agent.mqtt_session import ConnectionSession

logger = logging.getLogger(__name__)


class HostController:
    def __init__(
        self,
        settings: AgentSettings,
        actuator: DisplayActuator,
        *,
        config_loader: Callable[[], BrokerConfig] = load_broker_config,
        session_opener: SessionOpener = ConnectionSession.open,
    ) -> None:
        self.commands: Channel[HostCommand] = command_channel()
        self.status: Channel[StatusEvent] = status_channel()
        self.supervisor = Supervisor(
            self.commands,
            self.status,
            ActuationGate(actuator),
            settings.backoff.build(),
            topics=settings.topics,
            config_loader=config_loader,
            decoder=PayloadDecoder(settings.payload_mode),
            session_opener=session_opener,
            client_id=settings.client_id,
            keepalive_s=settings.keepalive_s,
            connect_timeout_s=settings.connect_timeout_s,
            poll_timeout_s=settings.poll_timeout_s,
        )
        self._thread: Optional[threading.Thread] = None
        self.running = False  # last reported by status events

    def launch(self) -> None:
        """Start the supervisor thread (idle until start())."""
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self.supervisor.run,
            name="screen-switch-supervisor",
            daemon=True,
        )
        self._thread.start()

    def start(self) -> bool:
        return self._send(HostCommand.START)

    def stop(self) -> bool:
        return self._send(HostCommand.STOP)

    def _send(self, command: HostCommand) -> bool:
        if not self.commands.send(command):
            logger.warning("Command %s not delivered (channel full or closed)", command.value)
            return False
        return True

    @property
    def state(self) -> ConnectionState:
        return self.supervisor.state

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def drain_status(self, timeout: Optional[float] = 0) -> list[StatusEvent]:
        """
        Collect status events, waiting up to `timeout` for the first one.

        Also tracks whether the agent is running (Started/Stopped).
        """
        events: list[StatusEvent] = []
        event = self.status.receive(timeout=timeout)
        while event is not None:
            events.append(event)
            self._note(event)
            event = self.status.receive(timeout=0)
        return events

    def _note(self, event: StatusEvent) -> None:
        if event.kind is StatusKind.STARTED:
            self.running = True
            logger.info("Agent started")
        elif event.kind is StatusKind.STOPPED:
            self.running = False
            logger.info("Agent stopped")
        else:
            logger.error("Agent error: %s", event.message)

    def shutdown(self, timeout: float = 5.0) -> None:
        """Close the command channel and wait for the supervisor to exit."""
        self.commands.close()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Supervisor did not stop within %.1fs", timeout)
            self._thread = None
