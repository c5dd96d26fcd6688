"""
Actuation gate: suppresses redundant display power calls.

The display cannot be queried cheaply, so the gate remembers the last state
it successfully requested and only forwards changes to the actuator.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from screen_switch_agent.actuator import DisplayActuator


class ActuatorState(str, Enum):
    ON = "on"
    OFF = "off"

    @classmethod
    def from_bool(cls, on: bool) -> "ActuatorState":
        return cls.ON if on else cls.OFF


class ActuationGate:
    def __init__(
        self,
        actuator: DisplayActuator,
        *,
        initial: ActuatorState = ActuatorState.ON,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._actuator = actuator
        self._state = initial
        self._log = logger if logger is not None else logging.getLogger(__name__)

    @property
    def state(self) -> ActuatorState:
        return self._state

    def apply(self, target: bool) -> bool:
        """
        Drive the display to `target` unless it is already there.

        Returns True if the actuator was called. The tracked state only changes
        after the actuator returns; an actuator exception propagates and leaves
        the state untouched.
        """
        desired = ActuatorState.from_bool(target)
        if desired is self._state:
            self._log.info("Display already %s; skipping actuation", desired.value)
            return False

        self._actuator.set_display_power(target)
        self._state = desired
        self._log.info("Display switched %s", desired.value)
        return True
