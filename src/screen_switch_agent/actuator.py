"""
Display power actuators.

The supervisor only ever talks to a DisplayActuator; the OS call lives here.
On Windows the monitor is switched by broadcasting WM_SYSCOMMAND /
SC_MONITORPOWER. Other platforms get a no-op actuator that only logs.
"""

from __future__ import annotations

import ctypes
import logging
import sys
from typing import Protocol

logger = logging.getLogger(__name__)

HWND_BROADCAST = 0xFFFF
WM_SYSCOMMAND = 0x0112
SC_MONITORPOWER = 0xF170

MONITOR_ON = -1
MONITOR_OFF = 2


class DisplayActuator(Protocol):
    def set_display_power(self, on: bool) -> None:
        """Fire-and-forget request to switch the display on or off."""
        ...


class Win32DisplayActuator:
    def __init__(self) -> None:
        if sys.platform != "win32":
            raise RuntimeError("Win32DisplayActuator requires Windows")
        self._send_message = ctypes.windll.user32.SendMessageW  # type: ignore[attr-defined]

    def set_display_power(self, on: bool) -> None:
        state = MONITOR_ON if on else MONITOR_OFF
        self._send_message(HWND_BROADCAST, WM_SYSCOMMAND, SC_MONITORPOWER, state)


class NoopDisplayActuator:
    def set_display_power(self, on: bool) -> None:
        logger.info("Display power %s requested (no actuator on %s)", "on" if on else "off", sys.platform)


def default_actuator() -> DisplayActuator:
    if sys.platform == "win32":
        return Win32DisplayActuator()
    return NoopDisplayActuator()
