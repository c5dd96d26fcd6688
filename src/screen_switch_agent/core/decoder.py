"""
Inbound payload decoding.

Two wire shapes are accepted on the control topic:

  structured: {"action": "on"|"off", "params": {"source": "...", ...}}
  legacy:     the raw bytes b"on" / b"off"

Decoding never raises. Anything that is not a recognised command comes
back as Unknown so the session keeps polling.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

_LEGACY_TOKENS = {b"on": True, b"off": False}
_ACTIONS = {"on": True, "off": False}


class PayloadMode(str, Enum):
    AUTO = "auto"  # structured first, legacy fallback
    LEGACY = "legacy"
    STRUCTURED = "structured"


@dataclass(frozen=True, slots=True)
class SetPower:
    on: bool
    source: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Unknown:
    raw: bytes
    action: Optional[str] = None
    source: Optional[str] = None


InboundCommand = Union[SetPower, Unknown]


class DecodeError(ValueError):
    """Payload is not a structured command document."""


def _parse_structured(payload: bytes) -> tuple[str, Optional[str]]:
    try:
        doc: Any = json.loads(payload)
    except (UnicodeDecodeError, ValueError, RecursionError) as exc:
        raise DecodeError(f"not JSON: {exc}") from exc

    if not isinstance(doc, dict):
        raise DecodeError(f"expected a JSON object, got {type(doc).__name__}")
    action = doc.get("action")
    if not isinstance(action, str):
        raise DecodeError("missing string field 'action'")

    source = None
    params = doc.get("params")
    if isinstance(params, dict) and isinstance(params.get("source"), str):
        source = params["source"]
    return action, source


def _decode_legacy(payload: bytes) -> InboundCommand:
    token = payload.strip()
    if token in _LEGACY_TOKENS:
        return SetPower(on=_LEGACY_TOKENS[token])
    return Unknown(raw=payload)


class PayloadDecoder:
    """Decoder bound to one payload mode."""

    def __init__(self, mode: PayloadMode = PayloadMode.AUTO, *, logger: logging.Logger | None = None) -> None:
        self.mode = mode
        self._log = logger if logger is not None else logging.getLogger(__name__)

    def decode(self, payload: bytes) -> InboundCommand:
        if self.mode is PayloadMode.LEGACY:
            return _decode_legacy(payload)

        try:
            action, source = _parse_structured(payload)
        except DecodeError as exc:
            if self.mode is PayloadMode.STRUCTURED:
                self._log.warning("Dropping malformed payload (%s): %r", exc, payload[:64])
                return Unknown(raw=payload)
            self._log.debug("Structured parse failed (%s); trying legacy token", exc)
            return _decode_legacy(payload)

        if action in _ACTIONS:
            return SetPower(on=_ACTIONS[action], source=source)
        return Unknown(raw=payload, action=action, source=source)


def decode(payload: bytes, mode: PayloadMode = PayloadMode.AUTO) -> InboundCommand:
    """Decode one payload with a throwaway decoder."""
    return PayloadDecoder(mode).decode(payload)
