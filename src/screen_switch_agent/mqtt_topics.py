"""
MQTT topic schema for Screen Switch Agent.

One control topic (subscribed, QoS 0) carries on/off commands.
An optional availability topic (retained, QoS 1) carries online/offline
status and is also used as the Last Will.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

DEFAULT_CONTROL_TOPIC = "pi5/display"

_WILDCARDS = ("+", "#")


class TopicSchemaError(ValueError):
    """Raised when a topic cannot be used for subscribe/publish."""


def _validate_topic(name: str, topic: str) -> str:
    if not isinstance(topic, str) or not topic:
        raise TopicSchemaError(f"{name} must be a non-empty string")
    if "\x00" in topic:
        raise TopicSchemaError(f"{name} '{topic}' contains a NUL character")
    return topic


def _validate_filter(name: str, topic: str) -> str:
    _validate_topic(name, topic)
    levels = topic.split("/")
    for i, level in enumerate(levels):
        if "#" in level and (level != "#" or i != len(levels) - 1):
            raise TopicSchemaError(f"{name} '{topic}': '#' must be the last level on its own")
        if "+" in level and level != "+":
            raise TopicSchemaError(f"{name} '{topic}': '+' must occupy a whole level")
    return topic


def _validate_publish_topic(name: str, topic: str) -> str:
    _validate_topic(name, topic)
    if any(w in topic for w in _WILDCARDS):
        raise TopicSchemaError(f"{name} '{topic}' must not contain wildcards")
    return topic


@dataclass(frozen=True, slots=True)
class TopicSchema:
    """
    Topics used by one agent instance.

    control: subscription filter for display commands
    availability: retained status topic, or None to disable status/LWT
    """

    control: str = DEFAULT_CONTROL_TOPIC
    availability: Optional[str] = None

    def __post_init__(self) -> None:
        _validate_filter("control topic", self.control)
        if self.availability is not None:
            _validate_publish_topic("availability topic", self.availability)

    @property
    def has_availability(self) -> bool:
        return self.availability is not None
