"""Configuration schema for the waste reminder.

The dataclasses below describe everything the reminder needs at startup: where
state comes from (an MQTT topic, calendar events or both), how calendar titles
map onto waste types, what each waste type looks like on screen and when an
active reminder is cleared again.  Defaults mirror a typical German household
setup so a minimal YAML file only has to name the broker.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Mapping, Optional

DATA_SOURCES = ("mqtt", "calendar", "both")

OFF = "off"

DEFAULT_KEYWORDS: Mapping[str, str] = {
    "gelbe tonne": "wasteYellow",
    "gelbe": "wasteYellow",
    "yellow": "wasteYellow",
    "papier": "wasteBlue",
    "blaue tonne": "wasteBlue",
    "blue": "wasteBlue",
    "restmüll": "wasteBlack",
    "schwarze tonne": "wasteBlack",
    "black": "wasteBlack",
    "bio": "wasteBio",
    "biotonne": "wasteBio",
    "grüne tonne": "wasteBio",
}


@dataclass(slots=True, frozen=True)
class WasteTypeConfig:
    """Icon and label shown for a single bin category."""

    icon: str
    label: str = ""


def _default_waste_types() -> Mapping[str, WasteTypeConfig]:
    return {
        "wasteYellow": WasteTypeConfig(icon="images/yellow.png", label="Gelbe Tonne"),
        "wasteBlue": WasteTypeConfig(icon="images/blue.png", label="Papier"),
        "wasteBlack": WasteTypeConfig(icon="images/black.png", label="Restmüll"),
        "wasteBio": WasteTypeConfig(icon="images/bio.png", label="Biotonne"),
    }


@dataclass(slots=True)
class MqttConfig:
    """Broker connection parameters for the state topic."""

    broker: str = "mqtt://localhost:1883"
    username: str = ""
    password: str = ""
    client_id: str = "MMM-WasteReminder"
    topic: str = "mqtt/0/waste/state"
    keepalive: int = 60


@dataclass(slots=True)
class CalendarConfig:
    """Keyword matching and polling knobs for calendar driven reminders."""

    enabled: bool = True
    keywords: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_KEYWORDS))
    trigger_before_hours: float = 18.0
    poll_interval: timedelta = timedelta(minutes=30)
    feed_url: Optional[str] = None
    request_timeout: float = 5.0


@dataclass(slots=True)
class DisplayConfig:
    """Options forwarded to the render host."""

    show_text: bool = False
    icon_size: str = "100px"
    animation_speed: timedelta = timedelta(seconds=1)


@dataclass(slots=True)
class WasteReminderConfig:
    """Top-level configuration bundle."""

    data_source: str = "mqtt"
    mqtt: MqttConfig = field(default_factory=MqttConfig)
    calendar: CalendarConfig = field(default_factory=CalendarConfig)
    waste_types: Mapping[str, WasteTypeConfig] = field(default_factory=_default_waste_types)
    display: DisplayConfig = field(default_factory=DisplayConfig)
    auto_hide_next_day_at: Optional[str] = "10:00"
    debug: bool = False

    @property
    def uses_mqtt(self) -> bool:
        return self.data_source in ("mqtt", "both")

    @property
    def uses_calendar(self) -> bool:
        return self.data_source in ("calendar", "both")
