"""Utilities to load :mod:`wastereminder.config` structures from YAML files."""
from __future__ import annotations

import datetime as _dt
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .config import (
    DATA_SOURCES,
    CalendarConfig,
    DisplayConfig,
    MqttConfig,
    WasteReminderConfig,
    WasteTypeConfig,
)
from .rules.keywords import normalise_keywords
from .services.scheduler import InvalidHideTimeError, parse_hide_time

_DURATION_UNITS = {
    "s": _dt.timedelta(seconds=1),
    "m": _dt.timedelta(minutes=1),
    "h": _dt.timedelta(hours=1),
    "d": _dt.timedelta(days=1),
}


class ConfigError(ValueError):
    """Raised when a configuration file cannot be turned into a config bundle."""


def load_config(path: Path) -> WasteReminderConfig:
    """Load a configuration file into :class:`WasteReminderConfig`.

    Durations accept human friendly values such as ``"30m"`` or ``"1s"``.
    Fields omitted in the YAML file fall back to the defaults declared in
    :mod:`wastereminder.config`.
    """

    return parse_config(_load_yaml(path))


def parse_config(raw: Mapping[str, Any]) -> WasteReminderConfig:
    """Build a :class:`WasteReminderConfig` from an already parsed mapping."""

    defaults = WasteReminderConfig()

    data_source = str(raw.get("data_source", defaults.data_source)).lower()
    if data_source not in DATA_SOURCES:
        raise ConfigError(
            f"data_source must be one of {', '.join(DATA_SOURCES)}, got {data_source!r}"
        )

    mqtt_section = _section(raw, "mqtt")
    mqtt_defaults = MqttConfig()
    mqtt = MqttConfig(
        broker=str(mqtt_section.get("broker", mqtt_defaults.broker)),
        username=str(mqtt_section.get("username") or ""),
        password=str(mqtt_section.get("password") or ""),
        client_id=str(mqtt_section.get("client_id") or mqtt_defaults.client_id),
        topic=str(mqtt_section.get("topic", mqtt_defaults.topic)),
        keepalive=int(mqtt_section.get("keepalive", mqtt_defaults.keepalive)),
    )

    calendar_section = _section(raw, "calendar")
    calendar_defaults = CalendarConfig()
    keywords = calendar_section.get("keywords")
    if keywords is not None and not isinstance(keywords, Mapping):
        raise ConfigError("calendar.keywords must be a mapping of keyword to waste type")
    calendar = CalendarConfig(
        enabled=bool(calendar_section.get("enabled", calendar_defaults.enabled)),
        keywords=normalise_keywords(keywords) if keywords is not None else calendar_defaults.keywords,
        trigger_before_hours=float(
            calendar_section.get("trigger_before_hours", calendar_defaults.trigger_before_hours)
        ),
        poll_interval=_parse_duration(calendar_section.get("poll_interval", "30m")),
        feed_url=calendar_section.get("feed_url") or None,
        request_timeout=float(
            calendar_section.get("request_timeout", calendar_defaults.request_timeout)
        ),
    )
    if calendar.trigger_before_hours < 0:
        raise ConfigError("calendar.trigger_before_hours must not be negative")
    if calendar.poll_interval.total_seconds() <= 0:
        raise ConfigError("calendar.poll_interval must be positive")

    waste_types_section = raw.get("waste_types")
    waste_types = defaults.waste_types
    if waste_types_section is not None:
        waste_types = _parse_waste_types(waste_types_section)

    display_section = _section(raw, "display")
    display_defaults = DisplayConfig()
    display = DisplayConfig(
        show_text=bool(display_section.get("show_text", display_defaults.show_text)),
        icon_size=str(display_section.get("icon_size", display_defaults.icon_size)),
        animation_speed=_parse_duration(display_section.get("animation_speed", "1s")),
    )

    auto_hide = _parse_auto_hide(raw.get("auto_hide_next_day_at", defaults.auto_hide_next_day_at))

    return WasteReminderConfig(
        data_source=data_source,
        mqtt=mqtt,
        calendar=calendar,
        waste_types=waste_types,
        display=display,
        auto_hide_next_day_at=auto_hide,
        debug=bool(raw.get("debug", False)),
    )


def _load_yaml(path: Path) -> Mapping[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ConfigError(f"cannot parse {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigError("configuration root must be a mapping")
    return data


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = raw.get(name) or {}
    if not isinstance(section, Mapping):
        raise ConfigError(f"{name} section must be a mapping")
    return section


def _parse_waste_types(section: Any) -> Dict[str, WasteTypeConfig]:
    if not isinstance(section, Mapping):
        raise ConfigError("waste_types must be a mapping of id to icon/label")
    waste_types: Dict[str, WasteTypeConfig] = {}
    for waste_id, entry in section.items():
        if not isinstance(entry, Mapping) or not entry.get("icon"):
            raise ConfigError(f"waste type {waste_id!r} needs an icon")
        waste_types[str(waste_id)] = WasteTypeConfig(
            icon=str(entry["icon"]),
            label=str(entry.get("label") or ""),
        )
    return waste_types


def _parse_auto_hide(value: Any) -> Optional[str]:
    if value is None or value is False or value == "":
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        # YAML 1.1 reads an unquoted 10:00 as the sexagesimal integer 600
        hours, minutes = divmod(value, 60)
        value = f"{hours:02d}:{minutes:02d}"
    value = str(value).strip()
    try:
        parse_hide_time(value)
    except InvalidHideTimeError as exc:
        raise ConfigError(str(exc)) from exc
    return value


def _parse_duration(value: Any) -> _dt.timedelta:
    if isinstance(value, _dt.timedelta):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return _dt.timedelta(seconds=float(value))
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"unsupported duration value: {value!r}")
    value = value.strip()
    if value.isdigit():
        return _dt.timedelta(seconds=int(value))
    unit = value[-1].lower()
    if unit not in _DURATION_UNITS:
        raise ConfigError(f"unknown duration unit: {value}")
    try:
        amount = float(value[:-1])
    except ValueError as exc:
        raise ConfigError(f"invalid duration: {value}") from exc
    base = _DURATION_UNITS[unit]
    return _dt.timedelta(seconds=base.total_seconds() * amount)
