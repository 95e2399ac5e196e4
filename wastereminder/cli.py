"""Command line entry point for the waste reminder."""
from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from datetime import datetime
from pathlib import Path
from typing import Sequence

from .collectors import CalendarFeedClient, parse_events
from .config import WasteReminderConfig
from .config_loader import ConfigError, load_config
from .display import ConsoleDisplay, render
from .logging_setup import configure_logging
from .rules import normalise_keywords, select_event
from .services import WasteReminderService
from .services.reminder_service import ServiceDependencies


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Waste bin reminder")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run the reminder until interrupted")
    run.add_argument(
        "--config",
        type=Path,
        required=True,
        help="Path to the YAML configuration file",
    )

    check = sub.add_parser("check-config", help="Validate a configuration file")
    check.add_argument(
        "--config",
        type=Path,
        required=True,
        help="Path to the YAML configuration file",
    )

    preview = sub.add_parser(
        "preview",
        help="Show what a list of calendar events would display",
    )
    preview.add_argument(
        "--config",
        type=Path,
        required=True,
        help="Path to the YAML configuration file",
    )
    preview.add_argument(
        "--events",
        type=Path,
        required=True,
        help="JSON file holding a list of {title, startDate} objects",
    )
    preview.add_argument(
        "--now",
        type=datetime.fromisoformat,
        default=None,
        help="Evaluate as if it were this local time (ISO-8601, default: now)",
    )

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except (ConfigError, OSError) as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 1

    if args.command == "run":
        configure_logging(config.debug)
        return asyncio.run(_run_service(config))
    if args.command == "check-config":
        return _command_check_config(config)
    if args.command == "preview":
        return _command_preview(config, args)

    parser.error("unknown command")
    return 1


async def _run_service(config: WasteReminderConfig) -> int:
    loop = asyncio.get_running_loop()
    calendar_feed = None
    if config.uses_calendar and config.calendar.feed_url:
        calendar_feed = CalendarFeedClient(config.calendar)

    service = WasteReminderService(
        config,
        ServiceDependencies(display=ConsoleDisplay(config.display), calendar_feed=calendar_feed),
        loop,
    )

    stop_event = asyncio.Event()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, stop_event.set)
        except NotImplementedError:  # pragma: no cover - platforms without signal support
            pass

    service.init()
    try:
        await stop_event.wait()
    finally:
        service.shutdown()
    return 0


def _command_check_config(config: WasteReminderConfig) -> int:
    summary = {
        "data_source": config.data_source,
        "mqtt": {"broker": config.mqtt.broker, "topic": config.mqtt.topic} if config.uses_mqtt else None,
        "calendar": {
            "enabled": config.calendar.enabled,
            "keywords": len(config.calendar.keywords),
            "trigger_before_hours": config.calendar.trigger_before_hours,
            "poll_interval_seconds": config.calendar.poll_interval.total_seconds(),
            "feed_url": config.calendar.feed_url,
        }
        if config.uses_calendar
        else None,
        "waste_types": sorted(config.waste_types),
        "auto_hide_next_day_at": config.auto_hide_next_day_at,
    }
    print(json.dumps(summary, indent=2, ensure_ascii=False))
    return 0


def _command_preview(config: WasteReminderConfig, args: argparse.Namespace) -> int:
    try:
        with args.events.open("r", encoding="utf-8") as handle:
            records = json.load(handle)
    except (OSError, ValueError) as exc:
        print(f"Cannot read events: {exc}", file=sys.stderr)
        return 1
    if isinstance(records, dict):
        records = records.get("events", [])
    if not isinstance(records, list):
        print("Events file must hold a list", file=sys.stderr)
        return 1

    now = args.now or datetime.now()
    if now.tzinfo is not None:
        now = now.astimezone().replace(tzinfo=None)
    selection = select_event(
        parse_events(records),
        now,
        config.calendar.trigger_before_hours,
        normalise_keywords(config.calendar.keywords),
    )
    payload = None
    if selection is not None:
        payload = render(selection[1], config.waste_types, config.display.show_text)
    print(json.dumps(payload.to_dict() if payload else {}, ensure_ascii=False))
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
