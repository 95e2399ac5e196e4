"""Waste bin reminder driven by MQTT state and calendar events."""

from .cli import main as cli_main
from .config_loader import load_config
from .logging_setup import configure_logging

__version__ = "0.1.0"

__all__ = [
    "cli_main",
    "configure_logging",
    "load_config",
    "config",
    "collectors",
    "display",
    "rules",
    "services",
]
