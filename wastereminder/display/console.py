"""Render host writing display payloads as JSON lines."""
from __future__ import annotations

import json
import logging
import sys
from datetime import timedelta
from typing import Optional, Protocol, TextIO

from wastereminder.config import DisplayConfig
from wastereminder.display.render import DisplayPayload

logger = logging.getLogger(__name__)


class DisplayHost(Protocol):
    """Surface that turns payloads into pixels."""

    def update(self, payload: Optional[DisplayPayload], animation_speed: timedelta) -> None:
        ...


class ConsoleDisplay:
    """Write every display update to ``stream`` as one JSON object per line.

    An empty object means nothing is displayed.  Icon sizing is a host concern,
    so the configured size travels with every non-empty payload.
    """

    def __init__(self, config: DisplayConfig, stream: Optional[TextIO] = None) -> None:
        self._config = config
        self._stream = stream if stream is not None else sys.stdout
        self.last_payload: Optional[DisplayPayload] = None

    def update(self, payload: Optional[DisplayPayload], animation_speed: timedelta) -> None:
        self.last_payload = payload
        document = {}
        if payload is not None:
            document = payload.to_dict()
            document["iconSize"] = self._config.icon_size
        logger.info(
            "Display update (fade %dms): %s",
            int(animation_speed.total_seconds() * 1000),
            payload.waste_type if payload else "nothing",
        )
        self._stream.write(json.dumps(document, ensure_ascii=False) + "\n")
        self._stream.flush()
