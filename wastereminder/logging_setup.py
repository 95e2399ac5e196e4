"""Console logging for the waste reminder."""
from __future__ import annotations

import logging
import os
import sys

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

_NOISY_LOGGERS = ("httpx", "httpcore")


def configure_logging(debug: bool = False) -> None:
    """Install a stderr handler and pick the package log level.

    ``WASTEREMINDER_DEBUG`` set to ``1``, ``true`` or ``yes`` forces debug
    output regardless of the configuration file.
    """

    if os.environ.get("WASTEREMINDER_DEBUG", "").strip().lower() in ("1", "true", "yes"):
        debug = True

    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S"))
        root.addHandler(handler)
    root.setLevel(logging.INFO)

    logging.getLogger("wastereminder").setLevel(logging.DEBUG if debug else logging.INFO)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
