"""Display projection and render hosts."""

from .console import ConsoleDisplay, DisplayHost
from .render import DisplayPayload, render

__all__ = ["ConsoleDisplay", "DisplayHost", "DisplayPayload", "render"]
