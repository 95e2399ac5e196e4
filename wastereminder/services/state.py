"""Mutable reminder state shared by the service and the auto-hide scheduler."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol

from wastereminder.config import OFF


class TimerHandle(Protocol):
    """Anything returned by ``loop.call_later`` that can be cancelled."""

    def cancel(self) -> None:
        ...


@dataclass(slots=True)
class SchedulerState:
    """Currently displayed waste type plus the single outstanding hide timer.

    ``current`` is ``None`` until the first update arrives, ``"off"`` once a
    reminder has been cleared, and any waste type id otherwise.
    """

    current: Optional[str] = None
    hide_timer: Optional[TimerHandle] = None
    hide_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.current is not None and self.current != OFF

    @property
    def has_hide_timer(self) -> bool:
        return self.hide_timer is not None
