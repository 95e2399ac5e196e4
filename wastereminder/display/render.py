"""Project reminder state onto what the display should show."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping, Optional

from wastereminder.config import OFF, WasteTypeConfig


@dataclass(slots=True, frozen=True)
class DisplayPayload:
    """Icon (and optionally a label) for the active waste type."""

    waste_type: str
    icon: str
    label: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = {"icon": self.icon}
        if self.label is not None:
            data["label"] = self.label
        return data


def render(
    current: Optional[str],
    waste_types: Mapping[str, WasteTypeConfig],
    show_text: bool = False,
) -> Optional[DisplayPayload]:
    """Return the payload for ``current`` or ``None`` when nothing is shown.

    Unknown waste types render nothing, exactly like ``"off"``.
    """

    if current is None or current == OFF:
        return None
    waste_config = waste_types.get(current)
    if waste_config is None:
        return None
    return DisplayPayload(
        waste_type=current,
        icon=waste_config.icon,
        label=waste_config.label if show_text else None,
    )
