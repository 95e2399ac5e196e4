"""Map calendar event titles onto waste types."""
from __future__ import annotations

from typing import Dict, Mapping, Optional

KeywordTable = Mapping[str, str]


def normalise_keywords(keywords: Mapping[str, str]) -> Dict[str, str]:
    """Return ``keywords`` with lower-cased keys, keeping insertion order.

    When two keys collapse onto the same lower-cased text the first one wins.
    """

    table: Dict[str, str] = {}
    for keyword, waste_type in keywords.items():
        table.setdefault(str(keyword).lower(), str(waste_type))
    return table


def match_waste_type(title: Optional[str], table: KeywordTable) -> Optional[str]:
    """Return the waste type of the first keyword contained in ``title``.

    The table is scanned in insertion order, so ``{"gelbe": ..., "gelbe tonne": ...}``
    always resolves through ``"gelbe"``.  Empty or missing titles never match.
    """

    if not title:
        return None
    lowered = title.lower()
    for keyword, waste_type in table.items():
        if keyword in lowered:
            return waste_type
    return None
