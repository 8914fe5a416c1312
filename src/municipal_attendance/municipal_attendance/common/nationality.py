from __future__ import annotations

from typing import Optional

from ..core.constants import ALL_NATIONALITIES

# Stored tags come from two generations of data: English codes and Arabic labels.
_ALIASES = {
    "JORDANIAN": "JORDANIAN",
    "أردني": "JORDANIAN",
    "EGYPTIAN": "EGYPTIAN",
    "مصري": "EGYPTIAN",
    "SYRIAN": "SYRIAN",
    "سوري": "SYRIAN",
}


def normalize_nationality(value: Optional[str]) -> Optional[str]:
    """Map a nationality tag to its canonical code; unknown tags pass through upper-cased."""
    if value is None:
        return None
    v = value.strip()
    if not v:
        return None
    return _ALIASES.get(v, _ALIASES.get(v.upper(), v.upper()))


def is_wildcard(value: Optional[str]) -> bool:
    return value is None or not value.strip() or value.strip().upper() == ALL_NATIONALITIES


def nationality_matches(worker_tag: Optional[str], handled: Optional[str]) -> bool:
    if is_wildcard(handled):
        return True
    return normalize_nationality(worker_tag) == normalize_nationality(handled)


def nationality_aliases(value: Optional[str]) -> list[str]:
    """Every stored tag that normalizes to the same code as `value`."""
    if is_wildcard(value):
        return []
    code = normalize_nationality(value)
    tags = {tag for tag, canonical in _ALIASES.items() if canonical == code}
    tags.add(code)
    return sorted(tags)
