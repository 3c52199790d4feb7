"""
Ordered investigation table.

Matching is "first substring match wins": when several alert titles overlap, the entry listed first is used.
Keep more specific titles above more generic ones.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from triage.investigations.base import Investigation
from triage.investigations.restartcontrolplane import RestartControlPlane

INVESTIGATIONS: List[Investigation] = [
    RestartControlPlane(),
]

# Short names accepted by manual mode.
ALIASES: Dict[str, str] = {
    "restart-controlplane": "restartcontrolplane",
    "rcp": "restartcontrolplane",
}


def _is_experimental(inv: Investigation) -> bool:
    fn = getattr(inv, "is_experimental", None)
    if callable(fn):
        return bool(fn())
    return bool(getattr(inv, "experimental", False))


def get_investigation(
    title: str,
    experimental_enabled: bool = False,
    investigations: Optional[Sequence[Investigation]] = None,
) -> Optional[Investigation]:
    """Return the first investigation whose alert title matches `title`, or None."""
    for inv in INVESTIGATIONS if investigations is None else investigations:
        if not inv.should_investigate_alert(title):
            continue
        if _is_experimental(inv) and not experimental_enabled:
            continue
        return inv
    return None


def get_investigation_by_name(
    name: str,
    experimental_enabled: bool = False,
    investigations: Optional[Sequence[Investigation]] = None,
) -> Optional[Investigation]:
    key = (name or "").strip()
    key = ALIASES.get(key.lower(), key)
    for inv in INVESTIGATIONS if investigations is None else investigations:
        if inv.name != key and inv.name.lower() != key.lower():
            continue
        if _is_experimental(inv) and not experimental_enabled:
            return None
        return inv
    return None


def list_investigations(investigations: Optional[Sequence[Investigation]] = None) -> Dict[str, str]:
    """Name -> description, in table order."""
    return {inv.name: inv.description for inv in (INVESTIGATIONS if investigations is None else investigations)}
