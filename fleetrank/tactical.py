"""Turn-based tactical game rules.

Players submit one move per ship per turn; the game master (GM) resolves
each move by hand and then ends the turn.  There is no automatic combat
model: the GM decides damage and shield changes and this module only
applies them consistently.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

GAME_ACTIVE = "active"
GAME_FINISHED = "finished"

MOVE_PENDING = "pending"
MOVE_RESOLVED = "resolved"
MOVE_EXPIRED = "expired"


@dataclass(frozen=True)
class Outcome:
    """GM ruling for one move."""
    damage: int = 0
    shield_delta: int = 0
    event_kind: str = "resolution"
    note: Optional[str] = None


def apply_outcome(ship: Dict[str, Any], outcome: Outcome) -> Dict[str, Any]:
    """Return the ship's updated ``hull``, ``shields`` and ``destroyed``.

    Shield changes apply first, then damage is soaked by shields before it
    reaches the hull.  Neither value drops below zero.
    """
    shields = max(ship["shields"] + outcome.shield_delta, 0)
    damage = max(outcome.damage, 0)

    absorbed = min(shields, damage)
    shields -= absorbed
    hull = max(ship["hull"] - (damage - absorbed), 0)

    return {
        "hull": hull,
        "shields": shields,
        "destroyed": hull == 0 or bool(ship.get("destroyed")),
    }


def surviving_owners(ships: Iterable[Dict[str, Any]]) -> set:
    return {s["owner_user_id"] for s in ships if not s.get("destroyed")}


def is_game_over(ships: Iterable[Dict[str, Any]]) -> bool:
    """A game ends once at most one player still has a ship afloat.

    Games with no ships at all are never over; the GM is still setting up.
    """
    ships = list(ships)
    if not ships:
        return False
    return len(surviving_owners(ships)) <= 1


def channel_for(game_id: int) -> str:
    return f"tactical:{game_id}"
