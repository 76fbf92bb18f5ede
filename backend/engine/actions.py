"""
Action definitions for the game.
Actions are the intents a player (or the turn timer) sends to the reducer.
They carry no dice: the reducer draws rolls from the injected rng.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class Action:
    """Base action class. All actions have a type, player, and payload."""
    type: str  # e.g. "select_option", "roll_dice", "place_at", "select_attacker", "end_turn"
    player: str  # player_id performing the action
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "player": self.player, "payload": self.payload}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Action":
        payload = data.get("payload")
        return cls(
            type=str(data.get("type") or ""),
            player=str(data.get("player") or ""),
            payload=payload if isinstance(payload, dict) else {},
        )


def roll_dice(player: str) -> Action:
    """
    Roll a die. Meaning depends on phase:
    - turn_order_roll: the player's turn-order roll
    - waiting: the placement roll (points = roll, +2 with a speed bonus)
    - combat: resolves the fight (attacker die, then defender die)
    """
    return Action(type="roll_dice", player=player)


def select_option(player: str, option: str) -> Action:
    """
    Choose the turn plan.
    A: expand only. B: one attack, then expand if it wins. C: up to two attacks.
    """
    return Action(type="select_option", player=player, payload={"option": option})


def place_at(player: str, x: int, y: int) -> Action:
    """
    Place a unit on a frontier cell, spending one placement point.
    With a bridge bonus, a river cell next to the player's territory becomes a bridge instead.
    """
    return Action(type="place_at", player=player, payload={"x": x, "y": y})


def select_attacker(player: str, x: int, y: int) -> Action:
    """Pick one of your units that borders an enemy. Can be re-issued to switch attackers."""
    return Action(type="select_attacker", player=player, payload={"x": x, "y": y})


def select_target(player: str, x: int, y: int) -> Action:
    """Pick an enemy cell adjacent to the selected attacker."""
    return Action(type="select_target", player=player, payload={"x": x, "y": y})


def cancel(player: str) -> Action:
    """Back out of attacker/target selection. Changes nothing but the phase."""
    return Action(type="cancel", player=player)


def end_turn(player: str) -> Action:
    """End the current turn (also sent when the turn timer expires). Unused points and attacks are lost."""
    return Action(type="end_turn", player=player)
