"""
Game events for UI hooks and logging.
Events describe what happened during action processing.
"""

from dataclasses import dataclass
from typing import Any


@dataclass
class GameEvent:
    """Base event class. All events have a type and payload."""
    type: str
    payload: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "payload": self.payload}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GameEvent":
        return cls(type=data["type"], payload=data["payload"])


# ===== Event Type Constants =====

# Setup events
TURN_ORDER_ROLLED = "turn_order_rolled"
TURN_ORDER_FINALIZED = "turn_order_finalized"
CHEST_SPAWNED = "chest_spawned"

# Phase/Turn events
TURN_STARTED = "turn_started"
TURN_ENDED = "turn_ended"
OPTION_SELECTED = "option_selected"
OPTION_AUTO_SELECTED = "option_auto_selected"

# Placement events
PLACEMENT_ROLLED = "placement_rolled"
UNIT_PLACED = "unit_placed"
BRIDGE_BUILT = "bridge_built"
CHEST_COLLECTED = "chest_collected"

# Combat events
ATTACKER_SELECTED = "attacker_selected"
TARGET_SELECTED = "target_selected"
SELECTION_CANCELLED = "selection_cancelled"
COMBAT_RESOLVED = "combat_resolved"
UNIT_CAPTURED = "unit_captured"
UNIT_DESTROYED = "unit_destroyed"
CASTLE_DAMAGED = "castle_damaged"
CASTLE_REGENERATED = "castle_regenerated"

# Player events
PLAYER_ELIMINATED = "player_eliminated"
REBEL_SPAWNED = "rebel_spawned"
VICTORY = "victory"

# Rejected intent (state unchanged)
ACTION_REJECTED = "action_rejected"


# ===== Event Factory Functions =====

def turn_order_rolled(player_id: str, roll: int) -> GameEvent:
    return GameEvent(TURN_ORDER_ROLLED, {"player": player_id, "roll": roll})


def turn_order_finalized(turn_order: list[str], rolls: dict[str, int]) -> GameEvent:
    return GameEvent(TURN_ORDER_FINALIZED, {
        "turn_order": list(turn_order),
        "rolls": dict(rolls),
    })


def chest_spawned(x: int, y: int, bonus_type: str) -> GameEvent:
    return GameEvent(CHEST_SPAWNED, {"x": x, "y": y, "bonus_type": bonus_type})


def turn_started(turn_number: int, player_id: str) -> GameEvent:
    return GameEvent(TURN_STARTED, {
        "turn_number": turn_number,
        "player": player_id,
    })


def turn_ended(turn_number: int, player_id: str, reason: str) -> GameEvent:
    """reason: "voluntary", "out_of_moves", "combat_lost", etc."""
    return GameEvent(TURN_ENDED, {
        "turn_number": turn_number,
        "player": player_id,
        "reason": reason,
    })


def option_selected(player_id: str, option: str, attacks: int) -> GameEvent:
    return GameEvent(OPTION_SELECTED, {
        "player": player_id,
        "option": option,
        "attacks": attacks,
    })


def option_auto_selected(player_id: str, option: str, reason: str) -> GameEvent:
    """Emitted when the option screen is skipped, e.g. no enemies in reach."""
    return GameEvent(OPTION_AUTO_SELECTED, {
        "player": player_id,
        "option": option,
        "reason": reason,
    })


def placement_rolled(player_id: str, dice_value: int, placement_points: int, speed_bonus: bool) -> GameEvent:
    return GameEvent(PLACEMENT_ROLLED, {
        "player": player_id,
        "dice_value": dice_value,
        "placement_points": placement_points,
        "speed_bonus": speed_bonus,
    })


def unit_placed(player_id: str, x: int, y: int, points_remaining: int) -> GameEvent:
    return GameEvent(UNIT_PLACED, {
        "player": player_id,
        "x": x,
        "y": y,
        "points_remaining": points_remaining,
    })


def bridge_built(player_id: str, x: int, y: int, uses_remaining: int) -> GameEvent:
    return GameEvent(BRIDGE_BUILT, {
        "player": player_id,
        "x": x,
        "y": y,
        "uses_remaining": uses_remaining,
    })


def chest_collected(player_id: str, x: int, y: int, bonus_type: str, bonus_name: str) -> GameEvent:
    return GameEvent(CHEST_COLLECTED, {
        "player": player_id,
        "x": x,
        "y": y,
        "bonus_type": bonus_type,
        "bonus_name": bonus_name,
    })


def attacker_selected(player_id: str, x: int, y: int, targets: list[dict[str, int]]) -> GameEvent:
    return GameEvent(ATTACKER_SELECTED, {
        "player": player_id,
        "x": x,
        "y": y,
        "targets": targets,
    })


def target_selected(player_id: str, attacker: dict[str, int], target: dict[str, int]) -> GameEvent:
    return GameEvent(TARGET_SELECTED, {
        "player": player_id,
        "attacker": attacker,
        "target": target,
    })


def selection_cancelled(player_id: str) -> GameEvent:
    return GameEvent(SELECTION_CANCELLED, {"player": player_id})


def combat_resolved(
    player_id: str,
    attacker: dict[str, int],
    target: dict[str, int],
    result: dict[str, Any],
) -> GameEvent:
    """
    result: CombatResult.to_dict() - raw rolls, bonuses, final totals,
    is_tie and attacker_wins.
    """
    return GameEvent(COMBAT_RESOLVED, {
        "player": player_id,
        "attacker": attacker,
        "target": target,
        "result": result,
    })


def unit_captured(player_id: str, from_owner: str | None, x: int, y: int) -> GameEvent:
    return GameEvent(UNIT_CAPTURED, {
        "player": player_id,
        "from_owner": from_owner,
        "x": x,
        "y": y,
    })


def unit_destroyed(owner: str, x: int, y: int) -> GameEvent:
    return GameEvent(UNIT_DESTROYED, {"owner": owner, "x": x, "y": y})


def castle_damaged(player_id: str, attacker_id: str, new_hp: int) -> GameEvent:
    return GameEvent(CASTLE_DAMAGED, {
        "player": player_id,
        "attacker": attacker_id,
        "new_hp": new_hp,
    })


def castle_regenerated(player_id: str, new_hp: int) -> GameEvent:
    return GameEvent(CASTLE_REGENERATED, {"player": player_id, "new_hp": new_hp})


def player_eliminated(player_id: str, eliminated_by: str) -> GameEvent:
    return GameEvent(PLAYER_ELIMINATED, {
        "player": player_id,
        "eliminated_by": eliminated_by,
    })


def rebel_spawned(x: int, y: int) -> GameEvent:
    return GameEvent(REBEL_SPAWNED, {"x": x, "y": y})


def victory(winner: str, turn_number: int) -> GameEvent:
    return GameEvent(VICTORY, {
        "winner": winner,
        "turn_number": turn_number,
    })


def action_rejected(action_type: str, player_id: str, reason: str) -> GameEvent:
    return GameEvent(ACTION_REJECTED, {
        "action": action_type,
        "player": player_id,
        "reason": reason,
    })
