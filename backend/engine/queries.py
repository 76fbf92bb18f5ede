"""
Query functions for UI integration.
These functions help the UI understand what actions are available
without mutating game state.
"""

from dataclasses import dataclass
from typing import Any

from backend.engine.actions import Action
from backend.engine.bonuses import BONUS_NAMES, bridge_uses_remaining
from backend.engine.grid import calculate_bridge_sites, calculate_valid_placements, is_castle_anchor
from backend.engine.reducer import PHASE_ALLOWED_ACTIONS, get_rejection_reason, next_turn_order_roller
from backend.engine.state import GameOver, GameState, Position, SelectTarget, TurnOrderRoll
from backend.engine.turns import calculate_attack_sources, calculate_attackable_enemies


@dataclass
class ValidationResult:
    """Result of action validation."""
    valid: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "error": self.error}


def _positions(positions: set[Position] | list[Position]) -> list[dict[str, int]]:
    return [p.to_dict() for p in sorted(positions, key=lambda p: (p.y, p.x))]


# ===== Action Validation =====

def validate_action(state: GameState, action: Action) -> ValidationResult:
    """Check an action without applying it."""
    reason = get_rejection_reason(state, action)
    if reason is not None:
        return ValidationResult(False, reason)
    return ValidationResult(True)


def get_acting_player(state: GameState) -> str | None:
    """Whoever the next action must come from: the next turn-order roller, or the current player."""
    if isinstance(state.phase, GameOver) or state.status == "finished":
        return None
    if isinstance(state.phase, TurnOrderRoll):
        return next_turn_order_roller(state)
    return state.current_player_id


def get_available_action_types(state: GameState) -> list[str]:
    """Get action types available in the current phase."""
    if state.winner is not None:
        return []
    return list(PHASE_ALLOWED_ACTIONS.get(state.phase.kind, []))


# ===== Board Queries =====

def get_valid_placements(state: GameState, player_id: str) -> list[dict[str, int]]:
    """Frontier cells the player could place a unit on."""
    return _positions(calculate_valid_placements(state.grid, player_id))


def get_bridge_sites(state: GameState, player_id: str) -> list[dict[str, int]]:
    """River cells the player could bridge, empty without a bridge use left."""
    if player_id not in state.players or bridge_uses_remaining(state.players[player_id]) <= 0:
        return []
    return _positions(calculate_bridge_sites(state.grid, player_id))


def get_attack_sources(state: GameState, player_id: str) -> list[dict[str, int]]:
    """Units that can be picked as attacker."""
    return _positions(calculate_attack_sources(state.grid, player_id))


def get_attack_targets(state: GameState, x: int, y: int, player_id: str) -> list[dict[str, int]]:
    return _positions(calculate_attackable_enemies(state.grid, Position(x, y), player_id))


def get_castle_anchors(state: GameState) -> list[dict[str, Any]]:
    """One entry per standing castle, keyed by its top-left cell (for drawing a single castle sprite)."""
    anchors = []
    for row in state.grid:
        for cell in row:
            if is_castle_anchor(state.grid, cell.x, cell.y):
                anchors.append({"x": cell.x, "y": cell.y, "owner": cell.owner_id})
    return anchors


def get_player_stats(state: GameState) -> dict[str, dict[str, Any]]:
    """Per-player stats for the UI: castle, units, territory and bonuses."""
    territory: dict[str, int] = {pid: 0 for pid in state.players}
    for row in state.grid:
        for cell in row:
            owner_id = cell.owner_id
            if owner_id in territory:
                territory[owner_id] += 1

    stats = {}
    for pid, player in state.players.items():
        stats[pid] = {
            "display_name": player.display_name,
            "color": player.color,
            "is_alive": player.is_alive,
            "castle_hp": player.castle_hp,
            "castle_max_hp": player.castle_max_hp,
            "units": player.unit_count,
            "territory": territory[pid],
            "bonuses": [
                {**b.to_dict(), "name": BONUS_NAMES.get(b.type, b.type)}
                for b in player.active_bonuses
            ],
        }
    return stats


def get_game_summary(state: GameState) -> dict[str, Any]:
    """
    Get a summary of the current game state for UI display.
    """
    phase = state.phase
    acting = get_acting_player(state)
    summary: dict[str, Any] = {
        "game_id": state.game_id,
        "status": state.status,
        "turn_number": state.current_turn,
        "current_player": state.current_player_id,
        "acting_player": acting,
        "turn_order": list(state.turn_order),
        "phase": phase.to_dict(),
        "winner": state.winner,
        "turn_timer_seconds": state.turn_timer_seconds,
        "rebel_spawn_countdown": state.rebel_spawn_countdown,
        "players": get_player_stats(state),
        "available_actions": get_available_action_types(state),
    }

    if acting is not None and phase.kind == "placing":
        summary["valid_placements"] = get_valid_placements(state, acting)
        summary["bridge_sites"] = get_bridge_sites(state, acting)
    elif acting is not None and phase.kind == "select_attacker":
        summary["attack_sources"] = get_attack_sources(state, acting)
    elif isinstance(phase, SelectTarget):
        summary["attack_sources"] = get_attack_sources(state, acting)
        summary["attack_targets"] = [t.to_dict() for t in phase.targets]
    return summary
