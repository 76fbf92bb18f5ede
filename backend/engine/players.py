"""
Player registry: elimination, victory detection and castle regeneration.
"""

import logging

from backend.engine.errors import InvariantViolation
from backend.engine.grid import castle_cells, iter_cells
from backend.engine.state import GameState, Grid, PlayerOwner, PlayerState, Position

logger = logging.getLogger(__name__)


def eliminate_player(
    grid: Grid,
    state: GameState,
    player_id: str,
    castle_pos: Position,
    width: int | None = None,
    height: int | None = None,
) -> None:
    """
    Remove a player from play.

    Clears the castle block and every other cell the player owns, drops the
    id from turn_order (keeping current_player_index pointing at the same
    player, or wrapping to 0 when the removed player was last) and marks the
    player dead. The PlayerState stays in state.players for end-game stats.
    """
    if player_id not in state.turn_order:
        raise InvariantViolation(f"Cannot eliminate {player_id}: not in turn order {state.turn_order}")

    player = state.players[player_id]
    owner = PlayerOwner(player_id)

    for pos in castle_cells(castle_pos):
        grid[pos.y][pos.x].clear()

    rows = grid[:height] if height is not None else grid
    for row in rows:
        for cell in (row[:width] if width is not None else row):
            if cell.owner != owner:
                continue
            if cell.type == "unit":
                player.unit_count -= 1
            cell.clear()

    idx = state.turn_order.index(player_id)
    state.turn_order.pop(idx)
    if idx < state.current_player_index:
        state.current_player_index -= 1
    elif state.current_player_index >= len(state.turn_order):
        state.current_player_index = 0

    player.is_alive = False
    logger.info("Player %s eliminated; turn order now %s", player_id, state.turn_order)


def check_victory(turn_order: list[str]) -> str | None:
    """The sole remaining player id, or None while two or more are left."""
    if len(turn_order) == 1:
        return turn_order[0]
    return None


def living_players(state: GameState) -> list[PlayerState]:
    return [state.players[pid] for pid in state.turn_order if state.players[pid].is_alive]


def regenerate_castle(player: PlayerState, current_turn: int, regen_turns: int) -> bool:
    """
    Restore one castle HP once `regen_turns` turns have passed since the
    castle was damaged. The timer restarts while the castle is still below
    max and clears once it is full. Returns True if HP was restored.
    """
    if player.castle_first_damage_turn is None:
        return False
    if player.castle_hp >= player.castle_max_hp:
        player.castle_first_damage_turn = None
        return False
    if current_turn - player.castle_first_damage_turn < regen_turns:
        return False

    player.castle_hp = min(player.castle_max_hp, player.castle_hp + 1)
    if player.castle_hp >= player.castle_max_hp:
        player.castle_first_damage_turn = None
    else:
        player.castle_first_damage_turn = current_turn
    return True


def count_player_units(grid: Grid, player_id: str) -> int:
    """Full recount of a player's unit cells. For consistency checks only; unit_count is never reset from this."""
    owner = PlayerOwner(player_id)
    return sum(1 for cell in iter_cells(grid) if cell.type == "unit" and cell.owner == owner)
