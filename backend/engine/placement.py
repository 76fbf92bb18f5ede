"""
Placement rules: converting a placement roll into points and claiming cells.
"""

from typing import Any

from backend.engine import SPEED_BONUS_POINTS
from backend.engine.bonuses import collect_chest, consume_bridge_use
from backend.engine.state import GameState, Grid, PlayerOwner, PlayerState


def calculate_placement_points(dice_value: int, has_speed_bonus: bool) -> int:
    return dice_value + (SPEED_BONUS_POINTS if has_speed_bonus else 0)


def place_unit(grid: Grid, state: GameState, x: int, y: int, player_id: str) -> dict[str, Any]:
    """
    Claim (x, y) with a unit. Picks up the chest first if the cell holds one.
    Legality (frontier membership) is the caller's job.
    """
    result: dict[str, Any] = {"chest_collected": False, "chest_bonus_type": None, "chest_bonus_name": None}
    cell = grid[y][x]

    if cell.type == "chest":
        collected = collect_chest(state, x, y, player_id)
        if collected:
            result["chest_collected"] = True
            result["chest_bonus_type"] = collected["bonus_type"]
            result["chest_bonus_name"] = collected["bonus_name"]

    cell.type = "unit"
    cell.owner = PlayerOwner(player_id)
    state.players[player_id].unit_count += 1
    return result


def build_bridge(grid: Grid, player: PlayerState, x: int, y: int) -> bool:
    """Turn a river cell into a bridge using one bridge bonus use. False if not river or no uses left."""
    cell = grid[y][x]
    if cell.type != "river":
        return False
    if not consume_bridge_use(player):
        return False
    cell.type = "bridge"
    return True
