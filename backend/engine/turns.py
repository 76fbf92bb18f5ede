"""
Turn rules: play order, turn options, turn advancement and attack options.
Pure functions over plain values and the grid; the reducer drives them.
"""

from backend.engine import TURN_OPTION_ATTACKS
from backend.engine.grid import in_bounds, neighbors, owned_cells
from backend.engine.state import Grid, GridCell, PlayerOwner, Position


def finalize_turn_order(rolls: list[tuple[str, int]]) -> list[str]:
    """
    Play order from turn-order rolls, highest first.
    Stable: equal rolls keep submission order and are not re-rolled.
    """
    return [player_id for player_id, _ in sorted(rolls, key=lambda r: r[1], reverse=True)]


def select_turn_option(option: str) -> tuple[str, int]:
    """(phase, attacks) for an option: A expands, B attacks once, C attacks twice."""
    if option not in TURN_OPTION_ATTACKS:
        raise ValueError(f"Unknown turn option '{option}'")
    attacks = TURN_OPTION_ATTACKS[option]
    return ("placing" if attacks == 0 else "attacking", attacks)


def advance_to_next_player(current_index: int, turn_order_length: int, current_turn: int) -> tuple[int, int]:
    """(next_index, turn). The turn number only moves on when play wraps to index 0."""
    next_index = (current_index + 1) % turn_order_length
    new_turn = current_turn + 1 if next_index == 0 else current_turn
    return next_index, new_turn


def is_enemy_cell(cell: GridCell, player_id: str) -> bool:
    """Owned by someone else (player or rebel) and holding a unit or castle."""
    return (
        cell.owner is not None
        and cell.owner != PlayerOwner(player_id)
        and cell.type in ("unit", "castle")
    )


def player_has_attack_options(grid: Grid, player_id: str) -> bool:
    for cell in owned_cells(grid, player_id):
        if cell.type not in ("unit", "castle"):
            continue
        if any(is_enemy_cell(n, player_id) for n in neighbors(grid, cell.x, cell.y)):
            return True
    return False


def calculate_attackable_enemies(grid: Grid, unit_pos: Position, player_id: str) -> set[Position]:
    if not in_bounds(grid, unit_pos.x, unit_pos.y):
        return set()
    return {
        Position(n.x, n.y)
        for n in neighbors(grid, unit_pos.x, unit_pos.y)
        if is_enemy_cell(n, player_id)
    }


def calculate_attack_sources(grid: Grid, player_id: str) -> set[Position]:
    """The player's unit cells that border at least one enemy. Castles never attack."""
    return {
        Position(cell.x, cell.y)
        for cell in owned_cells(grid, player_id)
        if cell.type == "unit" and calculate_attackable_enemies(grid, Position(cell.x, cell.y), player_id)
    }
