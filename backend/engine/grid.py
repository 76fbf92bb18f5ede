"""
Grid model: terrain generation, castle placement, placement legality and
expansion frontiers. Functions borrow the grid for a single call and never
keep a reference to it.
"""

from collections.abc import Iterable, Iterator

from backend.engine import CASTLE_SIZE
from backend.engine.state import Grid, GridCell, PlayerOwner, PlayerState, Position


MAP_TYPES = ("flat", "river", "mountain", "bridge")

# Cell types a unit can be placed on
PLACEABLE_TYPES = ("empty", "bridge", "chest")

# up, down, left, right
_DIRECTIONS = ((0, -1), (0, 1), (-1, 0), (1, 0))


def create_empty_grid(width: int, height: int) -> Grid:
    """Build a grid[y][x] of empty, unowned cells."""
    return [[GridCell(x=x, y=y) for x in range(width)] for y in range(height)]


def in_bounds(grid: Grid, x: int, y: int) -> bool:
    return 0 <= y < len(grid) and 0 <= x < len(grid[y])


def cell_at(grid: Grid, x: int, y: int) -> GridCell | None:
    if not in_bounds(grid, x, y):
        return None
    return grid[y][x]


def neighbors(grid: Grid, x: int, y: int) -> Iterator[GridCell]:
    """In-bounds 4-neighbours of (x, y)."""
    for dx, dy in _DIRECTIONS:
        nx, ny = x + dx, y + dy
        if in_bounds(grid, nx, ny):
            yield grid[ny][nx]


def iter_cells(grid: Grid) -> Iterator[GridCell]:
    for row in grid:
        yield from row


def castle_cells(castle_position: Position) -> list[Position]:
    """The four positions of a castle's 2x2 block, anchor first."""
    return [
        Position(castle_position.x + dx, castle_position.y + dy)
        for dy in range(CASTLE_SIZE)
        for dx in range(CASTLE_SIZE)
    ]


def _set_type(grid: Grid, x: int, y: int, cell_type: str) -> None:
    if in_bounds(grid, x, y):
        grid[y][x].type = cell_type


def generate_terrain(grid: Grid, map_type: str, width: int, height: int) -> None:
    """
    Carve terrain for the map type. Deterministic; runs once before castles
    are placed.

    flat: nothing.
    river: a two-column river down the middle with two bridges.
    mountain: a 5x3 mountain range in the centre.
    bridge: a cross of rivers with five bridges.
    """
    if map_type not in MAP_TYPES:
        raise ValueError(f"Unknown map type '{map_type}'. Expected one of: {', '.join(MAP_TYPES)}")

    cx = width // 2
    cy = height // 2

    if map_type == "river":
        for y in range(height):
            _set_type(grid, cx - 1, y, "river")
            _set_type(grid, cx, y, "river")
        for y in (4, height - 5):
            _set_type(grid, cx - 1, y, "bridge")
            _set_type(grid, cx, y, "bridge")

    elif map_type == "mountain":
        for dx in range(-2, 3):
            for dy in range(-1, 2):
                _set_type(grid, cx + dx, cy + dy, "mountain")

    elif map_type == "bridge":
        for x in range(3, width - 3):
            _set_type(grid, x, cy, "river")
        for y in range(3, height - 3):
            _set_type(grid, cx, y, "river")
        for x, y in ((cx, cy), (5, cy), (width - 6, cy), (cx, 5), (cx, height - 6)):
            _set_type(grid, x, y, "bridge")


def place_castle(grid: Grid, x: int, y: int, player_id: str) -> None:
    """Mark the 2x2 block at (x, y) as the player's castle. Caller guarantees the block is free."""
    owner = PlayerOwner(player_id)
    for pos in castle_cells(Position(x, y)):
        cell = grid[pos.y][pos.x]
        cell.type = "castle"
        cell.owner = owner
        cell.is_castle = True


def is_valid_placement(cell: GridCell) -> bool:
    """River and mountain are impassable; unit and castle cells are occupied."""
    return cell.type in PLACEABLE_TYPES


def owned_cells(grid: Grid, player_id: str) -> Iterator[GridCell]:
    owner = PlayerOwner(player_id)
    for cell in iter_cells(grid):
        if cell.owner == owner:
            yield cell


def calculate_valid_placements(grid: Grid, player_id: str) -> set[Position]:
    """
    Expansion frontier: every placeable 4-neighbour of a cell the player owns.
    Recomputed from scratch on every call.
    """
    frontier: set[Position] = set()
    for cell in owned_cells(grid, player_id):
        for n in neighbors(grid, cell.x, cell.y):
            if is_valid_placement(n):
                frontier.add(Position(n.x, n.y))
    return frontier


def calculate_bridge_sites(grid: Grid, player_id: str) -> set[Position]:
    """River cells adjacent to the player's territory; a bridge bonus can span these."""
    sites: set[Position] = set()
    for cell in owned_cells(grid, player_id):
        for n in neighbors(grid, cell.x, cell.y):
            if n.type == "river":
                sites.add(Position(n.x, n.y))
    return sites


def is_near_castle(players: Iterable[PlayerState], x: int, y: int, distance: int) -> bool:
    """True if (x, y) is within `distance` (Chebyshev) of any cell of any castle."""
    for player in players:
        for pos in castle_cells(player.castle_position):
            if abs(x - pos.x) <= distance and abs(y - pos.y) <= distance:
                return True
    return False


def _same_castle(cell: GridCell, other: GridCell | None) -> bool:
    return other is not None and other.is_castle and other.owner == cell.owner


def is_castle_anchor(grid: Grid, x: int, y: int) -> bool:
    """True for the top-left cell of a castle: neither its left nor top neighbour is part of the same castle."""
    cell = cell_at(grid, x, y)
    if cell is None or not cell.is_castle:
        return False
    return not _same_castle(cell, cell_at(grid, x - 1, y)) and not _same_castle(cell, cell_at(grid, x, y - 1))


def count_unit_cells(grid: Grid) -> int:
    return sum(1 for cell in iter_cells(grid) if cell.type == "unit")
