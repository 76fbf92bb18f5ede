"""
Initial game state construction.
"""

import time

from backend.config import (
    DEFAULT_GRID_HEIGHT,
    DEFAULT_GRID_WIDTH,
    DEFAULT_TURN_TIMER_SECONDS,
    REBEL_SPAWN_INTERVAL,
)
from backend.engine import CASTLE_MAX_HP
from backend.engine.grid import create_empty_grid, generate_terrain, place_castle
from backend.engine.state import GameState, Grid, PlayerState, Position, TurnOrderRoll

MIN_PLAYERS = 2
MAX_PLAYERS = 4

PLAYER_CONFIGS = [
    {"id": "player1", "display_name": "Player 1", "color": "blue"},
    {"id": "player2", "display_name": "Player 2", "color": "yellow"},
    {"id": "player3", "display_name": "Player 3", "color": "green"},
    {"id": "player4", "display_name": "Player 4", "color": "red"},
]


def castle_positions(player_count: int, width: int, height: int) -> list[Position]:
    """
    Castle anchors, one per player. Two players get opposite corners
    (bottom-left, top-right); three or four fill the corners in order.
    """
    if player_count == 2:
        return [Position(1, height - 3), Position(width - 3, 1)]
    corners = [
        Position(1, 1),
        Position(width - 3, 1),
        Position(1, height - 3),
        Position(width - 3, height - 3),
    ]
    return corners[:player_count]


def create_initial_game_state(
    player_count: int,
    map_type: str,
    width: int = DEFAULT_GRID_WIDTH,
    height: int = DEFAULT_GRID_HEIGHT,
    game_id: str | None = None,
    turn_timer_seconds: int = DEFAULT_TURN_TIMER_SECONDS,
) -> tuple[Grid, GameState]:
    """
    Build a fresh game: terrain, castles and players, waiting for the
    turn-order roll. turn_order starts in creation order; the real play
    order comes from the rolls. Returns (grid, state) with state.grid the
    same grid object.
    """
    if not MIN_PLAYERS <= player_count <= MAX_PLAYERS:
        raise ValueError(f"player_count must be between {MIN_PLAYERS} and {MAX_PLAYERS}, got {player_count}")

    grid = create_empty_grid(width, height)
    generate_terrain(grid, map_type, width, height)

    players: dict[str, PlayerState] = {}
    for config, castle_pos in zip(PLAYER_CONFIGS, castle_positions(player_count, width, height)):
        place_castle(grid, castle_pos.x, castle_pos.y, config["id"])
        players[config["id"]] = PlayerState(
            id=config["id"],
            display_name=config["display_name"],
            color=config["color"],
            castle_position=castle_pos,
            castle_hp=CASTLE_MAX_HP,
            castle_max_hp=CASTLE_MAX_HP,
        )

    state = GameState(
        game_id=game_id or f"game-{int(time.time() * 1000)}",
        status="playing",
        map_type=map_type,
        grid_width=width,
        grid_height=height,
        grid=grid,
        players=players,
        turn_order=list(players),
        current_player_index=0,
        current_turn=1,
        turn_timer_seconds=turn_timer_seconds,
        rebel_spawn_countdown=REBEL_SPAWN_INTERVAL,
        phase=TurnOrderRoll(),
    )
    return grid, state
