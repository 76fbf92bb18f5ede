"""
Shared fixtures: a fluent GameStateBuilder for hand-made boards and
scripted dice.
"""

import pytest

from backend.engine.grid import create_empty_grid, place_castle
from backend.engine.state import (
    REBEL,
    ActiveBonus,
    ChestState,
    GameState,
    PlayerOwner,
    PlayerState,
    Position,
    RebelState,
    SelectOption,
)
from backend.engine.utils import dice_rng

COLORS = ["blue", "yellow", "green", "red"]


class GameStateBuilder:
    """
    Build a GameState cell by cell. Players added with with_player get a
    castle at the given anchor. unit_count is kept in step with with_unit_at.
    Defaults to the SelectOption phase of the first player's turn.
    """

    def __init__(self, width: int = 10, height: int = 10):
        self.width = width
        self.height = height
        self.grid = create_empty_grid(width, height)
        self.players: dict[str, PlayerState] = {}
        self.turn_order: list[str] | None = None
        self.current_player_index = 0
        self.current_turn = 1
        self.chests: list[ChestState] = []
        self.rebels: RebelState | None = None
        self.phase = SelectOption()

    def with_player(self, player_id: str, castle_x: int, castle_y: int, castle_hp: int = 4) -> "GameStateBuilder":
        n = len(self.players)
        place_castle(self.grid, castle_x, castle_y, player_id)
        self.players[player_id] = PlayerState(
            id=player_id,
            display_name=f"Player {n + 1}",
            color=COLORS[n % len(COLORS)],
            castle_position=Position(castle_x, castle_y),
            castle_hp=castle_hp,
        )
        return self

    def with_castle_hp(self, player_id: str, hp: int, first_damage_turn: int | None = None) -> "GameStateBuilder":
        self.players[player_id].castle_hp = hp
        self.players[player_id].castle_first_damage_turn = first_damage_turn
        return self

    def with_player_bonus(
        self,
        player_id: str,
        bonus_type: str,
        turns_remaining: int = 3,
        uses_remaining: int | None = None,
    ) -> "GameStateBuilder":
        self.players[player_id].active_bonuses.append(ActiveBonus(bonus_type, turns_remaining, uses_remaining))
        return self

    def with_unit_at(self, x: int, y: int, player_id: str) -> "GameStateBuilder":
        cell = self.grid[y][x]
        cell.type = "unit"
        cell.owner = PlayerOwner(player_id)
        self.players[player_id].unit_count += 1
        return self

    def with_rebel_at(self, x: int, y: int) -> "GameStateBuilder":
        cell = self.grid[y][x]
        cell.type = "unit"
        cell.owner = REBEL
        if self.rebels is None:
            self.rebels = RebelState()
        self.rebels.units.append(Position(x, y))
        return self

    def with_river_at(self, x: int, y: int) -> "GameStateBuilder":
        self.grid[y][x].type = "river"
        return self

    def with_mountain_at(self, x: int, y: int) -> "GameStateBuilder":
        self.grid[y][x].type = "mountain"
        return self

    def with_bridge_at(self, x: int, y: int) -> "GameStateBuilder":
        self.grid[y][x].type = "bridge"
        return self

    def with_chest_at(self, x: int, y: int, bonus_type: str) -> "GameStateBuilder":
        self.grid[y][x].type = "chest"
        self.chests.append(ChestState(x=x, y=y, bonus_type=bonus_type))
        return self

    def with_turn_order(self, turn_order: list[str]) -> "GameStateBuilder":
        self.turn_order = list(turn_order)
        return self

    def with_current_player_index(self, index: int) -> "GameStateBuilder":
        self.current_player_index = index
        return self

    def with_current_turn(self, turn: int) -> "GameStateBuilder":
        self.current_turn = turn
        return self

    def with_phase(self, phase) -> "GameStateBuilder":
        self.phase = phase
        return self

    def build(self) -> GameState:
        return GameState(
            game_id="test-game",
            status="playing",
            map_type="flat",
            grid_width=self.width,
            grid_height=self.height,
            grid=self.grid,
            players=self.players,
            turn_order=self.turn_order if self.turn_order is not None else list(self.players),
            current_player_index=self.current_player_index,
            current_turn=self.current_turn,
            rebels=self.rebels,
            chests=self.chests,
            phase=self.phase,
        )


def unit_cells(state: GameState) -> int:
    return sum(1 for row in state.grid for cell in row if cell.type == "unit")


def assert_unit_counts_consistent(state: GameState) -> None:
    """Sum of unit_count plus rebel units equals the number of unit cells."""
    rebels = len(state.rebels.units) if state.rebels else 0
    assert sum(p.unit_count for p in state.players.values()) + rebels == unit_cells(state)


@pytest.fixture
def builder():
    return GameStateBuilder()


@pytest.fixture
def two_player_state():
    """p1 castle top-left at (0,0), p2 castle at (8,8) on a 10x10 board."""
    return GameStateBuilder(10, 10).with_player("p1", 0, 0).with_player("p2", 8, 8).build()


@pytest.fixture
def dice():
    """dice(3, 5, ...) -> rng producing those die faces in order."""
    return lambda *faces: dice_rng(faces)
