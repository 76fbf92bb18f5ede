"""
Bonus ledger: chest spawning and collection, bonus activation and expiry.

Attack, defense and speed bonuses last a fixed number of the owner's turns.
Bridge bonuses ignore turns and expire when their uses run out.
"""

import logging
import math
from collections.abc import Iterable

from backend.engine import (
    BONUS_DURATION_TURNS,
    BRIDGE_BONUS_TURNS,
    BRIDGE_BONUS_USES,
    CHEST_SPAWN_ATTEMPTS,
)
from backend.engine.grid import is_near_castle
from backend.engine.state import (
    BONUS_TYPES,
    ActiveBonus,
    ChestState,
    GameState,
    Grid,
    PlayerState,
    Position,
)
from backend.engine.utils import Rng

logger = logging.getLogger(__name__)

BONUS_NAMES = {
    "defense": "Defense Shield",
    "attack": "Attack Boost",
    "speed": "Speed Bonus",
    "bridge": "Bridge Builder",
}


def find_chest_spawn_position(
    grid: Grid,
    players: Iterable[PlayerState],
    width: int,
    height: int,
    min_castle_distance: int,
    rng: Rng,
) -> Position | None:
    """Sample random cells until one is empty and clear of every castle. None after CHEST_SPAWN_ATTEMPTS misses."""
    players = list(players)
    for _ in range(CHEST_SPAWN_ATTEMPTS):
        x = math.floor(rng() * width)
        y = math.floor(rng() * height)
        if grid[y][x].type == "empty" and not is_near_castle(players, x, y, min_castle_distance):
            return Position(x, y)
    return None


def spawn_chests(state: GameState, count: int, min_castle_distance: int, rng: Rng) -> list[ChestState]:
    """Spawn up to `count` chests with random bonus types. Positions that cannot be found are skipped."""
    spawned = []
    for _ in range(count):
        pos = find_chest_spawn_position(
            state.grid,
            state.players.values(),
            state.grid_width,
            state.grid_height,
            min_castle_distance,
            rng,
        )
        if pos is None:
            logger.debug("No chest position found after %d attempts", CHEST_SPAWN_ATTEMPTS)
            continue
        bonus_type = BONUS_TYPES[math.floor(rng() * len(BONUS_TYPES))]
        chest = ChestState(x=pos.x, y=pos.y, bonus_type=bonus_type)
        state.chests.append(chest)
        state.grid[pos.y][pos.x].type = "chest"
        spawned.append(chest)
    return spawned


def create_bonus(bonus_type: str) -> ActiveBonus:
    if bonus_type == "bridge":
        return ActiveBonus(type="bridge", turns_remaining=BRIDGE_BONUS_TURNS, uses_remaining=BRIDGE_BONUS_USES)
    return ActiveBonus(type=bonus_type, turns_remaining=BONUS_DURATION_TURNS)


def collect_chest(state: GameState, x: int, y: int, player_id: str) -> dict[str, str] | None:
    """
    Collect the uncollected chest at (x, y) for the player.

    Returns {"bonus_type", "bonus_name"}, or None when there is no such chest.
    The cell type is left to the caller (placement overwrites it).
    """
    chest = next((c for c in state.chests if c.x == x and c.y == y and not c.is_collected), None)
    if chest is None:
        return None
    player = state.players.get(player_id)
    if player is None:
        return None

    chest.is_collected = True
    player.active_bonuses.append(create_bonus(chest.bonus_type))
    return {"bonus_type": chest.bonus_type, "bonus_name": BONUS_NAMES[chest.bonus_type]}


def any_active_bonus(bonuses: Iterable[ActiveBonus], bonus_type: str) -> bool:
    return any(b.type == bonus_type and b.turns_remaining > 0 for b in bonuses)


def has_active_bonus(player: PlayerState, bonus_type: str) -> bool:
    return any_active_bonus(player.active_bonuses, bonus_type)


def bridge_uses_remaining(player: PlayerState) -> int:
    return sum(b.uses_remaining or 0 for b in player.active_bonuses if b.type == "bridge")


def decrement_bonuses(player: PlayerState) -> None:
    """
    End-of-turn expiry. Bridge bonuses survive while they have uses left and
    their turns_remaining is never touched. Other bonuses lose a turn and are
    dropped at zero.
    """
    kept = []
    for bonus in player.active_bonuses:
        if bonus.type == "bridge":
            if (bonus.uses_remaining or 0) > 0:
                kept.append(bonus)
            continue
        bonus.turns_remaining -= 1
        if bonus.turns_remaining > 0:
            kept.append(bonus)
    player.active_bonuses = kept


def consume_bridge_use(player: PlayerState) -> bool:
    """Spend one bridge use from the oldest bridge bonus that has one. False if none left."""
    for bonus in player.active_bonuses:
        if bonus.type == "bridge" and (bonus.uses_remaining or 0) > 0:
            bonus.uses_remaining -= 1
            return True
    return False
