"""
Single place for default game/setup configuration.
Values can be overridden with environment variables of the same name.
"""
import os


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


# Board size for new games (cells)
DEFAULT_GRID_WIDTH = _env_int("DEFAULT_GRID_WIDTH", 18)
DEFAULT_GRID_HEIGHT = _env_int("DEFAULT_GRID_HEIGHT", 18)

# "flat", "river", "mountain" or "bridge"
DEFAULT_MAP_TYPE = os.getenv("DEFAULT_MAP_TYPE", "flat")

DEFAULT_TURN_TIMER_SECONDS = _env_int("DEFAULT_TURN_TIMER_SECONDS", 10)

# Chests spawned once the turn order is settled, and how far they stay from castles
INITIAL_CHEST_COUNT = _env_int("INITIAL_CHEST_COUNT", 3)
CHEST_MIN_CASTLE_DISTANCE = _env_int("CHEST_MIN_CASTLE_DISTANCE", 3)

# Turns a damaged castle waits before recovering one HP
CASTLE_REGEN_TURNS = _env_int("CASTLE_REGEN_TURNS", 3)

# Full rounds between rebel spawns
REBEL_SPAWN_INTERVAL = _env_int("REBEL_SPAWN_INTERVAL", 10)
REBEL_MIN_CASTLE_DISTANCE = _env_int("REBEL_MIN_CASTLE_DISTANCE", 2)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
