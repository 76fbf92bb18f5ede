"""
Game state representation.
The reducer copies state before mutating it, so each action yields a new snapshot.
Includes JSON serialization for save/load functionality.
"""

import json
from dataclasses import dataclass, field
from copy import deepcopy
from typing import Any, ClassVar, Union

from backend.engine import CASTLE_MAX_HP


CELL_TYPES = ("empty", "unit", "castle", "river", "mountain", "bridge", "chest")
BONUS_TYPES = ("defense", "attack", "speed", "bridge")
REBEL_OWNER_ID = "rebel"


def _int(value: Any, default: int) -> int:
    try:
        return int(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def _opt_int(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _ensure_str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(x) for x in value]


@dataclass(frozen=True)
class Position:
    """Grid coordinate. Hashable so frontiers and target sets can be plain sets."""
    x: int
    y: int

    def to_dict(self) -> dict[str, int]:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, data: Any) -> "Position":
        if not isinstance(data, dict):
            data = {}
        return cls(x=_int(data.get("x"), 0), y=_int(data.get("y"), 0))


def _opt_position(data: Any) -> Position | None:
    return Position.from_dict(data) if isinstance(data, dict) else None


# ===== Cell ownership =====

@dataclass(frozen=True)
class PlayerOwner:
    """Cell owned by a player."""
    player_id: str


@dataclass(frozen=True)
class RebelOwner:
    """Cell held by the neutral rebel faction."""


REBEL = RebelOwner()

# None means unowned
Owner = Union[PlayerOwner, RebelOwner, None]


def owner_to_id(owner: Owner) -> str | None:
    """Wire form of an owner: player id, "rebel", or None."""
    if isinstance(owner, PlayerOwner):
        return owner.player_id
    if isinstance(owner, RebelOwner):
        return REBEL_OWNER_ID
    return None


def owner_from_id(owner_id: Any) -> Owner:
    if owner_id is None or owner_id == "":
        return None
    if owner_id == REBEL_OWNER_ID:
        return REBEL
    return PlayerOwner(str(owner_id))


@dataclass
class GridCell:
    """One board cell. Castle cells carry is_castle for all four squares of the 2x2 block."""
    x: int
    y: int
    type: str = "empty"
    owner: Owner = None
    is_castle: bool = False

    @property
    def owner_id(self) -> str | None:
        return owner_to_id(self.owner)

    def is_owned_by(self, player_id: str) -> bool:
        return self.owner == PlayerOwner(player_id)

    def clear(self) -> None:
        """Reset to an empty, unowned, non-castle cell."""
        self.type = "empty"
        self.owner = None
        self.is_castle = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "x": self.x,
            "y": self.y,
            "type": self.type,
            "owner_id": self.owner_id,
            "is_castle": self.is_castle,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GridCell":
        if not isinstance(data, dict):
            data = {}
        cell_type = data.get("type")
        if cell_type not in CELL_TYPES:
            cell_type = "empty"
        return cls(
            x=_int(data.get("x"), 0),
            y=_int(data.get("y"), 0),
            type=cell_type,
            owner=owner_from_id(data.get("owner_id")),
            is_castle=bool(data.get("is_castle", False)),
        )


Grid = list[list[GridCell]]  # indexed grid[y][x]


@dataclass
class ActiveBonus:
    """A bonus granted by a chest. uses_remaining only applies to bridge bonuses."""
    type: str
    turns_remaining: int
    uses_remaining: int | None = None

    def to_dict(self) -> dict[str, Any]:
        out = {"type": self.type, "turns_remaining": self.turns_remaining}
        if self.uses_remaining is not None:
            out["uses_remaining"] = self.uses_remaining
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ActiveBonus":
        if not isinstance(data, dict):
            data = {}
        return cls(
            type=str(data.get("type") or "attack"),
            turns_remaining=_int(data.get("turns_remaining"), 0),
            uses_remaining=_opt_int(data.get("uses_remaining")),
        )


@dataclass
class PlayerState:
    """A player and their castle. Eliminated players stay in GameState.players with is_alive False."""
    id: str
    display_name: str
    color: str
    castle_position: Position  # top-left of the 2x2 block
    castle_hp: int = CASTLE_MAX_HP
    castle_max_hp: int = CASTLE_MAX_HP
    # Turn the castle was first damaged since it was last at full HP (regen timer)
    castle_first_damage_turn: int | None = None
    active_bonuses: list[ActiveBonus] = field(default_factory=list)
    is_alive: bool = True
    is_connected: bool = True
    # Number of type=unit cells this player owns. Updated by every mutator, never recounted.
    unit_count: int = 0
    level: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "color": self.color,
            "castle_position": self.castle_position.to_dict(),
            "castle_hp": self.castle_hp,
            "castle_max_hp": self.castle_max_hp,
            "castle_first_damage_turn": self.castle_first_damage_turn,
            "active_bonuses": [b.to_dict() for b in self.active_bonuses],
            "is_alive": self.is_alive,
            "is_connected": self.is_connected,
            "unit_count": self.unit_count,
            "level": self.level,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlayerState":
        if not isinstance(data, dict):
            data = {}
        bonuses = data.get("active_bonuses")
        if not isinstance(bonuses, list):
            bonuses = []
        return cls(
            id=str(data.get("id") or ""),
            display_name=str(data.get("display_name") or ""),
            color=str(data.get("color") or ""),
            castle_position=Position.from_dict(data.get("castle_position")),
            castle_hp=_int(data.get("castle_hp"), CASTLE_MAX_HP),
            castle_max_hp=_int(data.get("castle_max_hp"), CASTLE_MAX_HP),
            castle_first_damage_turn=_opt_int(data.get("castle_first_damage_turn")),
            active_bonuses=[ActiveBonus.from_dict(b) for b in bonuses if isinstance(b, dict)],
            is_alive=bool(data.get("is_alive", True)),
            is_connected=bool(data.get("is_connected", True)),
            unit_count=_int(data.get("unit_count"), 0),
            level=_int(data.get("level"), 1),
        )


@dataclass
class ChestState:
    """A bonus chest on the board. Position never changes; is_collected only goes False -> True."""
    x: int
    y: int
    bonus_type: str
    is_collected: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "x": self.x,
            "y": self.y,
            "bonus_type": self.bonus_type,
            "is_collected": self.is_collected,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChestState":
        if not isinstance(data, dict):
            data = {}
        return cls(
            x=_int(data.get("x"), 0),
            y=_int(data.get("y"), 0),
            bonus_type=str(data.get("bonus_type") or "attack"),
            is_collected=bool(data.get("is_collected", False)),
        )


@dataclass
class RebelState:
    """Neutral units. Each position is a type=unit cell owned by REBEL."""
    units: list[Position] = field(default_factory=list)
    active_bonuses: list[ActiveBonus] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "units": [p.to_dict() for p in self.units],
            "active_bonuses": [b.to_dict() for b in self.active_bonuses],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RebelState":
        if not isinstance(data, dict):
            data = {}
        units = data.get("units")
        bonuses = data.get("active_bonuses")
        return cls(
            units=[Position.from_dict(p) for p in (units if isinstance(units, list) else []) if isinstance(p, dict)],
            active_bonuses=[
                ActiveBonus.from_dict(b) for b in (bonuses if isinstance(bonuses, list) else []) if isinstance(b, dict)
            ],
        )


# ===== Turn phases =====
# Tagged union: every phase has a `kind` and serializes with it.

@dataclass
class TurnOrderRoll:
    """Players roll one die each, in creation order, to settle the play order."""
    kind: ClassVar[str] = "turn_order_roll"
    rolls: dict[str, int] = field(default_factory=dict)  # player_id -> roll, in submission order

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "rolls": dict(self.rolls)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TurnOrderRoll":
        rolls = data.get("rolls")
        if not isinstance(rolls, dict):
            rolls = {}
        return cls(rolls={str(k): _int(v, 0) for k, v in rolls.items()})


@dataclass
class SelectOption:
    """Current player chooses A (expand), B (attack then expand) or C (double attack)."""
    kind: ClassVar[str] = "select_option"

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SelectOption":
        return cls()


@dataclass
class Waiting:
    """Expansion chosen; waiting for the placement roll."""
    kind: ClassVar[str] = "waiting"
    option: str = "A"

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "option": self.option}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Waiting":
        return cls(option=str(data.get("option") or "A"))


@dataclass
class Placing:
    kind: ClassVar[str] = "placing"
    option: str = "A"
    dice_value: int = 0
    placement_points: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "option": self.option,
            "dice_value": self.dice_value,
            "placement_points": self.placement_points,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Placing":
        return cls(
            option=str(data.get("option") or "A"),
            dice_value=_int(data.get("dice_value"), 0),
            placement_points=_int(data.get("placement_points"), 0),
        )


@dataclass
class SelectAttacker:
    kind: ClassVar[str] = "select_attacker"
    option: str = "B"
    attacks_remaining: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "option": self.option, "attacks_remaining": self.attacks_remaining}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SelectAttacker":
        return cls(
            option=str(data.get("option") or "B"),
            attacks_remaining=_int(data.get("attacks_remaining"), 0),
        )


@dataclass
class SelectTarget:
    kind: ClassVar[str] = "select_target"
    option: str = "B"
    attacks_remaining: int = 0
    attacker: Position = field(default_factory=lambda: Position(0, 0))
    # Attackable enemy cells around the attacker, snapshotted at selection
    targets: list[Position] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "option": self.option,
            "attacks_remaining": self.attacks_remaining,
            "attacker": self.attacker.to_dict(),
            "targets": [t.to_dict() for t in self.targets],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SelectTarget":
        targets = data.get("targets")
        return cls(
            option=str(data.get("option") or "B"),
            attacks_remaining=_int(data.get("attacks_remaining"), 0),
            attacker=Position.from_dict(data.get("attacker")),
            targets=[Position.from_dict(t) for t in (targets if isinstance(targets, list) else []) if isinstance(t, dict)],
        )


@dataclass
class Combat:
    """Attacker and target chosen; the next roll resolves the fight."""
    kind: ClassVar[str] = "combat"
    option: str = "B"
    attacks_remaining: int = 0
    attacker: Position = field(default_factory=lambda: Position(0, 0))
    target: Position = field(default_factory=lambda: Position(0, 0))

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "option": self.option,
            "attacks_remaining": self.attacks_remaining,
            "attacker": self.attacker.to_dict(),
            "target": self.target.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Combat":
        return cls(
            option=str(data.get("option") or "B"),
            attacks_remaining=_int(data.get("attacks_remaining"), 0),
            attacker=Position.from_dict(data.get("attacker")),
            target=Position.from_dict(data.get("target")),
        )


@dataclass
class GameOver:
    kind: ClassVar[str] = "game_over"
    winner: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "winner": self.winner}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GameOver":
        winner = data.get("winner")
        return cls(winner=str(winner) if winner is not None else None)


Phase = Union[TurnOrderRoll, SelectOption, Waiting, Placing, SelectAttacker, SelectTarget, Combat, GameOver]

PHASE_TYPES: dict[str, type] = {
    p.kind: p
    for p in (TurnOrderRoll, SelectOption, Waiting, Placing, SelectAttacker, SelectTarget, Combat, GameOver)
}

# Phases in which the current player is taking their turn
IN_TURN_PHASES = (SelectOption, Waiting, Placing, SelectAttacker, SelectTarget, Combat)


def phase_from_dict(data: Any) -> Phase:
    """Parse a phase; unknown or missing data falls back to the turn-order roll."""
    if not isinstance(data, dict):
        return TurnOrderRoll()
    phase_cls = PHASE_TYPES.get(data.get("kind"))
    if phase_cls is None:
        return TurnOrderRoll()
    return phase_cls.from_dict(data)


@dataclass
class GameState:
    """Complete game state."""
    game_id: str
    status: str  # "waiting", "playing", "finished"
    map_type: str  # "flat", "river", "mountain", "bridge"
    grid_width: int
    grid_height: int
    grid: Grid
    players: dict[str, PlayerState]  # player_id -> PlayerState, never shrinks
    # Living player ids in play order; eliminated players are removed
    turn_order: list[str] = field(default_factory=list)
    current_player_index: int = 0
    current_turn: int = 1
    turn_timer_seconds: int = 10
    rebels: RebelState | None = None
    chests: list[ChestState] = field(default_factory=list)
    rebel_spawn_countdown: int = 10
    winner: str | None = None
    phase: Phase = field(default_factory=TurnOrderRoll)

    def copy(self) -> "GameState":
        """Return a deep copy of this game state."""
        return deepcopy(self)

    @property
    def current_player_id(self) -> str | None:
        if not self.turn_order:
            return None
        return self.turn_order[self.current_player_index % len(self.turn_order)]

    def cell(self, x: int, y: int) -> GridCell:
        return self.grid[y][x]

    # ===== Serialization Methods =====

    def to_dict(self) -> dict[str, Any]:
        """Convert GameState to a dictionary for JSON serialization."""
        return {
            "game_id": self.game_id,
            "status": self.status,
            "map_type": self.map_type,
            "grid_width": self.grid_width,
            "grid_height": self.grid_height,
            "turn_timer_seconds": self.turn_timer_seconds,
            "current_turn": self.current_turn,
            "current_player_index": self.current_player_index,
            "turn_order": list(self.turn_order),
            "grid": [[c.to_dict() for c in row] for row in self.grid],
            "players": {pid: p.to_dict() for pid, p in self.players.items()},
            "rebels": self.rebels.to_dict() if self.rebels else None,
            "chests": [c.to_dict() for c in self.chests],
            "rebel_spawn_countdown": self.rebel_spawn_countdown,
            "winner": self.winner,
            "phase": self.phase.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GameState":
        """Create GameState from a dictionary (handles missing/None for older saves)."""
        grid_data = data.get("grid") or []
        if not isinstance(grid_data, list):
            grid_data = []
        players_data = data.get("players") or {}
        if not isinstance(players_data, dict):
            players_data = {}
        chests_data = data.get("chests") or []
        if not isinstance(chests_data, list):
            chests_data = []
        grid = [
            [GridCell.from_dict(c) for c in row if isinstance(c, dict)]
            for row in grid_data
            if isinstance(row, list)
        ]
        width = _int(data.get("grid_width"), len(grid[0]) if grid else 0)
        height = _int(data.get("grid_height"), len(grid))
        winner = data.get("winner")
        return cls(
            game_id=str(data.get("game_id") or ""),
            status=str(data.get("status") or "playing"),
            map_type=str(data.get("map_type") or "flat"),
            grid_width=width,
            grid_height=height,
            grid=grid,
            players={
                str(pid): PlayerState.from_dict(p)
                for pid, p in players_data.items()
                if isinstance(p, dict)
            },
            turn_order=_ensure_str_list(data.get("turn_order")),
            current_player_index=_int(data.get("current_player_index"), 0),
            current_turn=_int(data.get("current_turn"), 1),
            turn_timer_seconds=_int(data.get("turn_timer_seconds"), 10),
            rebels=RebelState.from_dict(data["rebels"]) if isinstance(data.get("rebels"), dict) else None,
            chests=[ChestState.from_dict(c) for c in chests_data if isinstance(c, dict)],
            rebel_spawn_countdown=_int(data.get("rebel_spawn_countdown"), 10),
            winner=str(winner) if winner is not None else None,
            phase=phase_from_dict(data.get("phase")),
        )

    def to_json(self, indent: int = 2) -> str:
        """Serialize GameState to a JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, json_str: str) -> "GameState":
        """Deserialize GameState from a JSON string."""
        return cls.from_dict(json.loads(json_str))

    def save(self, filepath: str) -> None:
        """Save GameState to a JSON file."""
        with open(filepath, "w") as f:
            f.write(self.to_json())

    @classmethod
    def load(cls, filepath: str) -> "GameState":
        """Load GameState from a JSON file."""
        with open(filepath, "r") as f:
            return cls.from_json(f.read())
