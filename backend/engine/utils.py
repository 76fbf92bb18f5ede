"""
Utility functions for the game engine.
"""

import math
import random
from collections.abc import Callable, Iterable

from backend.engine import DICE_SIDES
from backend.engine.state import GameState, PlayerOwner, RebelOwner

# Injected randomness: returns a float in [0, 1)
Rng = Callable[[], float]

_CELL_GLYPHS = {
    "empty": ".",
    "river": "~",
    "mountain": "^",
    "bridge": "=",
    "chest": "$",
}


def make_rng(seed: int | None = None) -> Rng:
    """A seeded generator's random(); same seed, same game."""
    return random.Random(seed).random


def scripted_rng(values: Iterable[float]) -> Rng:
    """
    Rng that returns the given values in order, then raises StopIteration.
    Handy for replaying exact dice sequences.
    """
    it = iter(values)
    return lambda: next(it)


def roll_die(rng: Rng, sides: int = DICE_SIDES) -> int:
    """1..sides from one rng draw."""
    return math.floor(rng() * sides) + 1


def die_face_value(face: int, sides: int = DICE_SIDES) -> float:
    """The rng value that makes roll_die return `face`. Used to script dice."""
    return (face - 0.5) / sides


def dice_rng(faces: Iterable[int]) -> Rng:
    """Scripted rng producing the given die faces."""
    return scripted_rng(die_face_value(f) for f in faces)


def _cell_glyph(state: GameState, x: int, y: int) -> str:
    cell = state.grid[y][x]
    if isinstance(cell.owner, RebelOwner):
        return "r"
    if isinstance(cell.owner, PlayerOwner):
        idx = list(state.players).index(cell.owner.player_id) + 1 if cell.owner.player_id in state.players else 0
        if cell.type == "castle":
            return "C" if idx == 0 else chr(ord("A") + idx - 1)
        if cell.type == "unit":
            return str(idx)
        return "+"
    return _CELL_GLYPHS.get(cell.type, "?")


def render_board(state: GameState) -> str:
    """
    ASCII board. Castles are A-D by player slot, units 1-4, captured ground +,
    rebels r, chests $, river ~, bridges =, mountains ^.
    """
    header = "   " + "".join(str(x % 10) for x in range(state.grid_width))
    lines = [header]
    for y in range(state.grid_height):
        row = "".join(_cell_glyph(state, x, y) for x in range(state.grid_width))
        lines.append(f"{y:2d} {row}")
    return "\n".join(lines)


def print_game_state(state: GameState, show_board: bool = True):
    """
    Pretty-print the current game state.

    Args:
        state: Current game state
        show_board: If True, draw the ASCII board under the player summary
    """
    current = state.current_player_id or "-"
    print(f"\n{'='*60}")
    print(f"Turn {state.current_turn} | Player: {current} | Phase: {state.phase.kind} | Status: {state.status}")
    print(f"{'='*60}")

    for pid, player in state.players.items():
        status = "alive" if player.is_alive else "eliminated"
        bonuses = ", ".join(
            f"{b.type}({b.uses_remaining} uses)" if b.type == "bridge" else f"{b.type}({b.turns_remaining}t)"
            for b in player.active_bonuses
        ) or "none"
        print(
            f"{player.display_name} [{pid}, {player.color}] {status} | "
            f"castle {player.castle_hp}/{player.castle_max_hp} | units {player.unit_count} | bonuses: {bonuses}"
        )

    if state.rebels and state.rebels.units:
        print(f"Rebels: {len(state.rebels.units)} unit(s)")
    open_chests = [c for c in state.chests if not c.is_collected]
    if open_chests:
        print("Chests: " + ", ".join(f"({c.x},{c.y}) {c.bonus_type}" for c in open_chests))
    if state.winner:
        print(f"Winner: {state.winner}")

    if show_board:
        print()
        print(render_board(state))
