"""
Combat resolution.
One attacker die against one defender die, +1 for an attack or defense
bonus. Ties go to the defender.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Any

from backend.engine.grid import castle_cells
from backend.engine.players import eliminate_player
from backend.engine.state import GameState, Grid, PlayerOwner, Position, RebelOwner
from backend.engine.utils import Rng, roll_die

logger = logging.getLogger(__name__)


@dataclass
class CombatResult:
    """Dice arithmetic for one fight."""
    attacker_roll: int
    defender_roll: int
    attacker_bonus: int
    defender_bonus: int
    final_attacker: int
    final_defender: int
    is_tie: bool
    attacker_wins: bool

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CombatOutcome:
    """What applying a combat result did to the board. Fields stay at their defaults when not applicable."""
    castle_damaged: bool = False
    new_castle_hp: int | None = None
    eliminated_player: str | None = None
    unit_captured: bool = False
    attacker_destroyed: bool = False
    defender_id: str | None = None  # player id, "rebel", or None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def resolve_combat_rolls(
    attacker_roll: int,
    defender_roll: int,
    has_attack_bonus: bool,
    has_defense_bonus: bool,
) -> CombatResult:
    attacker_bonus = 1 if has_attack_bonus else 0
    defender_bonus = 1 if has_defense_bonus else 0
    final_attacker = attacker_roll + attacker_bonus
    final_defender = defender_roll + defender_bonus
    is_tie = final_attacker == final_defender
    return CombatResult(
        attacker_roll=attacker_roll,
        defender_roll=defender_roll,
        attacker_bonus=attacker_bonus,
        defender_bonus=defender_bonus,
        final_attacker=final_attacker,
        final_defender=final_defender,
        is_tie=is_tie,
        # Strictly greater: a tie is a defender win
        attacker_wins=final_attacker > final_defender,
    )


def roll_combat(rng: Rng, has_attack_bonus: bool, has_defense_bonus: bool) -> CombatResult:
    """Roll the attacker's die, then the defender's, and resolve."""
    attacker_roll = roll_die(rng)
    defender_roll = roll_die(rng)
    return resolve_combat_rolls(attacker_roll, defender_roll, has_attack_bonus, has_defense_bonus)


def apply_combat_result(
    grid: Grid,
    state: GameState,
    attacker_pos: Position,
    defender_pos: Position,
    attacker_wins: bool,
    attacking_player_id: str,
) -> CombatOutcome:
    """
    Apply a resolved fight to the board and player records.

    - Attacker loses: the attacking unit is removed. The defender is untouched.
    - Attacker wins against a unit: the cell changes hands (a rebel unit
      leaves state.rebels.units).
    - Attacker wins against a castle: the castle loses 1 HP and starts its
      regen timer if not already running. At 0 HP the owner is eliminated
      and the castle ground passes to the attacker.
    """
    attacker = state.players[attacking_player_id]

    if not attacker_wins:
        attacker_cell = grid[attacker_pos.y][attacker_pos.x]
        attacker_cell.clear()
        attacker.unit_count -= 1
        return CombatOutcome(attacker_destroyed=True)

    defender_cell = grid[defender_pos.y][defender_pos.x]
    defender_owner = defender_cell.owner
    outcome = CombatOutcome(defender_id=defender_cell.owner_id)

    if isinstance(defender_owner, RebelOwner):
        if state.rebels is not None and defender_pos in state.rebels.units:
            state.rebels.units.remove(defender_pos)
        defender_cell.owner = PlayerOwner(attacking_player_id)
        attacker.unit_count += 1
        outcome.unit_captured = True
        return outcome

    if not isinstance(defender_owner, PlayerOwner):
        raise ValueError(f"No defender at ({defender_pos.x}, {defender_pos.y})")

    defender = state.players[defender_owner.player_id]

    if defender_cell.is_castle:
        defender.castle_hp -= 1
        if defender.castle_first_damage_turn is None:
            defender.castle_first_damage_turn = state.current_turn
        outcome.castle_damaged = True
        outcome.new_castle_hp = defender.castle_hp
        logger.debug("Castle of %s hit, %d HP left", defender.id, defender.castle_hp)

        if defender.castle_hp <= 0:
            defender.castle_hp = 0
            castle_pos = defender.castle_position
            eliminate_player(grid, state, defender.id, castle_pos, state.grid_width, state.grid_height)
            for pos in castle_cells(castle_pos):
                captured = grid[pos.y][pos.x]
                captured.clear()
                captured.owner = PlayerOwner(attacking_player_id)
            outcome.eliminated_player = defender.id
        return outcome

    defender.unit_count -= 1
    defender_cell.owner = PlayerOwner(attacking_player_id)
    attacker.unit_count += 1
    outcome.unit_captured = True
    return outcome


def determine_next_phase_after_combat(
    attacker_won: bool,
    selected_option: str,
    attacks_remaining: int,
    has_more_targets: bool,
) -> str:
    """'done', 'placing' or 'attacking'. Option A never reaches combat."""
    if not attacker_won:
        return "done"
    if selected_option == "B":
        return "placing"
    if selected_option == "C" and attacks_remaining > 0 and has_more_targets:
        return "attacking"
    return "done"
