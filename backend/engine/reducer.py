"""
Main game reducer.
Applies actions to state, enforcing rules and producing new state.
Returns (new_state, events) where events describe what happened.

Illegal actions never raise: the original state comes back untouched with a
single action_rejected event explaining why.
"""

import logging

from backend.config import (
    CASTLE_REGEN_TURNS,
    CHEST_MIN_CASTLE_DISTANCE,
    INITIAL_CHEST_COUNT,
    REBEL_MIN_CASTLE_DISTANCE,
    REBEL_SPAWN_INTERVAL,
)
from backend.engine import TURN_OPTION_ATTACKS
from backend.engine.actions import Action
from backend.engine.bonuses import (
    any_active_bonus,
    bridge_uses_remaining,
    decrement_bonuses,
    find_chest_spawn_position,
    has_active_bonus,
    spawn_chests,
)
from backend.engine.combat import apply_combat_result, determine_next_phase_after_combat, roll_combat
from backend.engine.events import (
    GameEvent,
    action_rejected,
    attacker_selected,
    bridge_built,
    castle_damaged,
    castle_regenerated,
    chest_collected,
    chest_spawned,
    combat_resolved,
    option_auto_selected,
    option_selected,
    placement_rolled,
    player_eliminated,
    rebel_spawned,
    selection_cancelled,
    target_selected,
    turn_ended,
    turn_order_finalized,
    turn_order_rolled,
    turn_started,
    unit_captured,
    unit_destroyed,
    unit_placed,
    victory,
)
from backend.engine.grid import calculate_bridge_sites, calculate_valid_placements, in_bounds
from backend.engine.placement import build_bridge, calculate_placement_points, place_unit
from backend.engine.players import check_victory, regenerate_castle
from backend.engine.state import (
    REBEL,
    Combat,
    GameOver,
    GameState,
    Placing,
    PlayerOwner,
    Position,
    RebelOwner,
    RebelState,
    SelectAttacker,
    SelectOption,
    SelectTarget,
    TurnOrderRoll,
    Waiting,
)
from backend.engine.turns import (
    advance_to_next_player,
    calculate_attack_sources,
    calculate_attackable_enemies,
    finalize_turn_order,
    player_has_attack_options,
    select_turn_option,
)
from backend.engine.utils import Rng, roll_die

logger = logging.getLogger(__name__)


# Phase rules: which action types are allowed in which phases.
# end_turn is accepted in every in-turn phase so the turn timer can always fire.
PHASE_ALLOWED_ACTIONS = {
    TurnOrderRoll.kind: ["roll_dice"],
    SelectOption.kind: ["select_option", "end_turn"],
    Waiting.kind: ["roll_dice", "end_turn"],
    Placing.kind: ["place_at", "end_turn"],
    SelectAttacker.kind: ["select_attacker", "end_turn"],
    SelectTarget.kind: ["select_attacker", "select_target", "cancel", "end_turn"],
    Combat.kind: ["roll_dice", "cancel", "end_turn"],
    GameOver.kind: [],
}


def next_turn_order_roller(state: GameState) -> str | None:
    """Next player to roll for turn order (creation order), or None outside that phase."""
    phase = state.phase
    if not isinstance(phase, TurnOrderRoll):
        return None
    for player_id in state.turn_order:
        if player_id not in phase.rolls:
            return player_id
    return None


def placement_targets(state: GameState, player_id: str) -> set[Position]:
    """Cells a place_at may target: the frontier, plus bridgeable river while bridge uses remain."""
    targets = calculate_valid_placements(state.grid, player_id)
    if bridge_uses_remaining(state.players[player_id]) > 0:
        targets |= calculate_bridge_sites(state.grid, player_id)
    return targets


def _payload_position(action: Action) -> Position | None:
    try:
        return Position(int(action.payload["x"]), int(action.payload["y"]))
    except (KeyError, TypeError, ValueError):
        return None


def get_rejection_reason(state: GameState, action: Action) -> str | None:
    """
    Why an action cannot be applied right now, or None if it is legal.

    Checks, in order: game over, acting player, phase, then the payload
    (coordinates, option letter, frontier/target membership).
    """
    phase = state.phase
    if state.status == "finished" or isinstance(phase, GameOver):
        return f"Game is over. {state.winner} has won."

    if isinstance(phase, TurnOrderRoll):
        expected = next_turn_order_roller(state)
    else:
        expected = state.current_player_id
    if action.player != expected:
        return f"Action player {action.player} does not match current player {expected}"

    allowed = PHASE_ALLOWED_ACTIONS.get(phase.kind, [])
    if action.type not in allowed:
        return (
            f"Action '{action.type}' is not allowed in phase '{phase.kind}'. "
            f"Allowed actions: {', '.join(allowed)}"
        )

    if action.type == "select_option":
        option = action.payload.get("option")
        if option not in TURN_OPTION_ATTACKS:
            return f"Unknown option '{option}'. Choose A, B or C."
        return None

    if action.type not in ("place_at", "select_attacker", "select_target"):
        return None

    pos = _payload_position(action)
    if pos is None or not in_bounds(state.grid, pos.x, pos.y):
        return f"Invalid coordinates: {action.payload}"

    if action.type == "place_at":
        if pos not in placement_targets(state, action.player):
            return f"Cannot place at ({pos.x}, {pos.y}): must be a free cell next to your territory"

    elif action.type == "select_attacker":
        cell = state.grid[pos.y][pos.x]
        if cell.type != "unit" or not cell.is_owned_by(action.player):
            return f"({pos.x}, {pos.y}) is not one of your units"
        if not calculate_attackable_enemies(state.grid, pos, action.player):
            return f"Unit at ({pos.x}, {pos.y}) has no adjacent enemies"

    elif action.type == "select_target":
        if pos not in phase.targets:
            return f"({pos.x}, {pos.y}) is not attackable from ({phase.attacker.x}, {phase.attacker.y})"

    return None


def apply_action(
    state: GameState,
    action: Action,
    rng: Rng,
) -> tuple[GameState, list[GameEvent]]:
    """
    Apply a single action to the current state, returning new state and events.

    Args:
        state: Current game state (never mutated)
        action: Action to apply
        rng: Injected randomness for dice and spawns, () -> float in [0, 1)

    Returns:
        Tuple of (new_state, events) where events describe what happened
    """
    reason = get_rejection_reason(state, action)
    if reason is not None:
        logger.info("Rejected %s from %s: %s", action.type, action.player, reason)
        return state, [action_rejected(action.type, action.player, reason)]

    logger.debug("Applying %s from %s in phase %s", action.type, action.player, state.phase.kind)
    new_state = state.copy()
    phase = new_state.phase

    if action.type == "roll_dice":
        if isinstance(phase, TurnOrderRoll):
            return _handle_turn_order_roll(new_state, action, rng)
        if isinstance(phase, Waiting):
            return _handle_placement_roll(new_state, action, rng)
        return _handle_combat_roll(new_state, action, rng)

    if action.type == "select_option":
        return _handle_select_option(new_state, action, rng)
    if action.type == "place_at":
        return _handle_place_at(new_state, action, rng)
    if action.type == "select_attacker":
        return _handle_select_attacker(new_state, action)
    if action.type == "select_target":
        return _handle_select_target(new_state, action)
    if action.type == "cancel":
        return _handle_cancel(new_state, action)
    if action.type == "end_turn":
        return new_state, _end_turn(new_state, rng, "voluntary")

    raise ValueError(f"Unknown action type: {action.type}")


# ===== Turn lifecycle =====

def _start_turn(state: GameState) -> list[GameEvent]:
    """
    Begin the current player's turn: castle regen, then the option screen.
    With no enemy in reach the option screen is skipped and A is chosen.
    """
    events: list[GameEvent] = []
    player_id = state.current_player_id
    player = state.players[player_id]

    if regenerate_castle(player, state.current_turn, CASTLE_REGEN_TURNS):
        events.append(castle_regenerated(player_id, player.castle_hp))

    events.append(turn_started(state.current_turn, player_id))

    if player_has_attack_options(state.grid, player_id):
        state.phase = SelectOption()
    else:
        state.phase = Waiting(option="A")
        events.append(option_auto_selected(player_id, "A", "no_enemies_in_reach"))
    return events


def _end_turn(state: GameState, rng: Rng, reason: str) -> list[GameEvent]:
    """Expire the ending player's bonuses, pass play on and start the next turn."""
    player_id = state.current_player_id
    events = [turn_ended(state.current_turn, player_id, reason)]
    decrement_bonuses(state.players[player_id])

    next_index, new_turn = advance_to_next_player(
        state.current_player_index, len(state.turn_order), state.current_turn
    )
    state.current_player_index = next_index
    state.current_turn = new_turn
    if next_index == 0:
        events.extend(_tick_rebels(state, rng))

    events.extend(_start_turn(state))
    return events


def _tick_rebels(state: GameState, rng: Rng) -> list[GameEvent]:
    """Count down one round; on zero a rebel unit appears on an empty cell away from castles."""
    state.rebel_spawn_countdown -= 1
    if state.rebel_spawn_countdown > 0:
        return []
    state.rebel_spawn_countdown = REBEL_SPAWN_INTERVAL

    pos = find_chest_spawn_position(
        state.grid,
        state.players.values(),
        state.grid_width,
        state.grid_height,
        REBEL_MIN_CASTLE_DISTANCE,
        rng,
    )
    if pos is None:
        logger.debug("No room for a rebel unit this round")
        return []

    cell = state.grid[pos.y][pos.x]
    cell.type = "unit"
    cell.owner = REBEL
    if state.rebels is None:
        state.rebels = RebelState()
    state.rebels.units.append(pos)
    return [rebel_spawned(pos.x, pos.y)]


# ===== Handlers =====

def _handle_turn_order_roll(
    state: GameState,
    action: Action,
    rng: Rng,
) -> tuple[GameState, list[GameEvent]]:
    """Record one turn-order roll. After the last one, settle the order, drop chests and start play."""
    phase = state.phase
    roll = roll_die(rng)
    phase.rolls[action.player] = roll
    events = [turn_order_rolled(action.player, roll)]

    if next_turn_order_roller(state) is not None:
        return state, events

    state.turn_order = finalize_turn_order(list(phase.rolls.items()))
    state.current_player_index = 0
    events.append(turn_order_finalized(state.turn_order, phase.rolls))
    logger.info("Game %s turn order: %s", state.game_id, state.turn_order)

    for chest in spawn_chests(state, INITIAL_CHEST_COUNT, CHEST_MIN_CASTLE_DISTANCE, rng):
        events.append(chest_spawned(chest.x, chest.y, chest.bonus_type))

    events.extend(_start_turn(state))
    return state, events


def _handle_select_option(
    state: GameState,
    action: Action,
    rng: Rng,
) -> tuple[GameState, list[GameEvent]]:
    """
    A goes straight to the placement roll. B and C go to attacker selection;
    with no unit able to attack, B falls back to expanding and C ends the turn.
    """
    option = action.payload["option"]
    _, attacks = select_turn_option(option)
    events = [option_selected(action.player, option, attacks)]

    if attacks == 0:
        state.phase = Waiting(option=option)
    elif calculate_attack_sources(state.grid, action.player):
        state.phase = SelectAttacker(option=option, attacks_remaining=attacks)
    elif option == "B":
        state.phase = Waiting(option=option)
    else:
        events.extend(_end_turn(state, rng, "no_attack_available"))
    return state, events


def _handle_placement_roll(
    state: GameState,
    action: Action,
    rng: Rng,
) -> tuple[GameState, list[GameEvent]]:
    phase = state.phase
    player = state.players[action.player]
    dice_value = roll_die(rng)
    speed = has_active_bonus(player, "speed")
    points = calculate_placement_points(dice_value, speed)
    events = [placement_rolled(action.player, dice_value, points, speed)]

    state.phase = Placing(option=phase.option, dice_value=dice_value, placement_points=points)
    if not placement_targets(state, action.player):
        events.extend(_end_turn(state, rng, "no_valid_placements"))
    return state, events


def _handle_place_at(
    state: GameState,
    action: Action,
    rng: Rng,
) -> tuple[GameState, list[GameEvent]]:
    """
    Spend one placement point. River targets are bridged with a bridge use;
    anything else gets a unit (collecting a chest if there is one).
    """
    phase = state.phase
    pos = _payload_position(action)
    player = state.players[action.player]
    events: list[GameEvent] = []

    phase.placement_points -= 1
    if state.grid[pos.y][pos.x].type == "river":
        build_bridge(state.grid, player, pos.x, pos.y)
        events.append(bridge_built(action.player, pos.x, pos.y, bridge_uses_remaining(player)))
    else:
        result = place_unit(state.grid, state, pos.x, pos.y, action.player)
        events.append(unit_placed(action.player, pos.x, pos.y, phase.placement_points))
        if result["chest_collected"]:
            events.append(chest_collected(
                action.player, pos.x, pos.y, result["chest_bonus_type"], result["chest_bonus_name"]
            ))

    if phase.placement_points <= 0:
        events.extend(_end_turn(state, rng, "placement_complete"))
    elif not placement_targets(state, action.player):
        events.extend(_end_turn(state, rng, "no_valid_placements"))
    return state, events


def _handle_select_attacker(state: GameState, action: Action) -> tuple[GameState, list[GameEvent]]:
    phase = state.phase
    pos = _payload_position(action)
    targets = sorted(
        calculate_attackable_enemies(state.grid, pos, action.player),
        key=lambda p: (p.y, p.x),
    )
    state.phase = SelectTarget(
        option=phase.option,
        attacks_remaining=phase.attacks_remaining,
        attacker=pos,
        targets=targets,
    )
    return state, [attacker_selected(action.player, pos.x, pos.y, [t.to_dict() for t in targets])]


def _handle_select_target(state: GameState, action: Action) -> tuple[GameState, list[GameEvent]]:
    phase = state.phase
    pos = _payload_position(action)
    state.phase = Combat(
        option=phase.option,
        attacks_remaining=phase.attacks_remaining,
        attacker=phase.attacker,
        target=pos,
    )
    return state, [target_selected(action.player, phase.attacker.to_dict(), pos.to_dict())]


def _handle_cancel(state: GameState, action: Action) -> tuple[GameState, list[GameEvent]]:
    """Back to attacker selection. Nothing but the phase changes."""
    phase = state.phase
    state.phase = SelectAttacker(option=phase.option, attacks_remaining=phase.attacks_remaining)
    return state, [selection_cancelled(action.player)]


def _defender_has_defense_bonus(state: GameState, target: Position) -> bool:
    owner = state.grid[target.y][target.x].owner
    if isinstance(owner, PlayerOwner):
        return has_active_bonus(state.players[owner.player_id], "defense")
    if isinstance(owner, RebelOwner) and state.rebels is not None:
        return any_active_bonus(state.rebels.active_bonuses, "defense")
    return False


def _handle_combat_roll(
    state: GameState,
    action: Action,
    rng: Rng,
) -> tuple[GameState, list[GameEvent]]:
    """
    Resolve the selected fight, then route the turn:
    a loss ends it, a B win goes to the placement roll, a C win with an
    attack left and a target available returns to attacker selection.
    """
    phase = state.phase
    attacker_id = action.player
    attacker = state.players[attacker_id]
    events: list[GameEvent] = []

    result = roll_combat(
        rng,
        has_attack_bonus=has_active_bonus(attacker, "attack"),
        has_defense_bonus=_defender_has_defense_bonus(state, phase.target),
    )
    events.append(combat_resolved(attacker_id, phase.attacker.to_dict(), phase.target.to_dict(), result.to_dict()))

    outcome = apply_combat_result(
        state.grid, state, phase.attacker, phase.target, result.attacker_wins, attacker_id
    )
    if outcome.attacker_destroyed:
        events.append(unit_destroyed(attacker_id, phase.attacker.x, phase.attacker.y))
    if outcome.unit_captured:
        events.append(unit_captured(attacker_id, outcome.defender_id, phase.target.x, phase.target.y))
    if outcome.castle_damaged:
        events.append(castle_damaged(outcome.defender_id, attacker_id, outcome.new_castle_hp))
    if outcome.eliminated_player:
        events.append(player_eliminated(outcome.eliminated_player, attacker_id))
        winner = check_victory(state.turn_order)
        if winner is not None:
            state.winner = winner
            state.status = "finished"
            state.phase = GameOver(winner=winner)
            events.append(victory(winner, state.current_turn))
            logger.info("Game %s won by %s on turn %d", state.game_id, winner, state.current_turn)
            return state, events

    attacks_remaining = phase.attacks_remaining - 1
    next_phase = determine_next_phase_after_combat(
        result.attacker_wins,
        phase.option,
        attacks_remaining,
        bool(calculate_attack_sources(state.grid, attacker_id)),
    )

    if next_phase == "placing":
        state.phase = Waiting(option=phase.option)
    elif next_phase == "attacking":
        state.phase = SelectAttacker(option=phase.option, attacks_remaining=attacks_remaining)
    else:
        reason = "attacks_used" if result.attacker_wins else "combat_lost"
        events.extend(_end_turn(state, rng, reason))
    return state, events


def replay_from_actions(
    initial_state: GameState,
    actions: list[Action],
    rng: Rng,
) -> tuple[GameState, list[GameEvent]]:
    """
    Replay a series of actions from an initial state.
    Event sourcing: with the same rng seed the final state is reproduced exactly.

    Args:
        initial_state: Starting game state
        actions: List of actions to apply in sequence
        rng: The rng the original game used, from the same seed

    Returns:
        Tuple of (final_state, all_events) after all actions applied
    """
    current_state = initial_state.copy()
    all_events: list[GameEvent] = []

    for action in actions:
        current_state, events = apply_action(current_state, action, rng)
        all_events.extend(events)

    return current_state, all_events
