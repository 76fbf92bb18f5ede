"""
Main entry point for the Dice Dominion rules engine.
Demonstrates core functionality with a simple simulated game between bots.
"""

import sys

from backend.engine.actions import (
    Action,
    end_turn,
    place_at,
    roll_dice,
    select_attacker,
    select_option,
    select_target,
)
from backend.engine.factory import create_initial_game_state
from backend.engine.queries import get_acting_player, get_attack_sources, get_bridge_sites, get_valid_placements
from backend.engine.reducer import apply_action
from backend.engine.state import GameState
from backend.engine.utils import make_rng, print_game_state

MAX_ACTIONS = 5000


def choose_action(state: GameState, player_id: str) -> Action:
    """
    Greedy bot: attack whenever possible (castles first), otherwise expand
    towards the nearest enemy castle.
    """
    phase = state.phase
    if phase.kind in ("turn_order_roll", "waiting", "combat"):
        return roll_dice(player_id)

    if phase.kind == "select_option":
        return select_option(player_id, "C" if get_attack_sources(state, player_id) else "A")

    if phase.kind == "select_attacker":
        sources = get_attack_sources(state, player_id)
        if not sources:
            return end_turn(player_id)
        return select_attacker(player_id, sources[0]["x"], sources[0]["y"])

    if phase.kind == "select_target":
        castles = [t for t in phase.targets if state.cell(t.x, t.y).is_castle]
        target = (castles or phase.targets)[0]
        return select_target(player_id, target.x, target.y)

    if phase.kind == "placing":
        cells = get_valid_placements(state, player_id) or get_bridge_sites(state, player_id)
        if not cells:
            return end_turn(player_id)
        enemies = [p.castle_position for pid, p in state.players.items() if pid != player_id and p.is_alive]

        def distance(c):
            return min(abs(c["x"] - e.x) + abs(c["y"] - e.y) for e in enemies) if enemies else 0

        best = min(cells, key=distance)
        return place_at(player_id, best["x"], best["y"])

    return end_turn(player_id)


def main(seed: int = 7, player_count: int = 2, map_type: str = "flat"):
    print("Dice Dominion Rules Engine - bot demo")
    print("=" * 60)

    rng = make_rng(seed)
    _, state = create_initial_game_state(player_count, map_type, game_id=f"demo-{seed}")

    print("\n[INITIAL STATE]")
    print_game_state(state)

    last_turn = state.current_turn
    for _ in range(MAX_ACTIONS):
        if state.winner:
            break
        player_id = get_acting_player(state)
        state, events = apply_action(state, choose_action(state, player_id), rng)

        for e in events:
            if e.type == "turn_order_finalized":
                print(f"\nTurn order: {' -> '.join(e.payload['turn_order'])} (rolls {e.payload['rolls']})")
            elif e.type in ("chest_collected", "castle_damaged", "player_eliminated", "rebel_spawned"):
                print(f"  [turn {state.current_turn}] {e.type}: {e.payload}")
            elif e.type == "action_rejected":
                print(f"  bot made an illegal move: {e.payload['reason']}")

        if state.current_turn != last_turn and state.current_turn % 10 == 0:
            last_turn = state.current_turn
            print(f"\n[TURN {state.current_turn}]")
            print_game_state(state)

    print("\n[FINAL STATE]")
    print_game_state(state)
    if state.winner:
        print(f"\n{state.players[state.winner].display_name} wins on turn {state.current_turn}!")
    else:
        print(f"\nNo winner after {MAX_ACTIONS} actions.")


if __name__ == "__main__":
    args = sys.argv[1:]
    main(
        seed=int(args[0]) if len(args) > 0 else 7,
        player_count=int(args[1]) if len(args) > 1 else 2,
        map_type=args[2] if len(args) > 2 else "flat",
    )
