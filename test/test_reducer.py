"""
Reducer: phase machine, turn flow, rejections and replay.
"""

import pytest

from backend.engine.actions import (
    Action,
    cancel,
    end_turn,
    place_at,
    roll_dice,
    select_attacker,
    select_option,
    select_target,
)
from backend.engine.factory import create_initial_game_state
from backend.engine.grid import castle_cells
from backend.engine.queries import get_acting_player
from backend.engine.reducer import apply_action, replay_from_actions
from backend.engine.state import (
    ActiveBonus,
    Combat,
    GameOver,
    Placing,
    Position,
    SelectAttacker,
    SelectOption,
    SelectTarget,
    Waiting,
)
from backend.engine.utils import make_rng, scripted_rng
from conftest import GameStateBuilder, assert_unit_counts_consistent
from main import choose_action


def event_types(events):
    return [e.type for e in events]


def find_event(events, event_type):
    return next(e for e in events if e.type == event_type)


def skirmish(**extra):
    """p1 unit at (5,5) facing a p2 unit at (6,5); p1 to choose an option."""
    b = (
        GameStateBuilder(10, 10)
        .with_player("p1", 0, 0)
        .with_player("p2", 8, 8)
        .with_unit_at(5, 5, "p1")
        .with_unit_at(6, 5, "p2")
    )
    for name, args in extra.items():
        getattr(b, name)(*args)
    return b.build()


def fight(state, dice_rng, option="C", target=(6, 5), attacker=(5, 5)):
    """Drive option -> attacker -> target -> roll."""
    state, _ = apply_action(state, select_option("p1", option), dice_rng)
    state, _ = apply_action(state, select_attacker("p1", *attacker), dice_rng)
    state, _ = apply_action(state, select_target("p1", *target), dice_rng)
    return apply_action(state, roll_dice("p1"), dice_rng)


class TestSetupFlow:
    @pytest.fixture(autouse=True)
    def no_initial_chests(self, monkeypatch):
        monkeypatch.setattr("backend.engine.reducer.INITIAL_CHEST_COUNT", 0)

    def test_turn_order_then_first_expansion(self, dice):
        _, state = create_initial_game_state(2, "flat", game_id="flow")

        same, events = apply_action(state, roll_dice("player2"), dice())
        assert same is state
        assert event_types(events) == ["action_rejected"]

        state, events = apply_action(state, roll_dice("player1"), dice(2))
        assert event_types(events) == ["turn_order_rolled"]
        state, events = apply_action(state, roll_dice("player2"), dice(5))
        assert state.turn_order == ["player2", "player1"]
        assert state.current_player_id == "player2"
        assert "turn_order_finalized" in event_types(events)
        auto = find_event(events, "option_auto_selected")
        assert auto.payload["option"] == "A"
        assert state.phase == Waiting(option="A")

        state, events = apply_action(state, roll_dice("player2"), dice(3))
        assert state.phase == Placing(option="A", dice_value=3, placement_points=3)

        same, events = apply_action(state, place_at("player2", 5, 5), dice())
        assert same is state
        assert event_types(events) == ["action_rejected"]

        for x in (14, 13):
            state, _ = apply_action(state, place_at("player2", x, 1), dice())
        assert state.phase.placement_points == 1
        state, events = apply_action(state, place_at("player2", 12, 1), dice())

        assert find_event(events, "turn_ended").payload["reason"] == "placement_complete"
        assert state.players["player2"].unit_count == 3
        assert all(state.cell(x, 1).owner_id == "player2" for x in (12, 13, 14))
        assert state.current_player_id == "player1"
        assert state.current_turn == 1
        assert state.phase == Waiting(option="A")
        assert_unit_counts_consistent(state)

        state, events = apply_action(state, end_turn("player1"), dice())
        assert state.current_player_id == "player2"
        assert state.current_turn == 2
        assert state.rebel_spawn_countdown == 9

    def test_chests_spawn_after_turn_order(self, monkeypatch):
        monkeypatch.setattr("backend.engine.reducer.INITIAL_CHEST_COUNT", 3)
        _, state = create_initial_game_state(2, "flat", game_id="chests")
        rng = make_rng(11)
        state, _ = apply_action(state, roll_dice("player1"), rng)
        state, events = apply_action(state, roll_dice("player2"), rng)
        spawned = [e for e in events if e.type == "chest_spawned"]
        assert len(spawned) == len(state.chests) == 3
        for chest in state.chests:
            assert state.cell(chest.x, chest.y).type == "chest"


class TestRejections:
    def test_wrong_player(self):
        state = skirmish()
        same, events = apply_action(state, select_option("p2", "A"), make_rng(1))
        assert same is state
        assert "p2" in events[0].payload["reason"]

    def test_wrong_phase(self):
        state = skirmish()
        same, events = apply_action(state, place_at("p1", 2, 0), make_rng(1))
        assert same is state
        assert "not allowed in phase 'select_option'" in events[0].payload["reason"]

    def test_unknown_option(self):
        state = skirmish()
        same, events = apply_action(state, select_option("p1", "Z"), make_rng(1))
        assert same is state
        assert event_types(events) == ["action_rejected"]

    def test_missing_coordinates(self):
        state = skirmish(with_phase=(Placing(option="A", dice_value=3, placement_points=3),))
        same, events = apply_action(state, Action("place_at", "p1", {}), make_rng(1))
        assert same is state
        assert "Invalid coordinates" in events[0].payload["reason"]

    def test_attacker_must_border_enemy(self):
        state = skirmish(with_unit_at=(2, 0, "p1"), with_phase=(SelectAttacker(option="C", attacks_remaining=2),))
        same, events = apply_action(state, select_attacker("p1", 2, 0), make_rng(1))
        assert same is state

    def test_target_must_be_listed(self, dice):
        state = skirmish()
        state, _ = apply_action(state, select_option("p1", "B"), dice())
        state, _ = apply_action(state, select_attacker("p1", 5, 5), dice())
        same, events = apply_action(state, select_target("p1", 5, 6), dice())
        assert same is state
        assert event_types(events) == ["action_rejected"]

    def test_rejection_does_not_mutate(self):
        state = skirmish()
        before = state.to_dict()
        apply_action(state, roll_dice("p1"), make_rng(1))
        assert state.to_dict() == before


class TestAttackFlow:
    def test_selection_and_cancel(self, dice):
        state = skirmish()
        state, _ = apply_action(state, select_option("p1", "C"), dice())
        assert state.phase == SelectAttacker(option="C", attacks_remaining=2)
        snapshot = state.to_dict()

        state, events = apply_action(state, select_attacker("p1", 5, 5), dice())
        assert state.phase == SelectTarget(
            option="C", attacks_remaining=2, attacker=Position(5, 5), targets=[Position(6, 5)]
        )
        assert events[0].payload["targets"] == [{"x": 6, "y": 5}]

        state, events = apply_action(state, cancel("p1"), dice())
        assert event_types(events) == ["selection_cancelled"]
        assert state.to_dict() == snapshot

    def test_switching_attacker(self, dice):
        state = skirmish(with_unit_at=(3, 3, "p1"))
        state.cell(3, 4).type = "unit"
        state.cell(3, 4).owner = state.cell(6, 5).owner
        state.players["p2"].unit_count += 1

        state, _ = apply_action(state, select_option("p1", "C"), dice())
        state, _ = apply_action(state, select_attacker("p1", 5, 5), dice())
        state, _ = apply_action(state, select_attacker("p1", 3, 3), dice())
        assert state.phase.attacker == Position(3, 3)
        assert state.phase.targets == [Position(3, 4)]

    def test_cancel_from_combat(self, dice):
        state = skirmish(with_phase=(Combat(option="B", attacks_remaining=1, attacker=Position(5, 5), target=Position(6, 5)),))
        state, _ = apply_action(state, cancel("p1"), dice())
        assert state.phase == SelectAttacker(option="B", attacks_remaining=1)

    def test_win_captures_and_ends_turn_when_no_targets_left(self, dice):
        state, events = fight(skirmish(), dice(6, 1))
        assert state.cell(6, 5).owner_id == "p1"
        assert find_event(events, "unit_captured").payload["from_owner"] == "p2"
        assert find_event(events, "turn_ended").payload["reason"] == "attacks_used"
        assert state.current_player_id == "p2"
        assert state.players["p1"].unit_count == 2
        assert state.players["p2"].unit_count == 0
        assert_unit_counts_consistent(state)

    def test_option_c_continues_while_targets_remain(self, dice):
        state, _ = fight(skirmish(with_unit_at=(5, 6, "p2")), dice(6, 1))
        assert state.current_player_id == "p1"
        assert state.phase == SelectAttacker(option="C", attacks_remaining=1)

        state, events = fight_again(state, dice(6, 1), target=(5, 6))
        assert state.cell(5, 6).owner_id == "p1"
        assert find_event(events, "turn_ended").payload["reason"] == "attacks_used"
        assert_unit_counts_consistent(state)

    def test_option_b_win_goes_to_placement_roll(self, dice):
        state, _ = fight(skirmish(), dice(6, 1), option="B")
        assert state.current_player_id == "p1"
        assert state.phase == Waiting(option="B")

    def test_loss_destroys_attacker_and_ends_turn(self, dice):
        state, events = fight(skirmish(), dice(1, 6))
        assert state.cell(5, 5).type == "empty"
        assert state.cell(5, 5).owner is None
        assert find_event(events, "unit_destroyed").payload == {"owner": "p1", "x": 5, "y": 5}
        assert find_event(events, "turn_ended").payload["reason"] == "combat_lost"
        assert state.players["p1"].unit_count == 0
        assert state.current_player_id == "p2"

    def test_tie_is_a_loss(self, dice):
        state, events = fight(skirmish(), dice(3, 3))
        result = find_event(events, "combat_resolved").payload["result"]
        assert result["is_tie"]
        assert state.cell(5, 5).type == "empty"

    def test_attack_bonus_breaks_tie(self, dice):
        state, events = fight(skirmish(with_player_bonus=("p1", "attack")), dice(3, 3))
        assert find_event(events, "combat_resolved").payload["result"]["attacker_wins"]
        assert state.cell(6, 5).owner_id == "p1"

    def test_defense_bonus(self, dice):
        state, events = fight(skirmish(with_player_bonus=("p2", "defense")), dice(4, 3))
        result = find_event(events, "combat_resolved").payload["result"]
        assert result["final_defender"] == 4
        assert not result["attacker_wins"]

    def test_rebel_defense_bonus(self, dice):
        state = (
            GameStateBuilder(10, 10)
            .with_player("p1", 0, 0)
            .with_player("p2", 8, 8)
            .with_unit_at(5, 5, "p1")
            .with_rebel_at(6, 5)
            .build()
        )
        state.rebels.active_bonuses.append(ActiveBonus("defense", 3))
        state, events = fight(state, dice(4, 3))
        assert not find_event(events, "combat_resolved").payload["result"]["attacker_wins"]
        assert state.cell(6, 5).owner_id == "rebel"

    def test_option_c_without_attackers_ends_turn(self, dice):
        state = (
            GameStateBuilder(10, 10)
            .with_player("p1", 0, 0)
            .with_player("p2", 8, 8)
            .with_unit_at(2, 0, "p2")
            .build()
        )
        state, events = apply_action(state, select_option("p1", "C"), dice())
        assert find_event(events, "turn_ended").payload["reason"] == "no_attack_available"
        assert state.current_player_id == "p2"
        # p2's unit borders p1's castle, so p2 gets the option screen
        assert state.phase == SelectOption()

    def test_option_b_without_attackers_expands(self, dice):
        state = (
            GameStateBuilder(10, 10)
            .with_player("p1", 0, 0)
            .with_player("p2", 8, 8)
            .with_unit_at(2, 0, "p2")
            .build()
        )
        state, _ = apply_action(state, select_option("p1", "B"), dice())
        assert state.phase == Waiting(option="B")


def fight_again(state, dice_rng, target, attacker=(5, 5)):
    state, _ = apply_action(state, select_attacker("p1", *attacker), dice_rng)
    state, _ = apply_action(state, select_target("p1", *target), dice_rng)
    return apply_action(state, roll_dice("p1"), dice_rng)


class TestVictory:
    def test_destroying_last_castle_wins(self, dice):
        state = (
            GameStateBuilder(10, 10)
            .with_player("p1", 0, 0)
            .with_player("p2", 8, 8, castle_hp=1)
            .with_unit_at(7, 8, "p1")
            .with_unit_at(4, 9, "p2")
            .build()
        )
        state, events = fight(state, dice(6, 1), option="B", attacker=(7, 8), target=(8, 8))
        assert event_types(events)[-3:] == ["castle_damaged", "player_eliminated", "victory"]
        assert state.winner == "p1"
        assert state.status == "finished"
        assert state.phase == GameOver(winner="p1")
        assert state.turn_order == ["p1"]
        for pos in castle_cells(Position(8, 8)):
            assert state.cell(pos.x, pos.y).owner_id == "p1"
        assert_unit_counts_consistent(state)

        same, events = apply_action(state, roll_dice("p1"), dice())
        assert same is state
        assert "Game is over" in events[0].payload["reason"]

    def test_elimination_with_two_left_keeps_playing(self, dice):
        state = (
            GameStateBuilder(10, 10)
            .with_player("p1", 0, 0)
            .with_player("p2", 8, 8, castle_hp=1)
            .with_player("p3", 0, 8)
            .with_unit_at(7, 8, "p1")
            .with_unit_at(4, 9, "p2")
            .with_turn_order(["p2", "p1", "p3"])
            .with_current_player_index(1)
            .build()
        )
        state, events = fight(state, dice(6, 1), option="B", attacker=(7, 8), target=(8, 8))
        assert event_types(events)[-2:] == ["castle_damaged", "player_eliminated"]
        assert "victory" not in event_types(events)
        assert state.winner is None
        assert state.status == "playing"
        assert state.turn_order == ["p1", "p3"]
        assert state.current_player_id == "p1"
        assert not state.players["p2"].is_alive
        assert state.players["p2"].unit_count == 0
        assert state.cell(4, 9).type == "empty"
        assert state.phase == Waiting(option="B")
        assert_unit_counts_consistent(state)

        state, events = apply_action(state, end_turn("p1"), dice())
        assert state.current_player_id == "p3"

    def test_castle_damage_without_elimination(self, dice):
        state = (
            GameStateBuilder(10, 10)
            .with_player("p1", 0, 0)
            .with_player("p2", 8, 8)
            .with_unit_at(7, 8, "p1")
            .with_current_turn(2)
            .build()
        )
        state, events = fight(state, dice(6, 1), option="B", attacker=(7, 8), target=(8, 8))
        assert find_event(events, "castle_damaged").payload["new_hp"] == 3
        assert state.players["p2"].castle_first_damage_turn == 2
        assert state.cell(8, 8).is_castle
        # B win: expand next
        assert state.phase == Waiting(option="B")


class TestPlacement:
    def test_chest_pickup(self, dice):
        state = (
            GameStateBuilder(10, 10)
            .with_player("p1", 0, 0)
            .with_player("p2", 8, 8)
            .with_chest_at(2, 0, "speed")
            .with_phase(Placing(option="A", dice_value=2, placement_points=2))
            .build()
        )
        state, events = apply_action(state, place_at("p1", 2, 0), dice())
        collected = find_event(events, "chest_collected").payload
        assert collected["bonus_type"] == "speed"
        assert collected["bonus_name"] == "Speed Bonus"
        assert state.chests[0].is_collected
        assert state.cell(2, 0).type == "unit"
        assert state.players["p1"].active_bonuses[0].type == "speed"
        assert state.phase.placement_points == 1

    def test_speed_bonus_adds_points(self, dice):
        state = (
            GameStateBuilder(10, 10)
            .with_player("p1", 0, 0)
            .with_player("p2", 8, 8)
            .with_player_bonus("p1", "speed")
            .with_phase(Waiting(option="A"))
            .build()
        )
        state, events = apply_action(state, roll_dice("p1"), dice(3))
        assert state.phase == Placing(option="A", dice_value=3, placement_points=5)
        assert find_event(events, "placement_rolled").payload["speed_bonus"]

    def test_bridge_bonus_spans_river(self, dice):
        state = (
            GameStateBuilder(10, 10)
            .with_player("p1", 0, 0)
            .with_player("p2", 8, 8)
            .with_river_at(2, 0)
            .with_player_bonus("p1", "bridge", 99, 2)
            .with_phase(Placing(option="A", dice_value=2, placement_points=2))
            .build()
        )
        state, events = apply_action(state, place_at("p1", 2, 0), dice())
        assert find_event(events, "bridge_built").payload["uses_remaining"] == 1
        assert state.cell(2, 0).type == "bridge"
        assert state.cell(2, 0).owner is None
        assert state.players["p1"].unit_count == 0
        assert state.phase.placement_points == 1

    def test_river_without_bridge_bonus_is_rejected(self, dice):
        state = (
            GameStateBuilder(10, 10)
            .with_player("p1", 0, 0)
            .with_player("p2", 8, 8)
            .with_river_at(2, 0)
            .with_phase(Placing(option="A", dice_value=2, placement_points=2))
            .build()
        )
        same, events = apply_action(state, place_at("p1", 2, 0), dice())
        assert same is state

    def test_walled_in_player_forfeits_placement(self, dice):
        b = GameStateBuilder(10, 10).with_player("p1", 0, 0).with_player("p2", 8, 8)
        for x, y in ((2, 0), (2, 1), (0, 2), (1, 2)):
            b.with_river_at(x, y)
        state = b.with_phase(Waiting(option="A")).build()
        state, events = apply_action(state, roll_dice("p1"), dice(4))
        assert find_event(events, "turn_ended").payload["reason"] == "no_valid_placements"
        assert state.current_player_id == "p2"


class TestTurnLifecycle:
    def test_end_turn_expires_only_own_bonuses(self, dice):
        state = skirmish(with_player_bonus=("p1", "attack"))
        state.players["p2"].active_bonuses.append(ActiveBonus("defense", 3))
        state, events = apply_action(state, end_turn("p1"), dice())
        assert find_event(events, "turn_ended").payload["reason"] == "voluntary"
        assert state.players["p1"].active_bonuses[0].turns_remaining == 2
        assert state.players["p2"].active_bonuses[0].turns_remaining == 3

    def test_end_turn_mid_combat_discards_the_fight(self, dice):
        state = skirmish(with_phase=(Combat(option="C", attacks_remaining=2, attacker=Position(5, 5), target=Position(6, 5)),))
        state, _ = apply_action(state, end_turn("p1"), dice())
        assert state.current_player_id == "p2"
        assert state.cell(5, 5).owner_id == "p1"
        assert state.cell(6, 5).owner_id == "p2"
        # p2's unit still borders p1's
        assert state.phase == SelectOption()

    def test_castle_regenerates_at_turn_start(self, dice):
        state = (
            GameStateBuilder(10, 10)
            .with_player("p1", 0, 0)
            .with_player("p2", 8, 8)
            .with_castle_hp("p2", 3, 1)
            .with_current_turn(4)
            .build()
        )
        state, events = apply_action(state, end_turn("p1"), dice())
        assert find_event(events, "castle_regenerated").payload == {"player": "p2", "new_hp": 4}
        assert state.players["p2"].castle_hp == 4
        assert state.players["p2"].castle_first_damage_turn is None

    def test_rebel_spawns_when_countdown_runs_out(self):
        state = (
            GameStateBuilder(10, 10)
            .with_player("p1", 0, 0)
            .with_player("p2", 8, 8)
            .with_current_player_index(1)
            .with_current_turn(3)
            .build()
        )
        state.rebel_spawn_countdown = 1
        state, events = apply_action(state, end_turn("p2"), scripted_rng([0.45, 0.45]))
        assert find_event(events, "rebel_spawned").payload == {"x": 4, "y": 4}
        assert state.rebels.units == [Position(4, 4)]
        assert state.cell(4, 4).type == "unit"
        assert state.cell(4, 4).owner_id == "rebel"
        assert state.rebel_spawn_countdown == 10
        assert state.current_turn == 4
        assert state.current_player_id == "p1"
        assert_unit_counts_consistent(state)


def play_bot_game(seed, max_actions, check=None, player_count=2, map_type="flat"):
    rng = make_rng(seed)
    _, initial = create_initial_game_state(player_count, map_type, game_id=f"bots-{seed}")
    state = initial
    actions = []
    for _ in range(max_actions):
        if state.winner:
            break
        action = choose_action(state, get_acting_player(state))
        actions.append(action)
        state, events = apply_action(state, action, rng)
        if check:
            check(state, events)
    return initial, actions, state


class TestWholeGames:
    @pytest.mark.parametrize("seed, player_count, map_type", [
        (1, 2, "flat"),
        (2, 2, "flat"),
        (1, 3, "river"),
        (2, 3, "mountain"),
        (3, 4, "bridge"),
        (4, 4, "flat"),
    ])
    def test_invariants_hold_through_bot_play(self, seed, player_count, map_type):
        def check(state, events):
            assert "action_rejected" not in event_types(events)
            assert_unit_counts_consistent(state)
            assert 0 <= state.current_player_index < len(state.turn_order)
            for pid in state.turn_order:
                player = state.players[pid]
                assert player.is_alive
                assert 0 < player.castle_hp <= player.castle_max_hp
                for pos in castle_cells(player.castle_position):
                    cell = state.cell(pos.x, pos.y)
                    assert cell.is_castle and cell.owner_id == pid
            for chest in state.chests:
                if not chest.is_collected:
                    assert state.cell(chest.x, chest.y).type == "chest"

        play_bot_game(seed, 300, check, player_count, map_type)

    def test_replay_is_deterministic(self):
        initial, actions, final = play_bot_game(3, 200)
        replayed, _ = replay_from_actions(initial, actions, make_rng(3))
        assert replayed.to_dict() == final.to_dict()
