"""
Dice Dominion rules engine
Grid territory conquest with dice combat, bonus chests and castle sieges.
No web framework, database, or UI; randomness is always injected by the caller.
"""

DICE_SIDES = 6

CASTLE_MAX_HP = 4
CASTLE_SIZE = 2

# Bonus lifetimes. Bridge bonuses expire by uses, not by turns.
BONUS_DURATION_TURNS = 3
BRIDGE_BONUS_TURNS = 99
BRIDGE_BONUS_USES = 2
SPEED_BONUS_POINTS = 2

CHEST_SPAWN_ATTEMPTS = 100

# Option -> attacks granted. A is expand only.
TURN_OPTION_ATTACKS = {"A": 0, "B": 1, "C": 2}
