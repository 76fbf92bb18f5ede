"""
Engine error types.
"""


class InvariantViolation(AssertionError):
    """
    Raised when a caller breaks the engine's protocol, e.g. eliminating a
    player that is no longer in the turn order. Signals a programming error;
    never caught inside the engine.
    """
