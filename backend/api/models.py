"""
SQLAlchemy models for accounts and games.
"""

from datetime import datetime
from sqlalchemy import BigInteger, Column, Integer, String, DateTime, Text, ForeignKey

from .database import Base


class Player(Base):
    """A registered account. Distinct from the in-game seats (player1..player4)."""
    __tablename__ = "players"

    id = Column(String(36), primary_key=True)  # uuid
    email = Column(String(255), unique=True, nullable=False, index=True)
    username = Column(String(64), unique=True, nullable=False, index=True)  # display name, no spaces/special
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class Game(Base):
    __tablename__ = "games"

    id = Column(String(36), primary_key=True)  # uuid
    name = Column(String(128), nullable=False)  # user-defined game name
    game_code = Column(String(8), unique=True, nullable=True, index=True)  # 4-char alphanumeric for multiplayer; null for hot-seat
    created_at = Column(DateTime, default=datetime.utcnow)
    created_by = Column(String(36), ForeignKey("players.id"), nullable=True)  # creator player_id
    status = Column(String(32), nullable=False, default="lobby")  # lobby | active | finished
    player_count = Column(Integer, nullable=False, default=2)
    game_state = Column(Text, nullable=False)  # JSON string of full game state
    seats = Column(Text, nullable=False)  # JSON array of { "player_id": str, "seat_id": "player1".."player4" }
    action_log = Column(Text, nullable=True)  # JSON array of applied actions, for replay
    initial_state = Column(Text, nullable=True)  # JSON snapshot at creation; replay starts here
    rng_seed = Column(BigInteger, nullable=False, default=0)  # seeds this game's dice
    rng_draws = Column(Integer, nullable=False, default=0)  # dice already drawn from the seeded stream
