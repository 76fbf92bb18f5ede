"""
FastAPI backend for Dice Dominion.
Provides REST API endpoints for game state management and actions.

Each game is a stored GameState snapshot. Accounts hold seats (player1..player4);
only the account holding the seat whose move it is may send actions. Dice are
rolled server-side from a per-game seed, so the stored action log replays the game.
"""

import json
import logging
import random
import secrets
import string
import traceback
import uuid
from typing import Any

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from .database import get_db, init_db
from .models import Game as GameModel, Player
from .auth import (
    create_access_token,
    get_current_player,
    get_current_player_optional,
    hash_password,
    validate_username,
    verify_password,
)

from backend.config import DEFAULT_MAP_TYPE, DEFAULT_TURN_TIMER_SECONDS, LOG_LEVEL
from backend.engine.actions import Action
from backend.engine.events import ACTION_REJECTED
from backend.engine.factory import MAX_PLAYERS, MIN_PLAYERS, create_initial_game_state
from backend.engine.grid import MAP_TYPES
from backend.engine.queries import get_acting_player, get_game_summary, validate_action
from backend.engine.reducer import apply_action
from backend.engine.state import GameState

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Dice Dominion API",
    description="Backend API for Dice Dominion - a turn-based territory conquest dice game",
    version="1.0.0",
)

# CORS configuration for frontend
CORS_ORIGINS = ["http://localhost:5173", "http://localhost:5174", "http://localhost:3000"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
)


@app.middleware("http")
async def log_requests(request, call_next):
    """Log method and path so 500s can be traced to the failing endpoint."""
    method = getattr(request, "method", "?")
    url = getattr(request, "url", None)
    path = url.path if url else "?"
    try:
        response = await call_next(request)
        if response.status_code >= 500:
            logger.error("[500] %s %s", method, path)
        return response
    except Exception:
        logger.exception("[500] %s %s (exception)", method, path)
        raise


@app.exception_handler(Exception)
async def unhandled_exception_handler(request, exc):
    """Return 500 with CORS headers and full traceback so the frontend can read the error."""
    tb = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    logger.error("Unhandled error: %s\n%s", exc, tb)
    origin = request.headers.get("origin")
    allow_origin = origin if origin in CORS_ORIGINS else CORS_ORIGINS[0]
    return JSONResponse(
        status_code=500,
        content={"detail": str(exc), "traceback": tb},
        headers={
            "Access-Control-Allow-Origin": allow_origin,
            "Access-Control-Allow-Credentials": "true",
        },
    )


# Per-game dice seeds fit a signed 64-bit column
RNG_SEED_BITS = 63

# Alphanumeric for game codes (uppercase + digits)
GAME_CODE_CHARS = string.ascii_uppercase + string.digits
GAME_CODE_LENGTH = 4


# ===== Pydantic Models =====

class RegisterRequest(BaseModel):
    email: str
    username: str
    password: str


class LoginRequest(BaseModel):
    email: str
    password: str


class CreateGameRequest(BaseModel):
    name: str
    player_count: int = 2
    map_type: str = DEFAULT_MAP_TYPE
    turn_timer_seconds: int = DEFAULT_TURN_TIMER_SECONDS
    # Multiplayer games wait in the lobby; hot-seat games give every seat to the creator
    is_multiplayer: bool = False


class JoinGameRequest(BaseModel):
    game_code: str


class ActionRequest(BaseModel):
    type: str  # select_option | roll_dice | place_at | select_attacker | select_target | cancel | end_turn
    payload: dict[str, Any] = {}


# ===== Helper Functions =====

def generate_game_code(db: Session) -> str:
    """Generate a unique 4-char alphanumeric game code."""
    for _ in range(20):
        code = "".join(secrets.choice(GAME_CODE_CHARS) for _ in range(GAME_CODE_LENGTH))
        if db.query(GameModel).filter(GameModel.game_code == code).first() is None:
            return code
    raise HTTPException(status_code=500, detail="Could not generate unique game code")


def _load_json_list(raw: Any) -> list:
    try:
        value = json.loads(raw) if isinstance(raw, str) else raw
    except (TypeError, json.JSONDecodeError):
        return []
    return value if isinstance(value, list) else []


def _get_row(game_id: str, db: Session) -> GameModel:
    row = db.query(GameModel).filter(GameModel.id == game_id).first()
    if not row:
        raise HTTPException(status_code=404, detail=f"Game {game_id} not found")
    return row


def _seats_for(row: GameModel, player: Player | None) -> list[str]:
    """Seat ids (player1..player4) held by this account in the game."""
    if player is None:
        return []
    return [
        str(s.get("seat_id"))
        for s in _load_json_list(row.seats)
        if str(s.get("player_id")) == str(player.id) and s.get("seat_id")
    ]


def _player_can_act(row: GameModel, state: GameState, player: Player | None) -> bool:
    """True if the game is running and this account holds the seat that must act next."""
    if row.status != "active":
        return False
    acting = get_acting_player(state)
    return acting is not None and acting in _seats_for(row, player)


def _require_can_act(row: GameModel, state: GameState, player: Player) -> None:
    """Raise 403 if this account may not act now (not its seat's turn, or lobby not full)."""
    if row.status == "lobby":
        raise HTTPException(status_code=403, detail="Game has not started")
    if not _player_can_act(row, state, player):
        raise HTTPException(status_code=403, detail="Not your turn")


class GameDice:
    """
    Server-side dice for one game: its seeded stream, advanced past the
    draws earlier actions used. Counts the draws so the row can record them.
    """

    def __init__(self, seed: int, draws: int = 0):
        self._random = random.Random(seed)
        for _ in range(draws):
            self._random.random()
        self.draws = draws

    def __call__(self) -> float:
        self.draws += 1
        return self._random.random()


def get_game(game_id: str, db: Session) -> GameState:
    """Load the stored game state; raise 404 if missing or unreadable."""
    row = _get_row(game_id, db)
    try:
        raw = json.loads(row.game_state) if isinstance(row.game_state, str) else row.game_state
    except (TypeError, json.JSONDecodeError):
        logger.warning("Game %s has an unreadable snapshot", game_id)
        raise HTTPException(status_code=404, detail=f"Game {game_id} not found")
    if not isinstance(raw, dict):
        raise HTTPException(status_code=404, detail=f"Game {game_id} not found")
    return GameState.from_dict(raw)


def save_game(
    game_id: str,
    state: GameState,
    db: Session,
    action: Action | None = None,
    dice: GameDice | None = None,
) -> None:
    """Persist game state, the applied action and the dice position."""
    row = _get_row(game_id, db)
    row.game_state = json.dumps(state.to_dict())
    if action is not None:
        log = _load_json_list(row.action_log)
        log.append(action.to_dict())
        row.action_log = json.dumps(log)
    if dice is not None:
        row.rng_draws = dice.draws
    if state.status == "finished":
        row.status = "finished"
    db.commit()


def state_for_response(state: GameState) -> dict[str, Any]:
    """State dict plus the computed summary (acting player, legal targets, stats) for the UI."""
    out = state.to_dict()
    out["summary"] = get_game_summary(state)
    return out


@app.on_event("startup")
def on_startup():
    init_db()


# ===== API Endpoints =====

@app.get("/")
def root():
    return {"message": "Dice Dominion API", "version": "1.0.0"}


# ----- Auth -----

@app.post("/auth/register")
def register(request: RegisterRequest, db: Session = Depends(get_db)):
    """Register with email, username (unique, no spaces/special), and password."""
    if not validate_username(request.username):
        raise HTTPException(
            status_code=400,
            detail="Username must be 2-32 characters, letters numbers and underscore only",
        )
    if db.query(Player).filter(Player.email == request.email).first():
        raise HTTPException(status_code=400, detail="Email already registered")
    if db.query(Player).filter(Player.username == request.username).first():
        raise HTTPException(status_code=400, detail="Username already taken")
    player_id = str(uuid.uuid4())
    player = Player(
        id=player_id,
        email=request.email,
        username=request.username,
        password_hash=hash_password(request.password),
    )
    db.add(player)
    db.commit()
    logger.info("Registered %s", request.username)
    token = create_access_token(player_id)
    return {"access_token": token, "player": {"id": player_id, "email": player.email, "username": player.username}}


@app.post("/auth/login")
def login(request: LoginRequest, db: Session = Depends(get_db)):
    """Login with email and password."""
    player = db.query(Player).filter(Player.email == request.email).first()
    if not player or not verify_password(request.password, player.password_hash):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    token = create_access_token(player.id)
    return {"access_token": token, "player": {"id": player.id, "email": player.email, "username": player.username}}


@app.get("/auth/me")
def auth_me(player: Player = Depends(get_current_player)):
    """Return current player (email, username; password not included)."""
    return {"id": player.id, "email": player.email, "username": player.username}


# ----- Games (create, list, join) -----

@app.post("/games/create")
def create_game(
    request: CreateGameRequest,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
):
    """Create a new game (hot-seat or multiplayer). Returns game_id and game_code (if multiplayer)."""
    if not MIN_PLAYERS <= request.player_count <= MAX_PLAYERS:
        raise HTTPException(status_code=400, detail=f"player_count must be {MIN_PLAYERS}-{MAX_PLAYERS}")
    if request.map_type not in MAP_TYPES:
        raise HTTPException(status_code=400, detail=f"map_type must be one of: {', '.join(MAP_TYPES)}")

    game_id = str(uuid.uuid4())
    _, state = create_initial_game_state(
        request.player_count,
        request.map_type,
        game_id=game_id,
        turn_timer_seconds=request.turn_timer_seconds,
    )
    seat_ids = list(state.players)
    if request.is_multiplayer:
        seats = [{"player_id": str(player.id), "seat_id": seat_ids[0]}]
        status = "lobby"
        game_code = generate_game_code(db)
    else:
        seats = [{"player_id": str(player.id), "seat_id": sid} for sid in seat_ids]
        status = "active"
        game_code = None

    snapshot = json.dumps(state.to_dict())
    row = GameModel(
        id=game_id,
        name=request.name,
        game_code=game_code,
        created_by=player.id,
        status=status,
        player_count=request.player_count,
        game_state=snapshot,
        seats=json.dumps(seats),
        action_log=json.dumps([]),
        initial_state=snapshot,
        rng_seed=secrets.randbits(RNG_SEED_BITS),
        rng_draws=0,
    )
    db.add(row)
    db.commit()
    logger.info("Created game %s (%d players, %s map, %s)", game_id, request.player_count, request.map_type, status)
    return {"game_id": game_id, "game_code": game_code, "name": request.name, "status": status}


@app.get("/games")
def list_my_games(
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
):
    """List unfinished games the current player has a seat in, with whose move it is."""
    mine = []
    for row in db.query(GameModel).filter(GameModel.status != "finished").all():
        seats = _seats_for(row, player)
        if not seats:
            continue
        try:
            state = GameState.from_json(row.game_state)
        except (TypeError, json.JSONDecodeError):
            logger.warning("Skipping game %s with unreadable snapshot", row.id)
            continue
        mine.append({
            "id": str(row.id),
            "name": row.name,
            "game_code": row.game_code,
            "status": row.status,
            "created_at": row.created_at.isoformat() if row.created_at else None,
            "turn_number": state.current_turn,
            "phase": state.phase.kind,
            "acting_player": get_acting_player(state),
            "my_seats": seats,
            "can_act": _player_can_act(row, state, player),
        })
    return {"games": mine}


@app.post("/games/join")
def join_game(
    request: JoinGameRequest,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
):
    """Join a game by 4-char game code. Takes the next free seat; the game starts when all seats are taken."""
    code = request.game_code.strip().upper()
    if len(code) != GAME_CODE_LENGTH:
        raise HTTPException(status_code=400, detail="Game code must be 4 characters")
    row = db.query(GameModel).filter(GameModel.game_code == code).first()
    if not row:
        raise HTTPException(status_code=404, detail="Game not found")
    seats = _load_json_list(row.seats)
    if any(str(s.get("player_id")) == str(player.id) for s in seats):
        return {"game_id": row.id, "message": "Already in game"}
    if row.status != "lobby":
        raise HTTPException(status_code=400, detail="Game already started")

    taken = {s.get("seat_id") for s in seats}
    free = [f"player{i}" for i in range(1, row.player_count + 1) if f"player{i}" not in taken]
    seat_id = free[0]
    seats.append({"player_id": str(player.id), "seat_id": seat_id})
    row.seats = json.dumps(seats)
    if len(free) == 1:
        row.status = "active"
    db.commit()
    return {"game_id": row.id, "name": row.name, "seat_id": seat_id, "status": row.status}


@app.get("/games/{game_id}")
def get_game_state(
    game_id: str,
    db: Session = Depends(get_db),
    player: Player | None = Depends(get_current_player_optional),
):
    """Get current game state. can_act is true only if the authenticated account holds the acting seat."""
    row = _get_row(game_id, db)
    state = get_game(game_id, db)
    return {
        "game_id": game_id,
        "status": row.status,
        "state": state_for_response(state),
        "my_seats": _seats_for(row, player),
        "can_act": _player_can_act(row, state, player),
    }


@app.get("/games/{game_id}/meta")
def get_game_meta(game_id: str, db: Session = Depends(get_db)):
    """Get game metadata (name, status, seats) for lobby etc."""
    row = _get_row(game_id, db)
    return {
        "id": row.id,
        "name": row.name,
        "game_code": row.game_code,
        "status": row.status,
        "player_count": row.player_count,
        "created_at": row.created_at.isoformat() if row.created_at else None,
        "seats": _load_json_list(row.seats),
    }


@app.get("/games/{game_id}/actions")
def get_action_log(game_id: str, db: Session = Depends(get_db)):
    """
    Everything needed to replay the game: the creation snapshot, the dice seed
    and the applied actions in order. Folding the actions over the snapshot
    with random.Random(rng_seed).random reproduces the current state.
    """
    row = _get_row(game_id, db)
    initial = json.loads(row.initial_state) if row.initial_state else None
    return {
        "game_id": game_id,
        "initial_state": initial,
        "rng_seed": row.rng_seed,
        "actions": _load_json_list(row.action_log),
    }


@app.delete("/games/{game_id}")
def delete_game(
    game_id: str,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
):
    """Delete a game. Caller must hold a seat."""
    row = _get_row(game_id, db)
    if not _seats_for(row, player):
        raise HTTPException(status_code=403, detail="Not in this game")
    db.delete(row)
    db.commit()
    return {"message": f"Game {game_id} deleted"}


@app.get("/games/{game_id}/available-actions")
def get_available_actions(game_id: str, db: Session = Depends(get_db)):
    """What the acting player can do now: action types, frontier, attack sources and targets."""
    state = get_game(game_id, db)
    return get_game_summary(state)


@app.post("/games/{game_id}/actions")
def do_action(
    game_id: str,
    request: ActionRequest,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
):
    """
    Apply one intent as the acting seat. The server rolls any dice.
    400 with the reason if the intent is illegal in the current phase.
    """
    row = _get_row(game_id, db)
    state = get_game(game_id, db)
    _require_can_act(row, state, player)

    action = Action(type=request.type, player=get_acting_player(state), payload=request.payload)
    validation = validate_action(state, action)
    if not validation.valid:
        raise HTTPException(status_code=400, detail=validation.error)

    dice = GameDice(row.rng_seed or 0, row.rng_draws or 0)
    new_state, events = apply_action(state, action, dice)
    rejected = next((e for e in events if e.type == ACTION_REJECTED), None)
    if rejected is not None:
        raise HTTPException(status_code=400, detail=rejected.payload["reason"])

    save_game(game_id, new_state, db, action, dice)
    row = _get_row(game_id, db)
    return {
        "state": state_for_response(new_state),
        "events": [e.to_dict() for e in events],
        "can_act": _player_can_act(row, new_state, player),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
