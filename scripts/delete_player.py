#!/usr/bin/env python3
"""
Delete an account by email so the email/username can be registered again.
The account's seats are released; lobby games it created are deleted.
Usage (from repo root): python scripts/delete_player.py <email>
"""
import json
import logging
import sys

from backend.api.database import SessionLocal
from backend.api.models import Player, Game

logger = logging.getLogger("delete_player")


def release_seats(db, player_id: str) -> int:
    """Drop the account from every game's seat list. Returns how many games were touched."""
    touched = 0
    for game in db.query(Game).all():
        try:
            seats = json.loads(game.seats or "[]")
        except json.JSONDecodeError:
            logger.warning("Game %s has unreadable seats; skipping", game.id)
            continue
        kept = [s for s in seats if str(s.get("player_id")) != player_id]
        if len(kept) == len(seats):
            continue
        touched += 1
        if game.created_by == player_id and game.status == "lobby":
            db.delete(game)
            continue
        game.seats = json.dumps(kept)
        if game.created_by == player_id:
            game.created_by = None
    return touched


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    if len(sys.argv) < 2:
        print("Usage: python scripts/delete_player.py <email>", file=sys.stderr)
        sys.exit(1)
    email = sys.argv[1].strip()
    if not email:
        print("Error: provide an email.", file=sys.stderr)
        sys.exit(1)

    db = SessionLocal()
    try:
        player = db.query(Player).filter(Player.email == email).first()
        if not player:
            logger.info("No player found with email: %r", email)
            return
        player_id = str(player.id)
        username = player.username
        touched = release_seats(db, player_id)
        # Unlink any remaining games created by this account so the FK doesn't block delete
        for game in db.query(Game).filter(Game.created_by == player_id):
            game.created_by = None
        db.delete(player)
        db.commit()
        logger.info("Deleted player %r (%s), released seats in %d game(s).", username, email, touched)
    except Exception:
        db.rollback()
        logger.exception("Could not delete %s", email)
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
