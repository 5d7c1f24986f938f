"""
Lookup Guards

Reusable guards for tournament-scoped routes:
- Tournament must exist
- Game must exist and belong to the tournament
- Domain violations map onto HTTP status codes
"""

from typing import List

from fastapi import HTTPException
from sqlmodel import Session

from bracket_engine.models.game import Game
from bracket_engine.models.tournament import Tournament
from bracket_engine.services.bracket_errors import (
    DUPLICATE_TOPOLOGY,
    EXISTING_GAMES,
    GAME_NOT_COMPLETED,
    GAME_NOT_FOUND,
    INVALID_RESULT,
    LINK_VIOLATION,
    SHAPE_VIOLATION,
    SLOT_ALREADY_RESOLVED,
    TOURNAMENT_NOT_FOUND,
    Violation,
)


def get_tournament_or_404(session: Session, tournament_id: int) -> Tournament:
    """
    Load a tournament, otherwise raise 404.

    Raises:
        HTTPException 404: Tournament not found
    """
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail="Tournament not found")
    return tournament


def get_game_or_404(session: Session, game_id: int, tournament_id: int) -> Game:
    """
    Load a game scoped to its tournament, otherwise raise 404.

    Raises:
        HTTPException 404: Game not found, or game belongs to another tournament
    """
    game = session.get(Game, game_id)
    if not game:
        raise HTTPException(status_code=404, detail="Game not found")
    if game.tournament_id != tournament_id:
        raise HTTPException(status_code=404, detail=f"Game {game_id} does not belong to tournament {tournament_id}")
    return game


# Violation code -> HTTP status for command routes
VIOLATION_STATUS = {
    TOURNAMENT_NOT_FOUND: 404,
    GAME_NOT_FOUND: 404,
    SHAPE_VIOLATION: 422,
    GAME_NOT_COMPLETED: 422,
    INVALID_RESULT: 422,
    EXISTING_GAMES: 409,
    SLOT_ALREADY_RESOLVED: 409,
    DUPLICATE_TOPOLOGY: 409,
    LINK_VIOLATION: 409,
}


def raise_for_violations(violations: List[Violation]) -> None:
    """
    Raise an HTTPException for the most specific failure in `violations`.
    404 wins over 422, which wins over 409. No-op for an empty list.
    """
    if not violations:
        return
    statuses = [VIOLATION_STATUS.get(v.code, 409) for v in violations]
    for status in (404, 422, 409):
        if status in statuses:
            raise HTTPException(
                status_code=status,
                detail={"violations": [v.to_dict() for v in violations]},
            )
