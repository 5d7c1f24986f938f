"""
Game results: status + winner entry and one-hop propagation.
When a game is completed, the result propagator fills the downstream slot(s)
named by its advancement edges.
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session, select

from bracket_engine.database import get_session
from bracket_engine.models.game import GAME_COMPLETED, GAME_STATUSES, Game
from bracket_engine.services import result_propagator
from bracket_engine.utils.tournament_guards import get_game_or_404, get_tournament_or_404, raise_for_violations

router = APIRouter()


class GameResultUpdate(BaseModel):
    status: Optional[str] = None
    winner_team_id: Optional[int] = None
    loser_team_id: Optional[int] = None


class PropagateRequest(BaseModel):
    winner_team_id: Optional[int] = None
    loser_team_id: Optional[int] = None
    force: bool = False


class GameState(BaseModel):
    id: int
    tournament_id: int
    round: str
    round_order: int
    region: str
    bracket_position: Optional[str] = None
    sequence_in_round: int
    status: str
    scheduled_date: Optional[date] = None
    home: Dict[str, Any]
    away: Dict[str, Any]
    winner_target: Optional[Dict[str, str]] = None
    loser_target: Optional[Dict[str, str]] = None
    winner_team_id: Optional[int] = None
    loser_team_id: Optional[int] = None
    created_at: datetime


class GameResultResponse(BaseModel):
    game: GameState
    propagation: Optional[Dict[str, Any]] = None


def game_to_state(g: Game) -> GameState:
    edges = g.advancement
    return GameState(
        id=g.id,
        tournament_id=g.tournament_id,
        round=g.round,
        round_order=g.round_order,
        region=g.region,
        bracket_position=g.bracket_position,
        sequence_in_round=g.sequence_in_round,
        status=g.status,
        scheduled_date=g.scheduled_date,
        home=g.home_participant.to_dict(),
        away=g.away_participant.to_dict(),
        winner_target={"position": edges.winner.position, "slot": edges.winner.slot.value} if edges.winner else None,
        loser_target={"position": edges.loser.position, "slot": edges.loser.slot.value} if edges.loser else None,
        winner_team_id=g.winner_team_id,
        loser_team_id=g.loser_team_id,
        created_at=g.created_at,
    )


def _validate_status_transition(current: str, new: str) -> None:
    if new not in GAME_STATUSES:
        raise HTTPException(status_code=422, detail=f"Invalid status: {new}")
    if current == GAME_COMPLETED and new != GAME_COMPLETED:
        raise HTTPException(status_code=422, detail="completed is terminal; cannot revert")


def _resolve_result(game: Game, winner_team_id: int, loser_team_id: Optional[int]) -> int:
    """Check the winner played in the game and return the loser (derived when omitted)."""
    home, away = game.home_participant, game.away_participant
    if not (home.is_resolved and away.is_resolved):
        raise HTTPException(
            status_code=422,
            detail=f"Both participants of {game.bracket_position} must be known before a result is recorded",
        )
    participants = (home.team_id, away.team_id)
    if winner_team_id not in participants:
        raise HTTPException(
            status_code=422,
            detail=f"winner_team_id {winner_team_id} did not play in {game.bracket_position}",
        )
    derived = away.team_id if winner_team_id == home.team_id else home.team_id
    if loser_team_id is not None and loser_team_id != derived:
        raise HTTPException(
            status_code=422,
            detail=f"loser_team_id {loser_team_id} must be the other participant ({derived})",
        )
    return derived


@router.patch(
    "/tournaments/{tournament_id}/games/{game_id}/result",
    response_model=GameResultResponse,
)
def record_game_result(
    tournament_id: int,
    game_id: int,
    payload: GameResultUpdate,
    session: Session = Depends(get_session),
) -> GameResultResponse:
    """Update a game's status/winner. Completing a game runs one propagation hop;
    conflicts come back in the propagation report, the result itself stays recorded."""
    get_tournament_or_404(session, tournament_id)
    game = get_game_or_404(session, game_id, tournament_id)

    current = game.status
    new = payload.status or current
    _validate_status_transition(current, new)

    if current == GAME_COMPLETED:
        if payload.winner_team_id is not None and payload.winner_team_id != game.winner_team_id:
            raise HTTPException(
                status_code=422,
                detail="Result already recorded; use the propagate command with force to correct downstream slots",
            )
    elif new == GAME_COMPLETED:
        winner = payload.winner_team_id if payload.winner_team_id is not None else game.winner_team_id
        if winner is None:
            raise HTTPException(status_code=422, detail="winner_team_id required when setting status to completed")
        game.loser_team_id = _resolve_result(game, winner, payload.loser_team_id)
        game.winner_team_id = winner
        game.status = GAME_COMPLETED
    else:
        if payload.winner_team_id is not None:
            raise HTTPException(status_code=422, detail="winner_team_id is only accepted when completing a game")
        game.status = new

    game.updated_at = datetime.utcnow()
    session.add(game)
    session.commit()
    session.refresh(game)

    propagation = None
    if game.status == GAME_COMPLETED and game.winner_team_id is not None:
        step = result_propagator.propagate(session, game.id, game.winner_team_id, game.loser_team_id)
        propagation = step.to_dict()
        session.refresh(game)

    return GameResultResponse(game=game_to_state(game), propagation=propagation)


@router.post("/tournaments/{tournament_id}/games/{game_id}/propagate")
def propagate_game(
    tournament_id: int,
    game_id: int,
    payload: Optional[PropagateRequest] = None,
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    """
    Run one propagation hop for a completed game (repair / re-run).
    Winner and loser default to the recorded result. force=True overwrites
    a conflicting known slot.
    """
    get_tournament_or_404(session, tournament_id)
    game = get_game_or_404(session, game_id, tournament_id)
    payload = payload or PropagateRequest()

    winner = payload.winner_team_id if payload.winner_team_id is not None else game.winner_team_id
    loser = payload.loser_team_id if payload.loser_team_id is not None else game.loser_team_id
    if winner is None:
        raise HTTPException(status_code=422, detail="Game has no recorded winner; pass winner_team_id")

    step = result_propagator.propagate(session, game_id, winner, loser, force=payload.force)
    raise_for_violations(step.violations)
    return step.to_dict()


@router.get("/tournaments/{tournament_id}/games", response_model=List[GameState])
def list_games(tournament_id: int, session: Session = Depends(get_session)) -> List[GameState]:
    """All games in round order, then bracket position."""
    get_tournament_or_404(session, tournament_id)
    games = session.exec(
        select(Game)
        .where(Game.tournament_id == tournament_id)
        .order_by(Game.round_order, Game.bracket_position, Game.id)
    ).all()
    return [game_to_state(g) for g in games]
