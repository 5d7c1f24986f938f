"""
Bracket command routes: generate, relink, validate, duplicates, prune,
propagate-completed and the grouped bracket view.
"""

from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, model_validator
from sqlmodel import Session, select

from bracket_engine.database import get_session
from bracket_engine.models.game import Game
from bracket_engine.routes.games import game_to_state
from bracket_engine.services import consistency_guard, progression_linker, result_propagator
from bracket_engine.services.bracket_builder import ON_EXISTING_POLICIES, ON_EXISTING_REFUSE, build_bracket
from bracket_engine.services.bracket_errors import LINK_VIOLATION, ShapeViolation
from bracket_engine.services.bracket_topology import build_topology
from bracket_engine.utils.tournament_guards import get_tournament_or_404, raise_for_violations

router = APIRouter()


class GenerateRequest(BaseModel):
    start_date: Optional[date] = None
    on_existing: str = ON_EXISTING_REFUSE

    @model_validator(mode="after")
    def validate_policy(self):
        if self.on_existing not in ON_EXISTING_POLICIES:
            raise ValueError(f"on_existing must be one of {ON_EXISTING_POLICIES}")
        return self


class PruneRequest(BaseModel):
    keep_ids: Optional[List[int]] = None
    strategy: Optional[str] = None  # "canonical"

    @model_validator(mode="after")
    def validate_keep(self):
        if (self.keep_ids is None) == (self.strategy is None):
            raise ValueError("Provide exactly one of keep_ids or strategy")
        if self.strategy is not None and self.strategy != "canonical":
            raise ValueError("strategy must be 'canonical'")
        return self


@router.post("/tournaments/{tournament_id}/bracket/generate", status_code=201)
def generate_bracket(
    tournament_id: int,
    request: Optional[GenerateRequest] = None,
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    """Generate, link and persist every game of the tournament's bracket in one transaction."""
    get_tournament_or_404(session, tournament_id)
    request = request or GenerateRequest()

    try:
        result = build_bracket(session, tournament_id, request.start_date, request.on_existing)
    except RuntimeError as e:
        raise HTTPException(status_code=500, detail=str(e))

    raise_for_violations(result.violations)
    return result.to_dict()


@router.post("/tournaments/{tournament_id}/bracket/relink")
def relink_bracket(tournament_id: int, session: Session = Depends(get_session)) -> Dict[str, Any]:
    """Rewrite advancement edges from the topology. Dangling targets are reported, not fatal."""
    get_tournament_or_404(session, tournament_id)
    result = progression_linker.relink(session, tournament_id)
    if any(v.code != LINK_VIOLATION for v in result.violations):
        raise_for_violations(result.violations)
    return result.to_dict()


@router.get("/tournaments/{tournament_id}/bracket/validate")
def validate_bracket(tournament_id: int, session: Session = Depends(get_session)) -> Dict[str, Any]:
    """Read-only check; always 200 with the full report."""
    get_tournament_or_404(session, tournament_id)
    return consistency_guard.validate(session, tournament_id).to_dict()


@router.get("/tournaments/{tournament_id}/bracket/duplicates")
def list_duplicates(tournament_id: int, session: Session = Depends(get_session)) -> Dict[str, Any]:
    get_tournament_or_404(session, tournament_id)
    groups = consistency_guard.find_duplicates(session, tournament_id)
    return {
        "groups": [g.to_dict() for g in groups],
        "redundant_count": sum(len(g.redundant_ids) for g in groups),
    }


@router.post("/tournaments/{tournament_id}/bracket/prune")
def prune_bracket(tournament_id: int, request: PruneRequest, session: Session = Depends(get_session)) -> Dict[str, Any]:
    """Delete every game not in the keep set, then re-validate."""
    get_tournament_or_404(session, tournament_id)

    if request.strategy == "canonical":
        result = consistency_guard.prune_canonical(session, tournament_id)
        raise_for_violations(result.violations)
    else:
        result = consistency_guard.prune(session, tournament_id, set(request.keep_ids or []))

    report = consistency_guard.validate(session, tournament_id)
    return {**result.to_dict(), "validation": report.to_dict()}


@router.post("/tournaments/{tournament_id}/bracket/propagate-completed")
def propagate_completed(tournament_id: int, session: Session = Depends(get_session)) -> Dict[str, Any]:
    """Re-run one-hop propagation for every completed game, in round order. Never forces."""
    get_tournament_or_404(session, tournament_id)
    return result_propagator.propagate_completed(session, tournament_id)


@router.get("/tournaments/{tournament_id}/bracket")
def get_bracket(tournament_id: int, session: Session = Depends(get_session)) -> Dict[str, Any]:
    """Games grouped by round (shape order) then region."""
    tournament = get_tournament_or_404(session, tournament_id)
    try:
        topology = build_topology(tournament.bracket_shape())
    except ShapeViolation as exc:
        raise HTTPException(status_code=422, detail=exc.to_violation().to_dict())

    games = session.exec(
        select(Game)
        .where(Game.tournament_id == tournament_id)
        .order_by(Game.round_order, Game.region, Game.sequence_in_round, Game.id)
    ).all()

    by_round: Dict[str, Dict[str, List[Dict[str, Any]]]] = {r.value: {} for r in topology.rounds}
    for game in games:
        regions = by_round.setdefault(game.round, {})
        regions.setdefault(game.region, []).append(game_to_state(game).model_dump(mode="json"))

    return {
        "tournament_id": tournament_id,
        "shape": tournament.shape,
        "total_games": len(games),
        "expected_games": topology.total_games,
        "rounds": [
            {"round": round_, "regions": regions}
            for round_, regions in by_round.items()
        ],
    }
