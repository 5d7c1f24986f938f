"""
Seeding Table API Routes

The seeding table is supplied whole: PUT replaces every row for the
tournament after checking it against the tournament's shape.
"""

from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict
from sqlmodel import Session, select

from bracket_engine.database import get_session
from bracket_engine.models.team import Team
from bracket_engine.models.tournament_seed import TournamentSeed
from bracket_engine.services.bracket_errors import ShapeViolation
from bracket_engine.services.bracket_topology import build_topology
from bracket_engine.services.topology_generator import validate_seeding
from bracket_engine.utils.tournament_guards import get_tournament_or_404

router = APIRouter()


class SeedEntry(BaseModel):
    team_id: int
    seed: int
    region: Optional[str] = None


class SeedingTableRequest(BaseModel):
    seeds: List[SeedEntry]


class SeedResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tournament_id: int
    team_id: int
    seed: int
    region: Optional[str] = None
    created_at: datetime


def _ordered_seeds(session: Session, tournament_id: int) -> List[TournamentSeed]:
    return session.exec(
        select(TournamentSeed)
        .where(TournamentSeed.tournament_id == tournament_id)
        .order_by(TournamentSeed.region, TournamentSeed.seed)
    ).all()


@router.get("/tournaments/{tournament_id}/seeds", response_model=List[SeedResponse])
def get_seeds(tournament_id: int, session: Session = Depends(get_session)):
    get_tournament_or_404(session, tournament_id)
    return _ordered_seeds(session, tournament_id)


@router.put("/tournaments/{tournament_id}/seeds", response_model=List[SeedResponse])
def replace_seeds(tournament_id: int, request: SeedingTableRequest, session: Session = Depends(get_session)):
    """
    Replace the tournament's seeding table.

    Returns 422 with the full problem list if the table cannot seed the
    tournament's shape, and 404 if any referenced team does not exist.
    """
    tournament = get_tournament_or_404(session, tournament_id)

    try:
        topology = build_topology(tournament.bracket_shape())
    except ShapeViolation as exc:
        raise HTTPException(status_code=422, detail=exc.to_violation().to_dict())

    table: Dict[Optional[str], Dict[int, int]] = {}
    problems: List[str] = []
    for entry in request.seeds:
        region_seeds = table.setdefault(entry.region, {})
        if entry.seed in region_seeds:
            problems.append(f"{entry.region or 'event'} seed {entry.seed} listed twice")
        region_seeds[entry.seed] = entry.team_id
    if problems:
        raise HTTPException(status_code=422, detail=ShapeViolation("Duplicate seeding entries", problems).to_violation().to_dict())

    try:
        validate_seeding(topology, table)
    except ShapeViolation as exc:
        raise HTTPException(status_code=422, detail=exc.to_violation().to_dict())

    team_ids = {entry.team_id for entry in request.seeds}
    found = set(session.exec(select(Team.id).where(Team.id.in_(team_ids))).all())
    missing = sorted(team_ids - found)
    if missing:
        raise HTTPException(status_code=404, detail=f"Teams not found: {missing}")

    for row in _ordered_seeds(session, tournament_id):
        session.delete(row)
    session.flush()

    for entry in request.seeds:
        session.add(TournamentSeed(
            tournament_id=tournament_id,
            team_id=entry.team_id,
            seed=entry.seed,
            region=entry.region,
        ))
    session.commit()

    return _ordered_seeds(session, tournament_id)
