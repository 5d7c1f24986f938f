from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from sqlmodel import Session, select

from bracket_engine.database import get_session
from bracket_engine.models.tournament import Tournament
from bracket_engine.services.bracket_errors import ShapeViolation
from bracket_engine.services.bracket_topology import (
    DEFAULT_REGIONS,
    SHAPE_MULTI_TEAM,
    SHAPE_REGIONAL,
    build_topology,
    shape_from_fields,
)
from bracket_engine.utils.tournament_guards import get_tournament_or_404

router = APIRouter()

TOURNAMENT_STATUSES = ("upcoming", "in_progress", "completed")


class TournamentCreate(BaseModel):
    name: str
    shape: str
    start_date: date
    end_date: Optional[date] = None
    location: Optional[str] = None
    regions: Optional[List[str]] = None
    teams_per_region: int = 16
    team_count: int = 4

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name is required")
        return v.strip()

    @field_validator("shape")
    @classmethod
    def validate_shape(cls, v):
        key = (v or "").strip().lower()
        if key not in (SHAPE_REGIONAL, SHAPE_MULTI_TEAM):
            raise ValueError(f"shape must be '{SHAPE_REGIONAL}' or '{SHAPE_MULTI_TEAM}'")
        return key

    @model_validator(mode="after")
    def validate_date_range(self):
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must be >= start_date")
        return self


class TournamentUpdate(BaseModel):
    name: Optional[str] = None
    location: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v is not None and v not in TOURNAMENT_STATUSES:
            raise ValueError(f"status must be one of {TOURNAMENT_STATUSES}")
        return v


class TournamentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    shape: str
    regions: Optional[List[str]] = None
    teams_per_region: int
    team_count: int
    start_date: date
    end_date: Optional[date] = None
    location: Optional[str] = None
    status: str
    created_at: datetime
    updated_at: datetime


@router.get("/tournaments", response_model=List[TournamentResponse])
def list_tournaments(session: Session = Depends(get_session)):
    """List all tournaments"""
    return session.exec(select(Tournament).order_by(Tournament.start_date, Tournament.id)).all()


@router.post("/tournaments", response_model=TournamentResponse, status_code=201)
def create_tournament(tournament_data: TournamentCreate, session: Session = Depends(get_session)):
    """Create a tournament. The shape parameters are checked up front so generation can't fail on them later."""
    data = tournament_data.model_dump()
    if data["shape"] == SHAPE_REGIONAL:
        data["regions"] = list(data["regions"] or DEFAULT_REGIONS)
    else:
        data["regions"] = None

    try:
        build_topology(shape_from_fields(
            data["shape"],
            regions=data["regions"],
            teams_per_region=data["teams_per_region"],
            team_count=data["team_count"],
        ))
    except ShapeViolation as exc:
        raise HTTPException(status_code=422, detail=exc.to_violation().to_dict())

    tournament = Tournament(**data)
    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    return tournament


@router.get("/tournaments/{tournament_id}", response_model=TournamentResponse)
def get_tournament(tournament_id: int, session: Session = Depends(get_session)):
    """Get a tournament by ID"""
    return get_tournament_or_404(session, tournament_id)


@router.put("/tournaments/{tournament_id}", response_model=TournamentResponse)
def update_tournament(tournament_id: int, tournament_data: TournamentUpdate, session: Session = Depends(get_session)):
    """Update descriptive fields. Shape is fixed once created."""
    tournament = get_tournament_or_404(session, tournament_id)

    update_data = tournament_data.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        setattr(tournament, field, value)

    end = tournament.end_date
    if end and end < tournament.start_date:
        session.rollback()
        raise HTTPException(status_code=422, detail="end_date must be >= start_date")

    tournament.updated_at = datetime.utcnow()
    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    return tournament
