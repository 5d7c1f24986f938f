"""
Team Management API Routes
Participants are referenced by Team.id everywhere in the bracket.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from bracket_engine.database import get_session
from bracket_engine.models.team import Team

router = APIRouter()


class TeamCreateRequest(BaseModel):
    name: str
    short_name: Optional[str] = None


class TeamResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    short_name: Optional[str] = None
    created_at: datetime


@router.get("/teams", response_model=List[TeamResponse])
def list_teams(session: Session = Depends(get_session)):
    """List all teams ordered by name"""
    return session.exec(select(Team).order_by(Team.name)).all()


@router.post("/teams", response_model=TeamResponse, status_code=201)
def create_team(team_data: TeamCreateRequest, session: Session = Depends(get_session)):
    name = team_data.name.strip()
    if not name:
        raise HTTPException(status_code=422, detail="name is required")

    team = Team(name=name, short_name=team_data.short_name)
    session.add(team)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise HTTPException(status_code=409, detail=f"Team '{name}' already exists")
    session.refresh(team)
    return team


@router.get("/teams/{team_id}", response_model=TeamResponse)
def get_team(team_id: int, session: Session = Depends(get_session)):
    team = session.get(Team, team_id)
    if not team:
        raise HTTPException(status_code=404, detail="Team not found")
    return team
