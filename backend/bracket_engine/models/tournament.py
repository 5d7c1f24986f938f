from datetime import date, datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, Relationship, SQLModel

from bracket_engine.services.bracket_topology import TournamentShape, shape_from_fields

if TYPE_CHECKING:
    from bracket_engine.models.game import Game
    from bracket_engine.models.tournament_seed import TournamentSeed


class Tournament(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    shape: str  # "regional_single_elimination" | "bracketed_multi_team"
    regions: Optional[List[str]] = Field(default=None, sa_column=Column(JSON))
    teams_per_region: int = Field(default=16)
    team_count: int = Field(default=4)
    start_date: date
    end_date: Optional[date] = None
    location: Optional[str] = None
    status: str = Field(default="upcoming")  # "upcoming" | "in_progress" | "completed"
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    # Relationships
    games: List["Game"] = Relationship(back_populates="tournament")
    seeds: List["TournamentSeed"] = Relationship(back_populates="tournament")

    def bracket_shape(self) -> TournamentShape:
        """Immutable shape descriptor. Raises ShapeViolation for an unknown shape string."""
        return shape_from_fields(
            self.shape,
            regions=self.regions,
            teams_per_region=self.teams_per_region,
            team_count=self.team_count,
        )
