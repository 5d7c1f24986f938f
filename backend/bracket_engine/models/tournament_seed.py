from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from bracket_engine.models.team import Team
    from bracket_engine.models.tournament import Tournament


class TournamentSeed(SQLModel, table=True):
    """One row of a tournament's seeding table: (region, seed) -> team."""

    __table_args__ = (
        SAUniqueConstraint("tournament_id", "region", "seed", name="uq_tournament_region_seed"),
        SAUniqueConstraint("tournament_id", "team_id", name="uq_tournament_team"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    team_id: int = Field(foreign_key="team.id")
    seed: int  # 1-based seed within the region (or within the event)
    region: Optional[str] = Field(default=None)  # null for shapes without regions
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="seeds")
    team: "Team" = Relationship(back_populates="seeds")
