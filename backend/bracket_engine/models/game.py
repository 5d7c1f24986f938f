from dataclasses import dataclass
from datetime import date, datetime
from typing import TYPE_CHECKING, Optional

from sqlmodel import Field, Relationship, SQLModel

from bracket_engine.services.bracket_topology import AdvancementEdges, AdvancementTarget, Slot

if TYPE_CHECKING:
    from bracket_engine.models.tournament import Tournament

# Game status values
GAME_SCHEDULED = "scheduled"
GAME_IN_PROGRESS = "in_progress"
GAME_COMPLETED = "completed"
GAME_POSTPONED = "postponed"
GAME_CANCELLED = "cancelled"

GAME_STATUSES = (GAME_SCHEDULED, GAME_IN_PROGRESS, GAME_COMPLETED, GAME_POSTPONED, GAME_CANCELLED)

# Participant slot states
SLOT_UNRESOLVED = "unresolved"
SLOT_PLACEHOLDER = "placeholder"
SLOT_KNOWN = "known"


@dataclass(frozen=True)
class ParticipantSlot:
    """
    One side of a game. `unresolved` carries no participant; `placeholder`
    carries a stand-in that propagation is expected to overwrite; `known` is final.
    """

    state: str = SLOT_UNRESOLVED
    team_id: Optional[int] = None
    seed: Optional[int] = None

    @classmethod
    def unresolved(cls) -> "ParticipantSlot":
        return cls()

    @classmethod
    def known(cls, team_id: int, seed: Optional[int] = None) -> "ParticipantSlot":
        return cls(state=SLOT_KNOWN, team_id=team_id, seed=seed)

    @classmethod
    def placeholder(cls, team_id: int, seed: Optional[int] = None) -> "ParticipantSlot":
        return cls(state=SLOT_PLACEHOLDER, team_id=team_id, seed=seed)

    @property
    def is_resolved(self) -> bool:
        return self.state == SLOT_KNOWN

    @property
    def is_placeholder(self) -> bool:
        return self.state == SLOT_PLACEHOLDER

    def to_dict(self) -> dict:
        return {
            "state": self.state,
            "team_id": self.team_id,
            "seed": self.seed,
            "is_placeholder": self.is_placeholder,
        }


class Game(SQLModel, table=True):
    # No unique constraint on (tournament_id, bracket_position): duplicates must
    # be representable so the consistency guard can report and prune them.

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    round: str  # Round enum value
    round_order: int = Field(default=1)  # 1-based index in the shape's round sequence
    region: str
    bracket_position: Optional[str] = Field(default=None, index=True)
    sequence_in_round: int = Field(default=1)

    # Participant slots (state + team + seed per side)
    home_team_id: Optional[int] = Field(default=None, foreign_key="team.id")
    away_team_id: Optional[int] = Field(default=None, foreign_key="team.id")
    home_seed: Optional[int] = Field(default=None)
    away_seed: Optional[int] = Field(default=None)
    home_state: str = Field(default=SLOT_UNRESOLVED)
    away_state: str = Field(default=SLOT_UNRESOLVED)

    status: str = Field(default=GAME_SCHEDULED)
    scheduled_date: Optional[date] = Field(default=None)

    # Advancement edges, keyed by bracket position (not id) so they survive re-insertion
    winner_target_position: Optional[str] = Field(default=None)
    winner_target_slot: Optional[str] = Field(default=None)  # "home" | "away"
    loser_target_position: Optional[str] = Field(default=None)
    loser_target_slot: Optional[str] = Field(default=None)

    # Recorded result (written by the result-entry collaborator)
    winner_team_id: Optional[int] = Field(default=None, foreign_key="team.id")
    loser_team_id: Optional[int] = Field(default=None, foreign_key="team.id")

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="games")

    # -- slot helpers --------------------------------------------------------

    def participant(self, slot: Slot) -> ParticipantSlot:
        if Slot(slot) == Slot.HOME:
            return ParticipantSlot(self.home_state, self.home_team_id, self.home_seed)
        return ParticipantSlot(self.away_state, self.away_team_id, self.away_seed)

    def set_participant(self, slot: Slot, value: ParticipantSlot) -> None:
        if Slot(slot) == Slot.HOME:
            self.home_state = value.state
            self.home_team_id = value.team_id
            self.home_seed = value.seed
        else:
            self.away_state = value.state
            self.away_team_id = value.team_id
            self.away_seed = value.seed

    @property
    def home_participant(self) -> ParticipantSlot:
        return self.participant(Slot.HOME)

    @property
    def away_participant(self) -> ParticipantSlot:
        return self.participant(Slot.AWAY)

    # -- edge helpers --------------------------------------------------------

    @property
    def advancement(self) -> AdvancementEdges:
        winner = None
        loser = None
        if self.winner_target_position and self.winner_target_slot:
            winner = AdvancementTarget(self.winner_target_position, Slot(self.winner_target_slot))
        if self.loser_target_position and self.loser_target_slot:
            loser = AdvancementTarget(self.loser_target_position, Slot(self.loser_target_slot))
        return AdvancementEdges(winner=winner, loser=loser)

    def set_advancement(self, edges: AdvancementEdges) -> None:
        self.winner_target_position = edges.winner.position if edges.winner else None
        self.winner_target_slot = edges.winner.slot.value if edges.winner else None
        self.loser_target_position = edges.loser.position if edges.loser else None
        self.loser_target_slot = edges.loser.slot.value if edges.loser else None
