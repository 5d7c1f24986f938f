from bracket_engine.models.game import Game, ParticipantSlot
from bracket_engine.models.team import Team
from bracket_engine.models.tournament import Tournament
from bracket_engine.models.tournament_seed import TournamentSeed

__all__ = [
    "Tournament",
    "Team",
    "TournamentSeed",
    "Game",
    "ParticipantSlot",
]
