"""
Bracket Topology: single source of truth for bracket positions and edges.

Every component (generation, linking, validation, propagation) reads the
same BracketTopology value object. No other module assembles bracket position
labels or derives advancement edges.

Shapes:
  RegionalSingleElimination  4 regions x 16 seeds -> 63 games
  BracketedMultiTeamEvent    4 seeds -> 2 semifinals, championship, consolation
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple, Union

from bracket_engine.services.bracket_errors import ShapeViolation

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------

class Round(str, Enum):
    ROUND_OF_64 = "round_of_64"
    ROUND_OF_32 = "round_of_32"
    SWEET_16 = "sweet_16"
    ELITE_8 = "elite_8"
    SEMIFINALS = "semifinals"
    CHAMPIONSHIP = "championship"
    CONSOLATION = "consolation"


class Slot(str, Enum):
    HOME = "home"
    AWAY = "away"


# -----------------------------------------------------------------------------
# Constants
# -----------------------------------------------------------------------------

SHAPE_REGIONAL = "regional_single_elimination"
SHAPE_MULTI_TEAM = "bracketed_multi_team"

DEFAULT_REGIONS: Tuple[str, ...] = ("East", "West", "South", "Midwest")

# Standard reseeding order for a 16-seed region. Sequence 1..8 in this order;
# adjacent pairs meet in the next round, so the order fixes each seed's half.
REGIONAL_MATCHUPS: Tuple[Tuple[int, int], ...] = (
    (1, 16), (8, 9), (5, 12), (4, 13),
    (6, 11), (3, 14), (7, 10), (2, 15),
)

REGIONAL_ROUNDS: Tuple[Round, ...] = (
    Round.ROUND_OF_64,
    Round.ROUND_OF_32,
    Round.SWEET_16,
    Round.ELITE_8,
    Round.SEMIFINALS,
    Round.CHAMPIONSHIP,
)

MULTI_TEAM_ROUNDS: Tuple[Round, ...] = (
    Round.SEMIFINALS,
    Round.CHAMPIONSHIP,
    Round.CONSOLATION,
)

# Days after the tournament start date each round is played
REGIONAL_DAY_OFFSETS: Dict[Round, int] = {
    Round.ROUND_OF_64: 0,
    Round.ROUND_OF_32: 2,
    Round.SWEET_16: 4,
    Round.ELITE_8: 6,
    Round.SEMIFINALS: 8,
    Round.CHAMPIONSHIP: 10,
}

MULTI_TEAM_DAY_OFFSETS: Dict[Round, int] = {
    Round.SEMIFINALS: 0,
    Round.CHAMPIONSHIP: 1,
    Round.CONSOLATION: 1,
}

# Region sentinels for games that do not belong to a single region
CROSS_REGION = "National"
EVENT_REGION = "Event"

# Round codes used inside regional labels
_REGIONAL_ROUND_CODES = {
    Round.ROUND_OF_64: "R64",
    Round.ROUND_OF_32: "R32",
    Round.SWEET_16: "S16",
    Round.ELITE_8: "E8",
}

# Games per region for the in-region rounds of a 16-seed region
_REGIONAL_GAMES_PER_REGION = {
    Round.ROUND_OF_64: 8,
    Round.ROUND_OF_32: 4,
    Round.SWEET_16: 2,
    Round.ELITE_8: 1,
}

CHAMPIONSHIP_POSITION = "CHAMP"
MTE_SF1 = "MTE-SF1"
MTE_SF2 = "MTE-SF2"
MTE_CHAMPIONSHIP = "MTE-CHAMP"
MTE_CONSOLATION = "MTE-CONS"


# -----------------------------------------------------------------------------
# Shapes
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class RegionalSingleElimination:
    regions: Tuple[str, ...] = DEFAULT_REGIONS
    teams_per_region: int = 16

    kind = SHAPE_REGIONAL

    @property
    def has_regions(self) -> bool:
        return True

    @property
    def has_consolation(self) -> bool:
        return False


@dataclass(frozen=True)
class BracketedMultiTeamEvent:
    team_count: int = 4

    kind = SHAPE_MULTI_TEAM

    @property
    def has_regions(self) -> bool:
        return False

    @property
    def has_consolation(self) -> bool:
        return True


TournamentShape = Union[RegionalSingleElimination, BracketedMultiTeamEvent]


def region_code(region: str) -> str:
    """Single-letter region code used in regional labels (East -> E)."""
    return region.strip()[:1].upper()


def regional_label(region: str, round_: Round, sequence: int) -> str:
    return f"{region_code(region)}-{_REGIONAL_ROUND_CODES[round_]}-G{sequence}"


def semifinal_label(sequence: int) -> str:
    return f"FF-G{sequence}"


# -----------------------------------------------------------------------------
# Topology value objects
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class AdvancementTarget:
    position: str
    slot: Slot


@dataclass(frozen=True)
class AdvancementEdges:
    winner: Optional[AdvancementTarget] = None
    loser: Optional[AdvancementTarget] = None

    @property
    def is_terminal(self) -> bool:
        return self.winner is None and self.loser is None


@dataclass(frozen=True)
class PositionSpec:
    position: str
    round: Round
    region: str
    sequence: int
    day_offset: int
    seeds: Optional[Tuple[int, int]] = None              # first-round home/away seeds
    placeholder_seeds: Optional[Tuple[int, int]] = None  # stand-ins until propagation


@dataclass(frozen=True)
class Feeder:
    """Reverse edge: `source` advances its winner/loser into `slot` of a position."""
    source: str
    role: str  # "winner" | "loser"
    slot: Slot


@dataclass(frozen=True)
class BracketTopology:
    shape: TournamentShape
    rounds: Tuple[Round, ...]
    positions: Tuple[PositionSpec, ...]
    edges: Dict[str, AdvancementEdges] = field(default_factory=dict)

    def position(self, label: str) -> Optional[PositionSpec]:
        for spec in self.positions:
            if spec.position == label:
                return spec
        return None

    def labels(self) -> List[str]:
        return [spec.position for spec in self.positions]

    def positions_in_round(self, round_: Round, region: Optional[str] = None) -> List[PositionSpec]:
        return [
            spec for spec in self.positions
            if spec.round == round_ and (region is None or spec.region == region)
        ]

    def round_order(self, round_: Round) -> int:
        return self.rounds.index(round_) + 1

    def round_counts(self) -> Dict[Round, int]:
        counts = {r: 0 for r in self.rounds}
        for spec in self.positions:
            counts[spec.round] += 1
        return counts

    @property
    def total_games(self) -> int:
        return len(self.positions)

    @property
    def terminal_positions(self) -> FrozenSet[str]:
        return frozenset(label for label, e in self.edges.items() if e.is_terminal)

    def edges_for(self, label: str) -> AdvancementEdges:
        return self.edges.get(label, AdvancementEdges())

    def feeders(self, label: str) -> List[Feeder]:
        """Every upstream edge that lands in `label`, ordered home then away."""
        result: List[Feeder] = []
        for source, e in self.edges.items():
            if e.winner and e.winner.position == label:
                result.append(Feeder(source=source, role="winner", slot=e.winner.slot))
            if e.loser and e.loser.position == label:
                result.append(Feeder(source=source, role="loser", slot=e.loser.slot))
        result.sort(key=lambda f: (f.slot != Slot.HOME, f.source))
        return result

    def feeder_for_slot(self, label: str, slot: Slot) -> Optional[Feeder]:
        for f in self.feeders(label):
            if f.slot == slot:
                return f
        return None


# -----------------------------------------------------------------------------
# Pairing rules
# -----------------------------------------------------------------------------

def next_round_target(sequence: int) -> Tuple[int, Slot]:
    """
    Generic in-region pairing: game n feeds game ceil(n/2) of the next round,
    odd sequences as home, even as away.
    """
    return (sequence + 1) // 2, (Slot.HOME if sequence % 2 == 1 else Slot.AWAY)


def _validate_regional(shape: RegionalSingleElimination) -> None:
    problems: List[str] = []
    if len(shape.regions) != 4:
        problems.append(f"expected 4 regions, got {len(shape.regions)}")
    if shape.teams_per_region != 16:
        problems.append(f"teams_per_region must be 16, got {shape.teams_per_region}")
    codes = [region_code(r) for r in shape.regions]
    if any(not c for c in codes):
        problems.append("region names must be non-empty")
    elif len(set(codes)) != len(codes):
        problems.append(f"region codes must be distinct, got {codes}")
    if problems:
        raise ShapeViolation("Unsupported regional shape: " + "; ".join(problems), problems)


def _regional_topology(shape: RegionalSingleElimination) -> BracketTopology:
    _validate_regional(shape)

    positions: List[PositionSpec] = []
    edges: Dict[str, AdvancementEdges] = {}
    in_region_rounds = REGIONAL_ROUNDS[:4]

    for region in shape.regions:
        for round_ in in_region_rounds:
            count = _REGIONAL_GAMES_PER_REGION[round_]
            for seq in range(1, count + 1):
                seeds = REGIONAL_MATCHUPS[seq - 1] if round_ == Round.ROUND_OF_64 else None
                label = regional_label(region, round_, seq)
                positions.append(PositionSpec(
                    position=label,
                    round=round_,
                    region=region,
                    sequence=seq,
                    day_offset=REGIONAL_DAY_OFFSETS[round_],
                    seeds=seeds,
                ))
                if round_ != Round.ELITE_8:
                    next_round = in_region_rounds[in_region_rounds.index(round_) + 1]
                    next_seq, slot = next_round_target(seq)
                    edges[label] = AdvancementEdges(
                        winner=AdvancementTarget(regional_label(region, next_round, next_seq), slot)
                    )

    # Region order is a domain convention: regions 1+2 meet in FF-G1, 3+4 in FF-G2
    convergence = (
        (shape.regions[0], semifinal_label(1), Slot.HOME),
        (shape.regions[1], semifinal_label(1), Slot.AWAY),
        (shape.regions[2], semifinal_label(2), Slot.HOME),
        (shape.regions[3], semifinal_label(2), Slot.AWAY),
    )
    for region, target, slot in convergence:
        edges[regional_label(region, Round.ELITE_8, 1)] = AdvancementEdges(
            winner=AdvancementTarget(target, slot)
        )

    for seq, slot in ((1, Slot.HOME), (2, Slot.AWAY)):
        label = semifinal_label(seq)
        positions.append(PositionSpec(
            position=label,
            round=Round.SEMIFINALS,
            region=CROSS_REGION,
            sequence=seq,
            day_offset=REGIONAL_DAY_OFFSETS[Round.SEMIFINALS],
        ))
        edges[label] = AdvancementEdges(winner=AdvancementTarget(CHAMPIONSHIP_POSITION, slot))

    positions.append(PositionSpec(
        position=CHAMPIONSHIP_POSITION,
        round=Round.CHAMPIONSHIP,
        region=CROSS_REGION,
        sequence=1,
        day_offset=REGIONAL_DAY_OFFSETS[Round.CHAMPIONSHIP],
    ))
    edges[CHAMPIONSHIP_POSITION] = AdvancementEdges()

    return BracketTopology(
        shape=shape,
        rounds=REGIONAL_ROUNDS,
        positions=tuple(positions),
        edges=edges,
    )


def _multi_team_topology(shape: BracketedMultiTeamEvent) -> BracketTopology:
    if shape.team_count != 4:
        raise ShapeViolation(
            f"Bracketed multi-team event requires team_count=4, got {shape.team_count}",
            [f"team_count={shape.team_count}"],
        )

    offsets = MULTI_TEAM_DAY_OFFSETS
    positions = (
        PositionSpec(MTE_SF1, Round.SEMIFINALS, EVENT_REGION, 1, offsets[Round.SEMIFINALS], seeds=(1, 2)),
        PositionSpec(MTE_SF2, Round.SEMIFINALS, EVENT_REGION, 2, offsets[Round.SEMIFINALS], seeds=(3, 4)),
        PositionSpec(
            MTE_CHAMPIONSHIP, Round.CHAMPIONSHIP, EVENT_REGION, 1, offsets[Round.CHAMPIONSHIP],
            placeholder_seeds=(1, 2),
        ),
        PositionSpec(
            MTE_CONSOLATION, Round.CONSOLATION, EVENT_REGION, 1, offsets[Round.CONSOLATION],
            placeholder_seeds=(3, 4),
        ),
    )
    # Consolation pairing is specific to this shape; SF losers meet in CONS
    edges = {
        MTE_SF1: AdvancementEdges(
            winner=AdvancementTarget(MTE_CHAMPIONSHIP, Slot.HOME),
            loser=AdvancementTarget(MTE_CONSOLATION, Slot.HOME),
        ),
        MTE_SF2: AdvancementEdges(
            winner=AdvancementTarget(MTE_CHAMPIONSHIP, Slot.AWAY),
            loser=AdvancementTarget(MTE_CONSOLATION, Slot.AWAY),
        ),
        MTE_CHAMPIONSHIP: AdvancementEdges(),
        MTE_CONSOLATION: AdvancementEdges(),
    }
    return BracketTopology(
        shape=shape,
        rounds=MULTI_TEAM_ROUNDS,
        positions=positions,
        edges=edges,
    )


def build_topology(shape: TournamentShape) -> BracketTopology:
    """Build the full topology for a shape. Raises ShapeViolation for unsupported parameters."""
    if isinstance(shape, RegionalSingleElimination):
        topology = _regional_topology(shape)
    elif isinstance(shape, BracketedMultiTeamEvent):
        topology = _multi_team_topology(shape)
    else:
        raise ShapeViolation(f"Unknown tournament shape: {shape!r}")

    logger.debug(
        "Built %s topology: %d positions, %d terminal",
        shape.kind,
        topology.total_games,
        len(topology.terminal_positions),
    )
    return topology


def shape_from_fields(
    kind: Optional[str],
    regions: Optional[List[str]] = None,
    teams_per_region: Optional[int] = None,
    team_count: Optional[int] = None,
) -> TournamentShape:
    """Build a shape from stored tournament fields."""
    key = (kind or "").strip().lower()
    if key == SHAPE_REGIONAL:
        return RegionalSingleElimination(
            regions=tuple(regions) if regions else DEFAULT_REGIONS,
            teams_per_region=teams_per_region or 16,
        )
    if key == SHAPE_MULTI_TEAM:
        return BracketedMultiTeamEvent(team_count=team_count or 4)
    raise ShapeViolation(f"Unknown tournament shape: {kind!r}", [f"shape={kind!r}"])
