"""
Topology Generator

Turns a shape + seeding table into the full, unpersisted list of Game rows:
first-round slots filled from the seeding table, every later slot unresolved
(or, for the multi-team shape, filled with flagged placeholder participants).

All-or-nothing: any seeding problem raises ShapeViolation before a single
game is built.
"""

import logging
from datetime import date, timedelta
from typing import Dict, List, Mapping, Optional

from bracket_engine.models.game import GAME_SCHEDULED, Game, ParticipantSlot
from bracket_engine.services.bracket_errors import ShapeViolation
from bracket_engine.services.bracket_topology import (
    BracketTopology,
    PositionSpec,
    Round,
    Slot,
    TournamentShape,
    build_topology,
)

logger = logging.getLogger(__name__)

# region -> seed -> team_id. Region key is None for shapes without regions.
SeedingTable = Mapping[Optional[str], Mapping[int, int]]


def _validate_regional_seeding(topology: BracketTopology, seeding: SeedingTable) -> List[str]:
    problems: List[str] = []
    shape = topology.shape
    required = set(range(1, shape.teams_per_region + 1))

    for region in seeding:
        if region not in shape.regions:
            problems.append(f"seeding references unknown region {region!r}")

    for region in shape.regions:
        region_seeds = seeding.get(region) or {}
        missing = sorted(required - set(region_seeds))
        extra = sorted(set(region_seeds) - required)
        if missing:
            problems.append(f"{region}: missing seeds {missing}")
        if extra:
            problems.append(f"{region}: seeds out of range {extra}")
    return problems


def _validate_multi_team_seeding(topology: BracketTopology, seeding: SeedingTable) -> List[str]:
    problems: List[str] = []
    team_count = topology.shape.team_count
    regions = [r for r in seeding if r is not None]
    if regions:
        problems.append(f"multi-team event takes no regions, got {sorted(regions)}")

    event_seeds = seeding.get(None) or {}
    required = set(range(1, team_count + 1))
    missing = sorted(required - set(event_seeds))
    extra = sorted(set(event_seeds) - required)
    if missing:
        problems.append(f"missing seeds {missing} (exactly {team_count} seeded participants required)")
    if extra:
        problems.append(f"seeds out of range {extra}")
    return problems


def validate_seeding(topology: BracketTopology, seeding: SeedingTable) -> None:
    """Raise ShapeViolation listing every problem with the seeding table."""
    if topology.shape.has_regions:
        problems = _validate_regional_seeding(topology, seeding)
    else:
        problems = _validate_multi_team_seeding(topology, seeding)

    seen: Dict[int, str] = {}
    for region, region_seeds in seeding.items():
        for seed, team_id in (region_seeds or {}).items():
            if team_id is None:
                problems.append(f"{region or 'event'} seed {seed}: no participant")
                continue
            label = f"{region or 'event'} seed {seed}"
            if team_id in seen:
                problems.append(f"participant {team_id} seeded twice ({seen[team_id]}, {label})")
            else:
                seen[team_id] = label

    if problems:
        raise ShapeViolation(
            f"Seeding table incomplete or malformed for {topology.shape.kind}",
            problems,
        )


def _seed_lookup(spec: PositionSpec, seeding: SeedingTable, has_regions: bool) -> Mapping[int, int]:
    return seeding.get(spec.region if has_regions else None) or {}


def _build_game(
    spec: PositionSpec,
    topology: BracketTopology,
    seeding: SeedingTable,
    start_date: date,
    day_offsets: Optional[Mapping[Round, int]],
    tournament_id: Optional[int],
) -> Game:
    offset = spec.day_offset
    if day_offsets and spec.round in day_offsets:
        offset = day_offsets[spec.round]

    game = Game(
        tournament_id=tournament_id,
        round=spec.round.value,
        round_order=topology.round_order(spec.round),
        region=spec.region,
        bracket_position=spec.position,
        sequence_in_round=spec.sequence,
        status=GAME_SCHEDULED,
        scheduled_date=start_date + timedelta(days=offset),
    )

    lookup = _seed_lookup(spec, seeding, topology.shape.has_regions)
    if spec.seeds:
        home_seed, away_seed = spec.seeds
        game.set_participant(Slot.HOME, ParticipantSlot.known(lookup[home_seed], home_seed))
        game.set_participant(Slot.AWAY, ParticipantSlot.known(lookup[away_seed], away_seed))
    elif spec.placeholder_seeds:
        home_seed, away_seed = spec.placeholder_seeds
        game.set_participant(Slot.HOME, ParticipantSlot.placeholder(lookup[home_seed], home_seed))
        game.set_participant(Slot.AWAY, ParticipantSlot.placeholder(lookup[away_seed], away_seed))
    return game


def generate(
    shape: TournamentShape,
    seeding: SeedingTable,
    start_date: date,
    tournament_id: Optional[int] = None,
    day_offsets: Optional[Mapping[Round, int]] = None,
) -> List[Game]:
    """
    Generate every game of the bracket, ordered by round then position.

    Games are unpersisted and carry no advancement edges; run the progression
    linker over the result to attach them.

    Raises:
        ShapeViolation: unsupported shape or incomplete/malformed seeding table.
    """
    topology = build_topology(shape)
    validate_seeding(topology, seeding)

    games = [
        _build_game(spec, topology, seeding, start_date, day_offsets, tournament_id)
        for spec in sorted(topology.positions, key=lambda s: topology.round_order(s.round))
    ]

    logger.info(
        "Generated %d games for %s (tournament_id=%s)",
        len(games),
        shape.kind,
        tournament_id,
    )
    return games
