"""
Bracket Builder - one-call bracket generation for a tournament

Runs the pipeline in strict order inside a single transaction:
1. Validate (tournament exists, shape is supported)
2. Apply the existing-games policy (refuse / replace / append)
3. Load the seeding table
4. Generate every game (topology_generator)
5. Link advancement edges in memory (progression_linker)
6. Insert and commit

Edges are keyed by bracket position, so linking happens before ids exist and
the whole bracket lands (or does not) in one commit.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

from sqlmodel import Session, select

from bracket_engine.models.game import Game
from bracket_engine.models.tournament import Tournament
from bracket_engine.models.tournament_seed import TournamentSeed
from bracket_engine.services import progression_linker, topology_generator
from bracket_engine.services.bracket_errors import (
    EXISTING_GAMES,
    TOURNAMENT_NOT_FOUND,
    ShapeViolation,
    Violation,
)
from bracket_engine.services.bracket_topology import build_topology
from bracket_engine.services.topology_generator import SeedingTable

logger = logging.getLogger(__name__)

ON_EXISTING_REFUSE = "refuse"
ON_EXISTING_REPLACE = "replace"
ON_EXISTING_APPEND = "append"
ON_EXISTING_POLICIES = (ON_EXISTING_REFUSE, ON_EXISTING_REPLACE, ON_EXISTING_APPEND)


@dataclass
class BuildResult:
    """Complete result of a bracket build"""

    tournament_id: int
    status: str = "success"
    on_existing: str = ON_EXISTING_REFUSE
    games_created: int = 0
    games_deleted: int = 0
    edges_written: int = 0
    round_counts: Dict[str, int] = field(default_factory=dict)
    violations: List[Violation] = field(default_factory=list)
    game_ids: List[int] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def codes(self) -> List[str]:
        return [v.code for v in self.violations]

    def to_dict(self) -> Dict:
        return {
            "status": self.status,
            "tournament_id": self.tournament_id,
            "on_existing": self.on_existing,
            "games_created": self.games_created,
            "games_deleted": self.games_deleted,
            "edges_written": self.edges_written,
            "round_counts": self.round_counts,
            "violations": [v.to_dict() for v in self.violations],
        }


def load_seeding_table(session: Session, tournament_id: int) -> SeedingTable:
    """TournamentSeed rows as {region: {seed: team_id}}; region is None for region-less shapes."""
    rows = session.exec(
        select(TournamentSeed)
        .where(TournamentSeed.tournament_id == tournament_id)
        .order_by(TournamentSeed.region, TournamentSeed.seed)
    ).all()

    table: Dict[Optional[str], Dict[int, int]] = defaultdict(dict)
    for row in rows:
        table[row.region][row.seed] = row.team_id
    return dict(table)


def _fail(result: BuildResult, violation: Violation) -> BuildResult:
    result.status = "error"
    result.violations.append(violation)
    return result


def build_bracket(
    session: Session,
    tournament_id: int,
    start_date: Optional[date] = None,
    on_existing: str = ON_EXISTING_REFUSE,
) -> BuildResult:
    """
    Generate, link and persist the full bracket for a tournament.

    Args:
        session: Database session
        tournament_id: Tournament ID
        start_date: First-round date (defaults to the tournament's start_date)
        on_existing: What to do when the tournament already has games:
            "refuse" writes nothing and reports EXISTING_GAMES,
            "replace" deletes them in the same transaction (resolutions are lost),
            "append" inserts alongside them (duplicates for the guard to prune)

    Returns:
        BuildResult; domain failures come back as violations with status "error"

    Raises:
        ValueError: unknown on_existing policy
        RuntimeError: database failure (transaction rolled back)
    """
    if on_existing not in ON_EXISTING_POLICIES:
        raise ValueError(f"on_existing must be one of {ON_EXISTING_POLICIES}, got {on_existing!r}")

    result = BuildResult(tournament_id=tournament_id, on_existing=on_existing)

    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        return _fail(result, Violation(code=TOURNAMENT_NOT_FOUND, message=f"Tournament {tournament_id} not found"))

    try:
        shape = tournament.bracket_shape()
        topology = build_topology(shape)
    except ShapeViolation as exc:
        return _fail(result, exc.to_violation())

    try:
        existing = session.exec(select(Game).where(Game.tournament_id == tournament_id)).all()
        if existing and on_existing == ON_EXISTING_REFUSE:
            return _fail(result, Violation(
                code=EXISTING_GAMES,
                message=(
                    f"Tournament {tournament_id} already has {len(existing)} games; "
                    f"use on_existing=replace or append, or prune first"
                ),
                context={"existing_games": len(existing)},
            ))

        seeding = load_seeding_table(session, tournament_id)
        try:
            games = topology_generator.generate(
                shape,
                seeding,
                start_date or tournament.start_date,
                tournament_id=tournament_id,
            )
        except ShapeViolation as exc:
            return _fail(result, exc.to_violation())

        linked = progression_linker.link(games, topology)
        if not linked.ok:
            # A freshly generated set is complete; a dangling edge here is a topology bug
            result.violations.extend(linked.violations)
            result.status = "error"
            return result

        if existing and on_existing == ON_EXISTING_REPLACE:
            for game in existing:
                session.delete(game)
            result.games_deleted = len(existing)
            session.flush()

        for game in games:
            session.add(game)
        session.commit()

    except Exception as e:
        session.rollback()
        logger.exception("Bracket build failed for tournament %d, transaction rolled back", tournament_id)
        raise RuntimeError(f"Bracket build failed: {e}") from e

    counts: Dict[str, int] = defaultdict(int)
    for game in games:
        counts[game.round] += 1
        result.game_ids.append(game.id)
    result.round_counts = dict(counts)
    result.games_created = len(games)
    result.edges_written = linked.edges_written

    logger.info(
        "Built %s bracket for tournament %d: %d games, %d edges (on_existing=%s, deleted=%d)",
        shape.kind,
        tournament_id,
        result.games_created,
        result.edges_written,
        on_existing,
        result.games_deleted,
    )
    return result
