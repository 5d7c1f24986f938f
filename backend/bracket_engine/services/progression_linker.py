"""
Progression Linker: writes advancement edges onto generated games.

Edges come from the shared BracketTopology and are keyed by bracket position,
so linking is a pure function of positions: running it twice yields the same
edges, and it can run before or after ids are assigned.

A target position missing from the game set is a LinkViolation. It is logged
and reported per edge; the rest of the graph is still linked and the dangling
edge is not written (relink after repair fills it in).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from bracket_engine.models.game import Game
from bracket_engine.models.tournament import Tournament
from bracket_engine.services.bracket_errors import (
    LINK_VIOLATION,
    TOURNAMENT_NOT_FOUND,
    ShapeViolation,
    Violation,
)
from bracket_engine.services.bracket_topology import (
    AdvancementEdges,
    AdvancementTarget,
    BracketTopology,
    build_topology,
)

logger = logging.getLogger(__name__)


@dataclass
class LinkResult:
    games: List[Game] = field(default_factory=list)
    edges_written: int = 0
    violations: List[Violation] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.violations

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "games": len(self.games),
            "edges_written": self.edges_written,
            "violations": [v.to_dict() for v in self.violations],
        }


def _check_target(
    source: Game,
    role: str,
    target: AdvancementTarget,
    present: Dict[str, List[Game]],
    violations: List[Violation],
) -> bool:
    if target.position in present:
        return True
    violation = Violation(
        code=LINK_VIOLATION,
        message=(
            f"{source.bracket_position} {role} target {target.position} "
            f"({target.slot.value}) does not exist"
        ),
        bracket_position=source.bracket_position,
        game_id=source.id,
        context={"role": role, "target_position": target.position, "target_slot": target.slot.value},
    )
    logger.warning("LinkViolation: %s", violation.message)
    violations.append(violation)
    return False


def link(games: List[Game], topology: BracketTopology) -> LinkResult:
    """
    Populate winner/loser targets on every game whose bracket position is in
    the topology. Games outside the topology (stale or hand-imported) are left
    untouched; the consistency guard reports them.
    """
    present: Dict[str, List[Game]] = {}
    for game in games:
        if game.bracket_position:
            present.setdefault(game.bracket_position, []).append(game)

    result = LinkResult(games=games)
    for game in games:
        if not game.bracket_position or topology.position(game.bracket_position) is None:
            continue

        expected = topology.edges_for(game.bracket_position)
        winner = expected.winner
        loser = expected.loser
        if winner and not _check_target(game, "winner", winner, present, result.violations):
            winner = None
        if loser and not _check_target(game, "loser", loser, present, result.violations):
            loser = None

        edges = AdvancementEdges(winner=winner, loser=loser)
        game.set_advancement(edges)
        result.edges_written += int(winner is not None) + int(loser is not None)

    return result


def relink(session: Session, tournament_id: int) -> LinkResult:
    """
    Re-read persisted games and rewrite their edges in one transaction.
    Idempotent: only advancement columns are touched, never participant slots.
    """
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        return LinkResult(violations=[Violation(
            code=TOURNAMENT_NOT_FOUND,
            message=f"Tournament {tournament_id} not found",
        )])

    try:
        topology = build_topology(tournament.bracket_shape())
    except ShapeViolation as exc:
        return LinkResult(violations=[exc.to_violation()])

    games = session.exec(
        select(Game)
        .where(Game.tournament_id == tournament_id)
        .order_by(Game.round_order, Game.bracket_position, Game.id)
    ).all()

    result = link(list(games), topology)
    try:
        for game in result.games:
            session.add(game)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Relink failed for tournament %d, transaction rolled back", tournament_id)
        raise

    logger.info(
        "Relinked tournament %d: %d games, %d edges, %d link violations",
        tournament_id,
        len(result.games),
        result.edges_written,
        len(result.violations),
    )
    return result
