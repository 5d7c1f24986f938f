"""
Consistency Guard
=================
Read-only validation plus explicit repair for a tournament's game graph.

Bracket generation is not idempotent and imported brackets arrive with stale
rounds or broken links, so the guard is the recovery path: always `validate`
first, then `prune` with an explicit keep set.

Invariants checked by validate():
  1) Exactly one game per bracket position (DUPLICATE_TOPOLOGY, ORPHAN_GAME)
  2) Winner/loser edges form in-trees converging on the terminal games
     (LINK_VIOLATION, MISSING_WINNER_TARGET, TERMINAL_HAS_EDGE,
     UNEXPECTED_LOSER_TARGET, CYCLE)
  3) Every fed slot is targeted by exactly one upstream edge
     (SLOT_MULTIPLY_FED, SLOT_UNFED)
  4) Per-round and total game counts match the shape
     (ROUND_COUNT_MISMATCH, GAME_COUNT_MISMATCH)
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from bracket_engine.models.game import Game
from bracket_engine.models.tournament import Tournament
from bracket_engine.services.bracket_errors import (
    CYCLE,
    DUPLICATE_TOPOLOGY,
    GAME_COUNT_MISMATCH,
    LINK_VIOLATION,
    MISSING_WINNER_TARGET,
    ORPHAN_GAME,
    ROUND_COUNT_MISMATCH,
    SLOT_MULTIPLY_FED,
    SLOT_UNFED,
    TERMINAL_HAS_EDGE,
    TOURNAMENT_NOT_FOUND,
    UNEXPECTED_LOSER_TARGET,
    ShapeViolation,
    Violation,
    ViolationReport,
)
from bracket_engine.services.bracket_topology import BracketTopology, Slot, build_topology

logger = logging.getLogger(__name__)


# ─── Data structures ─────────────────────────────────────────────────────

@dataclass
class DuplicateGroup:
    key: str
    game_ids: List[int]  # earliest-created first
    keyed_by: str  # "bracket_position" | "matchup"

    @property
    def canonical_id(self) -> int:
        return self.game_ids[0]

    @property
    def redundant_ids(self) -> List[int]:
        return self.game_ids[1:]

    def to_dict(self) -> Dict:
        return {
            "key": self.key,
            "keyed_by": self.keyed_by,
            "game_ids": self.game_ids,
            "canonical_id": self.canonical_id,
            "redundant_ids": self.redundant_ids,
        }


@dataclass
class PruneResult:
    deleted_ids: List[int] = field(default_factory=list)
    kept_ids: List[int] = field(default_factory=list)
    unknown_keep_ids: List[int] = field(default_factory=list)
    violations: List[Violation] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.violations

    def to_dict(self) -> Dict:
        return {
            "deleted_count": len(self.deleted_ids),
            "deleted_ids": self.deleted_ids,
            "kept_count": len(self.kept_ids),
            "unknown_keep_ids": self.unknown_keep_ids,
            "violations": [v.to_dict() for v in self.violations],
        }


# ─── Helpers ──────────────────────────────────────────────────────────────

def _load_games(session: Session, tournament_id: int) -> List[Game]:
    return list(session.exec(
        select(Game)
        .where(Game.tournament_id == tournament_id)
        .order_by(Game.created_at, Game.id)
    ).all())


def matchup_key(game: Game) -> str:
    """Duplicate key for a game: its bracket position, or home-away-round for unpositioned rows."""
    if game.bracket_position:
        return game.bracket_position
    return f"{game.home_team_id}-{game.away_team_id}-{game.round}"


def _group_by_position(games: Iterable[Game]) -> Dict[str, List[Game]]:
    groups: Dict[str, List[Game]] = defaultdict(list)
    for game in games:
        if game.bracket_position:
            groups[game.bracket_position].append(game)
    return groups


# ─── Duplicates / prune ───────────────────────────────────────────────────

def find_duplicates(session: Session, tournament_id: int) -> List[DuplicateGroup]:
    """
    Group the tournament's games by matchup key and report every group with
    more than one member. Members are ordered earliest-created first; the
    first is canonical.
    """
    groups: Dict[str, List[Game]] = defaultdict(list)
    for game in _load_games(session, tournament_id):
        groups[matchup_key(game)].append(game)

    duplicates = [
        DuplicateGroup(
            key=key,
            game_ids=[g.id for g in members],
            keyed_by="bracket_position" if members[0].bracket_position else "matchup",
        )
        for key, members in groups.items()
        if len(members) > 1
    ]
    duplicates.sort(key=lambda d: d.key)
    return duplicates


def canonical_keep_set(session: Session, tournament_id: int) -> Set[int]:
    """
    Earliest-created game for every position the tournament's topology
    defines. Stale games from another shape and unpositioned rows are excluded.

    Raises ShapeViolation when the stored shape is unsupported.
    """
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        return set()
    topology = build_topology(tournament.bracket_shape())
    wanted = set(topology.labels())

    keep: Set[int] = set()
    for position, members in _group_by_position(_load_games(session, tournament_id)).items():
        if position in wanted:
            keep.add(members[0].id)
    return keep


def prune(session: Session, tournament_id: int, keep: Set[int]) -> PruneResult:
    """Delete every game of the tournament whose id is not in `keep`, in one transaction."""
    games = _load_games(session, tournament_id)
    present = {g.id for g in games}

    result = PruneResult(
        kept_ids=sorted(present & set(keep)),
        unknown_keep_ids=sorted(set(keep) - present),
    )
    try:
        for game in games:
            if game.id not in keep:
                result.deleted_ids.append(game.id)
                session.delete(game)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Prune failed for tournament %d, transaction rolled back", tournament_id)
        raise

    logger.info(
        "Pruned tournament %d: deleted %d, kept %d",
        tournament_id,
        len(result.deleted_ids),
        len(result.kept_ids),
    )
    return result


def prune_canonical(session: Session, tournament_id: int) -> PruneResult:
    """
    Prune down to canonical_keep_set. An unsupported stored shape deletes
    nothing and comes back as a SHAPE_VIOLATION.
    """
    try:
        keep = canonical_keep_set(session, tournament_id)
    except ShapeViolation as exc:
        logger.warning("Canonical prune skipped for tournament %d: %s", tournament_id, exc)
        return PruneResult(violations=[exc.to_violation()])
    return prune(session, tournament_id, keep)


# ─── Invariant 1: one game per position ──────────────────────────────────

def _check_positions(
    games: List[Game],
    topology: BracketTopology,
) -> List[Violation]:
    wanted = set(topology.labels())
    violations: List[Violation] = []

    for game in games:
        if not game.bracket_position or game.bracket_position not in wanted:
            violations.append(Violation(
                code=ORPHAN_GAME,
                message=(
                    f"Game {game.id} ({game.round}, position {game.bracket_position or 'none'}) "
                    f"is not part of the {topology.shape.kind} topology"
                ),
                bracket_position=game.bracket_position,
                game_id=game.id,
            ))

    for position, members in sorted(_group_by_position(games).items()):
        if len(members) > 1:
            violations.append(Violation(
                code=DUPLICATE_TOPOLOGY,
                message=f"{len(members)} games share bracket position {position}",
                bracket_position=position,
                context={"game_ids": [g.id for g in members]},
            ))
    return violations


# ─── Invariant 2: edges form in-trees ─────────────────────────────────────

def _check_edges(
    canonical: Dict[str, Game],
    topology: BracketTopology,
) -> Tuple[List[Violation], Set[Tuple[str, str]]]:
    """Returns violations plus the set of (source_position, role) whose edge dangles."""
    violations: List[Violation] = []
    dangling: Set[Tuple[str, str]] = set()
    terminal = topology.terminal_positions
    has_consolation = topology.shape.has_consolation

    for position, game in sorted(canonical.items()):
        edges = game.advancement

        if position in terminal:
            if not edges.is_terminal:
                violations.append(Violation(
                    code=TERMINAL_HAS_EDGE,
                    message=f"Terminal game {position} has outgoing advancement edges",
                    bracket_position=position,
                    game_id=game.id,
                ))
            continue

        if edges.winner is None:
            violations.append(Violation(
                code=MISSING_WINNER_TARGET,
                message=f"{position} has no winner target",
                bracket_position=position,
                game_id=game.id,
            ))
        if edges.loser is not None and not has_consolation:
            violations.append(Violation(
                code=UNEXPECTED_LOSER_TARGET,
                message=f"{position} has a loser target but {topology.shape.kind} has no consolation bracket",
                bracket_position=position,
                game_id=game.id,
            ))

        for role, target in (("winner", edges.winner), ("loser", edges.loser)):
            if target is not None and target.position not in canonical:
                dangling.add((position, role))
                violations.append(Violation(
                    code=LINK_VIOLATION,
                    message=f"{position} {role} target {target.position} does not exist",
                    bracket_position=position,
                    game_id=game.id,
                    context={"role": role, "target_position": target.position},
                ))

    violations.extend(_check_cycles(canonical))
    return violations, dangling


def _check_cycles(canonical: Dict[str, Game]) -> List[Violation]:
    graph: Dict[str, List[str]] = {}
    for position, game in canonical.items():
        edges = game.advancement
        graph[position] = [
            t.position for t in (edges.winner, edges.loser)
            if t is not None and t.position in canonical
        ]

    violations: List[Violation] = []
    state: Dict[str, int] = {}  # 1 = on stack, 2 = done

    for start in sorted(graph):
        if state.get(start):
            continue
        stack: List[Tuple[str, int]] = [(start, 0)]
        path: List[str] = []
        while stack:
            node, idx = stack.pop()
            if idx == 0:
                state[node] = 1
                path.append(node)
            children = graph[node]
            if idx < len(children):
                stack.append((node, idx + 1))
                child = children[idx]
                if state.get(child) == 1:
                    cycle = path[path.index(child):] + [child]
                    violations.append(Violation(
                        code=CYCLE,
                        message="Advancement cycle: " + " -> ".join(cycle),
                        bracket_position=child,
                        context={"cycle": cycle},
                    ))
                elif not state.get(child):
                    stack.append((child, 0))
            else:
                state[node] = 2
                path.pop()
    return violations


# ─── Invariant 3: every fed slot has exactly one feeder ───────────────────

def _check_slot_feeds(
    canonical: Dict[str, Game],
    topology: BracketTopology,
    dangling: Set[Tuple[str, str]],
) -> List[Violation]:
    feeds: Dict[Tuple[str, str], List[str]] = defaultdict(list)
    for position, game in canonical.items():
        edges = game.advancement
        for target in (edges.winner, edges.loser):
            if target is not None:
                feeds[(target.position, target.slot.value)].append(position)

    violations: List[Violation] = []
    for (position, slot), sources in sorted(feeds.items()):
        if len(sources) > 1 and position in canonical:
            violations.append(Violation(
                code=SLOT_MULTIPLY_FED,
                message=f"{position} {slot} is fed by {len(sources)} games: {', '.join(sorted(sources))}",
                bracket_position=position,
                game_id=canonical[position].id,
                context={"slot": slot, "sources": sorted(sources)},
            ))

    for position, game in sorted(canonical.items()):
        if topology.position(position) is None:
            continue
        for slot in (Slot.HOME, Slot.AWAY):
            expected = topology.feeder_for_slot(position, slot)
            if expected is None or feeds.get((position, slot.value)):
                continue
            # A dangling edge on the expected feeder is already reported as a LINK_VIOLATION
            if expected.source in canonical and (expected.source, expected.role) in dangling:
                continue
            violations.append(Violation(
                code=SLOT_UNFED,
                message=f"{position} {slot.value} has no upstream edge (expected {expected.role} of {expected.source})",
                bracket_position=position,
                game_id=game.id,
                context={"slot": slot.value, "expected_source": expected.source},
            ))
    return violations


# ─── Invariant 4: counts ──────────────────────────────────────────────────

def _check_counts(games: List[Game], topology: BracketTopology) -> List[Violation]:
    violations: List[Violation] = []
    actual: Dict[str, int] = defaultdict(int)
    for game in games:
        actual[game.round] += 1

    for round_, expected in topology.round_counts().items():
        count = actual.get(round_.value, 0)
        if count != expected:
            violations.append(Violation(
                code=ROUND_COUNT_MISMATCH,
                message=f"{round_.value}: expected {expected} games, found {count}",
                context={"round": round_.value, "expected": expected, "actual": count},
            ))

    if len(games) != topology.total_games:
        violations.append(Violation(
            code=GAME_COUNT_MISMATCH,
            message=f"Expected {topology.total_games} games, found {len(games)}",
            context={"expected": topology.total_games, "actual": len(games)},
        ))
    return violations


# ─── Main verifier ────────────────────────────────────────────────────────

def validate_games(games: List[Game], topology: BracketTopology) -> ViolationReport:
    """Check all four graph invariants over an in-memory game list. Never mutates."""
    violations = _check_positions(games, topology)

    # Earliest game per in-topology position stands in for its duplicates
    canonical: Dict[str, Game] = {}
    wanted = set(topology.labels())
    for position, members in _group_by_position(games).items():
        if position in wanted:
            canonical[position] = members[0]

    edge_violations, dangling = _check_edges(canonical, topology)
    violations.extend(edge_violations)
    violations.extend(_check_slot_feeds(canonical, topology, dangling))
    violations.extend(_check_counts(games, topology))

    return ViolationReport(ok=not violations, violations=violations)


def validate(session: Session, tournament_id: int) -> ViolationReport:
    """Read-only validation of a persisted tournament bracket."""
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        return ViolationReport(ok=False, violations=[Violation(
            code=TOURNAMENT_NOT_FOUND,
            message=f"Tournament {tournament_id} not found",
        )])

    try:
        topology = build_topology(tournament.bracket_shape())
    except ShapeViolation as exc:
        return ViolationReport(ok=False, violations=[exc.to_violation()])

    report = validate_games(_load_games(session, tournament_id), topology)
    if not report.ok:
        logger.info(
            "Tournament %d failed validation: %d violation(s) %s",
            tournament_id,
            len(report.violations),
            sorted(set(report.codes())),
        )
    return report
