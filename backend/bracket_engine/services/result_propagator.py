"""
Result Propagator: when a game is completed, write its winner (and, for
consolation-bearing shapes, its loser) into the downstream slot(s) named by
its advancement edges.

One hop per call. A downstream game that is itself already completed is not
propagated further; the caller re-invokes for it (propagate_completed does
that sweep deterministically).

Guarantees:
    - Idempotent: re-propagating the same result writes nothing
    - All-or-nothing across the (at most two) target writes
    - A non-placeholder known slot is never overwritten unless force=True
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from bracket_engine.models.game import GAME_COMPLETED, SLOT_KNOWN, Game, ParticipantSlot
from bracket_engine.models.tournament import Tournament
from bracket_engine.services.bracket_errors import (
    DUPLICATE_TOPOLOGY,
    GAME_NOT_COMPLETED,
    GAME_NOT_FOUND,
    INVALID_RESULT,
    LINK_VIOLATION,
    SLOT_ALREADY_RESOLVED,
    TOURNAMENT_NOT_FOUND,
    Violation,
)
from bracket_engine.services.bracket_topology import AdvancementTarget, Slot

logger = logging.getLogger(__name__)

ROLE_WINNER = "winner"
ROLE_LOSER = "loser"


@dataclass
class UpdatedSlot:
    game_id: int
    bracket_position: Optional[str]
    slot: str
    role: str
    team_id: int
    previous: Dict

    def to_dict(self) -> Dict:
        return {
            "game_id": self.game_id,
            "bracket_position": self.bracket_position,
            "slot": self.slot,
            "role": self.role,
            "team_id": self.team_id,
            "previous": self.previous,
        }


@dataclass
class PropagationResult:
    game_id: int
    updated: List[UpdatedSlot] = field(default_factory=list)
    violations: List[Violation] = field(default_factory=list)
    terminal: bool = False

    @property
    def ok(self) -> bool:
        return not self.violations

    @property
    def conflicts(self) -> List[Violation]:
        return [v for v in self.violations if v.code == SLOT_ALREADY_RESOLVED]

    def to_dict(self) -> Dict:
        return {
            "game_id": self.game_id,
            "ok": self.ok,
            "terminal": self.terminal,
            "updated": [u.to_dict() for u in self.updated],
            "violations": [v.to_dict() for v in self.violations],
        }


def _seed_of(game: Game, team_id: int) -> Optional[int]:
    if game.home_team_id == team_id:
        return game.home_seed
    if game.away_team_id == team_id:
        return game.away_seed
    return None


def _check_result(game: Game, winner_team_id: int, loser_team_id: Optional[int]) -> Optional[Violation]:
    if loser_team_id is not None and loser_team_id == winner_team_id:
        return Violation(
            code=INVALID_RESULT,
            message=f"Winner and loser are the same participant ({winner_team_id})",
            bracket_position=game.bracket_position,
            game_id=game.id,
        )
    # Only check membership once both sides are final
    home, away = game.home_participant, game.away_participant
    if home.is_resolved and away.is_resolved:
        participants = {home.team_id, away.team_id}
        stray = [t for t in (winner_team_id, loser_team_id) if t is not None and t not in participants]
        if stray:
            return Violation(
                code=INVALID_RESULT,
                message=(
                    f"Participant(s) {stray} did not play in {game.bracket_position} "
                    f"({home.team_id} vs {away.team_id})"
                ),
                bracket_position=game.bracket_position,
                game_id=game.id,
                context={"home_team_id": home.team_id, "away_team_id": away.team_id},
            )
    return None


def _load_target(
    session: Session,
    game: Game,
    role: str,
    target: AdvancementTarget,
) -> Tuple[Optional[Game], Optional[Violation]]:
    # Row lock serializes concurrent propagations into the same slot (no-op on SQLite)
    rows = session.exec(
        select(Game)
        .where(
            Game.tournament_id == game.tournament_id,
            Game.bracket_position == target.position,
        )
        .order_by(Game.created_at, Game.id)
        .with_for_update()
    ).all()
    if not rows:
        return None, Violation(
            code=LINK_VIOLATION,
            message=f"{game.bracket_position} {role} target {target.position} does not exist",
            bracket_position=game.bracket_position,
            game_id=game.id,
            context={"role": role, "target_position": target.position},
        )
    if len(rows) > 1:
        return None, Violation(
            code=DUPLICATE_TOPOLOGY,
            message=(
                f"{len(rows)} games share bracket position {target.position}; "
                f"validate and prune before propagating"
            ),
            bracket_position=target.position,
            game_id=game.id,
            context={"game_ids": [r.id for r in rows]},
        )
    return rows[0], None


def propagate(
    session: Session,
    game_id: int,
    winner_team_id: int,
    loser_team_id: Optional[int] = None,
    force: bool = False,
) -> PropagationResult:
    """
    Resolve the downstream slot(s) fed by a completed game.

    Terminal games (no edges) are a no-op. A target slot that already holds a
    different non-placeholder participant yields SLOT_ALREADY_RESOLVED and
    nothing is written, unless force=True.
    """
    result = PropagationResult(game_id=game_id)

    game = session.get(Game, game_id)
    if not game:
        result.violations.append(Violation(code=GAME_NOT_FOUND, message=f"Game {game_id} not found", game_id=game_id))
        return result

    if game.status != GAME_COMPLETED:
        result.violations.append(Violation(
            code=GAME_NOT_COMPLETED,
            message=f"Game {game_id} is '{game.status}'; only completed games propagate",
            bracket_position=game.bracket_position,
            game_id=game_id,
        ))
        return result

    invalid = _check_result(game, winner_team_id, loser_team_id)
    if invalid:
        result.violations.append(invalid)
        return result

    edges = game.advancement
    if edges.winner is None:
        result.terminal = edges.loser is None
        if result.terminal:
            return result

    planned: List[Tuple[Game, str, AdvancementTarget, int]] = []
    jobs = [(ROLE_WINNER, edges.winner, winner_team_id)]
    if loser_team_id is not None:
        jobs.append((ROLE_LOSER, edges.loser, loser_team_id))

    for role, target, team_id in jobs:
        if target is None:
            continue
        down, problem = _load_target(session, game, role, target)
        if problem:
            result.violations.append(problem)
            continue

        current = down.participant(target.slot)
        if current.state == SLOT_KNOWN:
            if current.team_id == team_id:
                continue
            if not force:
                conflict = Violation(
                    code=SLOT_ALREADY_RESOLVED,
                    message=(
                        f"{target.position} {target.slot.value} already holds participant "
                        f"{current.team_id}; refusing to overwrite with {team_id}"
                    ),
                    bracket_position=target.position,
                    game_id=down.id,
                    context={
                        "source_game_id": game.id,
                        "role": role,
                        "slot": target.slot.value,
                        "current_team_id": current.team_id,
                        "incoming_team_id": team_id,
                    },
                )
                logger.warning("SlotAlreadyResolved: %s", conflict.message)
                result.violations.append(conflict)
                continue
            logger.warning(
                "Forced overwrite of %s %s: %s -> %s",
                target.position, target.slot.value, current.team_id, team_id,
            )
        planned.append((down, role, target, team_id))

    if result.violations:
        session.rollback()
        return result

    try:
        for down, role, target, team_id in planned:
            previous = down.participant(target.slot)
            down.set_participant(target.slot, ParticipantSlot.known(team_id, _seed_of(game, team_id)))
            session.add(down)
            result.updated.append(UpdatedSlot(
                game_id=down.id,
                bracket_position=down.bracket_position,
                slot=target.slot.value,
                role=role,
                team_id=team_id,
                previous=previous.to_dict(),
            ))
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Propagation from game %d failed, transaction rolled back", game_id)
        raise

    return result


def propagate_completed(session: Session, tournament_id: int) -> Dict:
    """
    Re-run one-hop propagation for every completed game with a recorded winner,
    in round order then bracket position. Never forces.

    Returns:
        Dict with:
        - games_processed: completed games visited
        - slots_resolved: downstream slots written
        - unresolved_before / unresolved_after: games with an open slot
        - violations: every conflict or link problem encountered
    """
    if not session.get(Tournament, tournament_id):
        return {
            "games_processed": 0,
            "slots_resolved": 0,
            "unresolved_before": 0,
            "unresolved_after": 0,
            "violations": [Violation(
                code=TOURNAMENT_NOT_FOUND,
                message=f"Tournament {tournament_id} not found",
            ).to_dict()],
        }

    def _count_unresolved() -> int:
        games = session.exec(select(Game).where(Game.tournament_id == tournament_id)).all()
        return sum(1 for g in games if not (g.home_participant.is_resolved and g.away_participant.is_resolved))

    unresolved_before = _count_unresolved()

    completed = session.exec(
        select(Game)
        .where(
            Game.tournament_id == tournament_id,
            Game.status == GAME_COMPLETED,
            Game.winner_team_id.is_not(None),
        )
        .order_by(Game.round_order, Game.bracket_position, Game.id)
    ).all()
    work = [(g.id, g.winner_team_id, g.loser_team_id) for g in completed]

    slots_resolved = 0
    violations: List[Dict] = []
    for game_id, winner_id, loser_id in work:
        step = propagate(session, game_id, winner_id, loser_id)
        slots_resolved += len(step.updated)
        violations.extend(v.to_dict() for v in step.violations)

    session.expire_all()
    return {
        "games_processed": len(work),
        "slots_resolved": slots_resolved,
        "unresolved_before": unresolved_before,
        "unresolved_after": _count_unresolved(),
        "violations": violations,
    }
