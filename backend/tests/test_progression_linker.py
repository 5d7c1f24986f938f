"""
Tests for the progression linker: edges keyed by bracket position, idempotent,
dangling targets reported and skipped.
"""

from datetime import date

from sqlmodel import Session, select

from bracket_engine.models.game import Game, ParticipantSlot
from bracket_engine.services.bracket_errors import LINK_VIOLATION, TOURNAMENT_NOT_FOUND
from bracket_engine.services.bracket_topology import (
    AdvancementTarget,
    BracketedMultiTeamEvent,
    RegionalSingleElimination,
    Slot,
    build_topology,
)
from bracket_engine.services.bracket_builder import build_bracket
from bracket_engine.services.progression_linker import link, relink
from bracket_engine.services.topology_generator import generate

from tests.test_topology_generator import mte_seeding, regional_seeding

START = date(2026, 3, 19)


def _edge_snapshot(games):
    return {
        g.bracket_position: (
            g.winner_target_position, g.winner_target_slot,
            g.loser_target_position, g.loser_target_slot,
        )
        for g in games
    }


def test_link_regional_writes_62_edges():
    shape = RegionalSingleElimination()
    games = generate(shape, regional_seeding(), START)
    result = link(games, build_topology(shape))

    assert result.ok
    assert result.edges_written == 62
    games_by_pos = {g.bracket_position: g for g in games}
    assert games_by_pos["E-R64-G1"].advancement.winner == AdvancementTarget("E-R32-G1", Slot.HOME)
    assert games_by_pos["M-E8-G1"].advancement.winner == AdvancementTarget("FF-G2", Slot.AWAY)
    assert games_by_pos["CHAMP"].advancement.is_terminal


def test_link_multi_team_writes_loser_edges():
    shape = BracketedMultiTeamEvent()
    games = generate(shape, mte_seeding(), START)
    result = link(games, build_topology(shape))

    assert result.ok
    assert result.edges_written == 4
    sf2 = next(g for g in games if g.bracket_position == "MTE-SF2")
    assert sf2.advancement.loser == AdvancementTarget("MTE-CONS", Slot.AWAY)


def test_link_is_idempotent():
    shape = RegionalSingleElimination()
    topology = build_topology(shape)
    games = generate(shape, regional_seeding(), START)

    link(games, topology)
    first = _edge_snapshot(games)
    link(games, topology)
    assert _edge_snapshot(games) == first


def test_missing_target_is_link_violation_and_edge_not_written():
    shape = RegionalSingleElimination()
    games = [g for g in generate(shape, regional_seeding(), START) if g.bracket_position != "FF-G1"]
    result = link(games, build_topology(shape))

    assert not result.ok
    assert [v.code for v in result.violations] == [LINK_VIOLATION, LINK_VIOLATION]
    assert {v.bracket_position for v in result.violations} == {"E-E8-G1", "W-E8-G1"}
    east = next(g for g in games if g.bracket_position == "E-E8-G1")
    assert east.advancement.winner is None
    # The rest of the graph is still linked
    assert result.edges_written == 59


def test_link_skips_games_outside_topology():
    shape = BracketedMultiTeamEvent()
    games = generate(shape, mte_seeding(), START)
    stray = Game(tournament_id=1, round="round_of_64", region="East", bracket_position="E-R64-G1")
    result = link(games + [stray], build_topology(shape))
    assert result.ok
    assert stray.advancement.is_terminal


def test_relink_restores_cleared_edges(session: Session, regional_tournament):
    tid = regional_tournament["tournament_id"]
    assert build_bracket(session, tid).ok

    games = session.exec(select(Game).where(Game.tournament_id == tid)).all()
    before = _edge_snapshot(games)
    for g in games:
        g.winner_target_position = None
        g.winner_target_slot = None
        session.add(g)
    session.commit()

    result = relink(session, tid)
    assert result.ok
    assert result.edges_written == 62

    session.expire_all()
    games = session.exec(select(Game).where(Game.tournament_id == tid)).all()
    assert _edge_snapshot(games) == before


def test_relink_never_touches_participants(session: Session, mte_tournament):
    tid = mte_tournament["tournament_id"]
    assert build_bracket(session, tid).ok

    champ = session.exec(
        select(Game).where(Game.tournament_id == tid, Game.bracket_position == "MTE-CHAMP")
    ).one()
    champ.set_participant(Slot.HOME, ParticipantSlot.known(champ.home_team_id, 1))
    session.add(champ)
    session.commit()

    relink(session, tid)
    session.refresh(champ)
    assert champ.home_participant.is_resolved


def test_relink_unknown_tournament(session: Session):
    result = relink(session, 999)
    assert [v.code for v in result.violations] == [TOURNAMENT_NOT_FOUND]
