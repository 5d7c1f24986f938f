"""
Result propagation: one hop, idempotent, all-or-nothing, never silently
overwrites a known participant.
"""

import pytest
from sqlmodel import Session, select

from bracket_engine.models.game import GAME_COMPLETED, SLOT_KNOWN, Game, ParticipantSlot
from bracket_engine.services.bracket_builder import build_bracket
from bracket_engine.services.bracket_errors import (
    DUPLICATE_TOPOLOGY,
    GAME_NOT_COMPLETED,
    GAME_NOT_FOUND,
    INVALID_RESULT,
    LINK_VIOLATION,
    SLOT_ALREADY_RESOLVED,
    TOURNAMENT_NOT_FOUND,
)
from bracket_engine.services.bracket_topology import Slot
from bracket_engine.services.result_propagator import propagate, propagate_completed


def game_at(session: Session, tid: int, position: str) -> Game:
    return session.exec(
        select(Game).where(Game.tournament_id == tid, Game.bracket_position == position)
    ).one()


def complete(session: Session, game: Game, winner_slot: Slot = Slot.HOME) -> Game:
    """Record a result: the participant in winner_slot wins."""
    loser_slot = Slot.AWAY if winner_slot == Slot.HOME else Slot.HOME
    game.winner_team_id = game.participant(winner_slot).team_id
    game.loser_team_id = game.participant(loser_slot).team_id
    game.status = GAME_COMPLETED
    session.add(game)
    session.commit()
    session.refresh(game)
    return game


@pytest.fixture
def regional(session: Session, regional_tournament):
    tid = regional_tournament["tournament_id"]
    assert build_bracket(session, tid).ok
    return regional_tournament


@pytest.fixture
def mte(session: Session, mte_tournament):
    tid = mte_tournament["tournament_id"]
    assert build_bracket(session, tid).ok
    return mte_tournament


class TestSingleHop:
    def test_winner_fills_next_round_slot(self, session: Session, regional):
        tid = regional["tournament_id"]
        game = complete(session, game_at(session, tid, "E-R64-G2"), Slot.AWAY)  # 9 seed upsets 8

        result = propagate(session, game.id, game.winner_team_id, game.loser_team_id)

        assert result.ok
        assert [(u.bracket_position, u.slot, u.role) for u in result.updated] == [("E-R32-G1", "away", "winner")]
        target = game_at(session, tid, "E-R32-G1")
        assert target.away_participant == ParticipantSlot.known(regional["seeding"]["East"][9], 9)
        assert target.home_state != SLOT_KNOWN

    def test_only_target_slot_changes(self, session: Session, regional):
        tid = regional["tournament_id"]
        game = complete(session, game_at(session, tid, "E-R64-G2"), Slot.AWAY)

        def snapshot():
            games = session.exec(select(Game).where(Game.tournament_id == tid)).all()
            return {
                (g.bracket_position, slot.value): g.participant(slot)
                for g in games
                for slot in (Slot.HOME, Slot.AWAY)
            }

        before = snapshot()
        assert len(before) == 63 * 2

        assert propagate(session, game.id, game.winner_team_id, game.loser_team_id).ok

        after = snapshot()
        changed = sorted(key for key in before if before[key] != after[key])
        assert changed == [("E-R32-G1", "away")]

    def test_idempotent(self, session: Session, regional):
        tid = regional["tournament_id"]
        game = complete(session, game_at(session, tid, "W-R64-G1"))

        first = propagate(session, game.id, game.winner_team_id)
        second = propagate(session, game.id, game.winner_team_id)

        assert len(first.updated) == 1
        assert second.ok and second.updated == []
        assert game_at(session, tid, "W-R32-G1").home_team_id == game.winner_team_id

    def test_one_hop_only(self, session: Session, regional):
        tid = regional["tournament_id"]
        g1 = complete(session, game_at(session, tid, "S-R64-G1"))
        g2 = complete(session, game_at(session, tid, "S-R64-G2"))
        propagate(session, g1.id, g1.winner_team_id)
        propagate(session, g2.id, g2.winner_team_id)
        r32 = complete(session, game_at(session, tid, "S-R32-G1"))

        propagate(session, r32.id, r32.winner_team_id)

        assert game_at(session, tid, "S-S16-G1").home_team_id == g1.winner_team_id
        assert game_at(session, tid, "S-E8-G1").home_state != SLOT_KNOWN

    def test_terminal_is_noop(self, session: Session, regional):
        tid = regional["tournament_id"]
        champ = game_at(session, tid, "CHAMP")
        a, b = regional["seeding"]["East"][1], regional["seeding"]["South"][1]
        champ.set_participant(Slot.HOME, ParticipantSlot.known(a, 1))
        champ.set_participant(Slot.AWAY, ParticipantSlot.known(b, 1))
        complete(session, champ)

        result = propagate(session, champ.id, a, b)
        assert result.ok
        assert result.terminal
        assert result.updated == []


class TestPreconditions:
    def test_game_not_found(self, session: Session, regional):
        result = propagate(session, 99999, 1)
        assert [v.code for v in result.violations] == [GAME_NOT_FOUND]

    def test_game_not_completed(self, session: Session, regional):
        game = game_at(session, regional["tournament_id"], "E-R64-G1")
        result = propagate(session, game.id, game.home_team_id)
        assert [v.code for v in result.violations] == [GAME_NOT_COMPLETED]
        assert game_at(session, regional["tournament_id"], "E-R32-G1").home_team_id is None

    def test_winner_must_have_played(self, session: Session, regional):
        tid = regional["tournament_id"]
        game = complete(session, game_at(session, tid, "E-R64-G1"))
        stranger = regional["seeding"]["West"][1]
        result = propagate(session, game.id, stranger)
        assert [v.code for v in result.violations] == [INVALID_RESULT]

    def test_winner_equals_loser(self, session: Session, regional):
        tid = regional["tournament_id"]
        game = complete(session, game_at(session, tid, "E-R64-G1"))
        result = propagate(session, game.id, game.winner_team_id, game.winner_team_id)
        assert [v.code for v in result.violations] == [INVALID_RESULT]


class TestConflicts:
    def test_known_slot_not_overwritten(self, session: Session, regional):
        tid = regional["tournament_id"]
        game = complete(session, game_at(session, tid, "E-R64-G1"))
        target = game_at(session, tid, "E-R32-G1")
        other = regional["seeding"]["East"][16]
        target.set_participant(Slot.HOME, ParticipantSlot.known(other, 16))
        session.add(target)
        session.commit()

        result = propagate(session, game.id, game.winner_team_id)

        assert [v.code for v in result.violations] == [SLOT_ALREADY_RESOLVED]
        assert result.conflicts[0].context["current_team_id"] == other
        assert game_at(session, tid, "E-R32-G1").home_team_id == other

    def test_force_overwrites(self, session: Session, regional):
        tid = regional["tournament_id"]
        game = complete(session, game_at(session, tid, "E-R64-G1"))
        target = game_at(session, tid, "E-R32-G1")
        target.set_participant(Slot.HOME, ParticipantSlot.known(regional["seeding"]["East"][16], 16))
        session.add(target)
        session.commit()

        result = propagate(session, game.id, game.winner_team_id, force=True)

        assert result.ok
        assert result.updated[0].previous["team_id"] == regional["seeding"]["East"][16]
        assert game_at(session, tid, "E-R32-G1").home_team_id == game.winner_team_id

    def test_all_or_nothing_across_targets(self, session: Session, mte):
        tid = mte["tournament_id"]
        sf1 = complete(session, game_at(session, tid, "MTE-SF1"))
        cons = game_at(session, tid, "MTE-CONS")
        cons.set_participant(Slot.HOME, ParticipantSlot.known(mte["seeding"][None][4], 4))
        session.add(cons)
        session.commit()

        result = propagate(session, sf1.id, sf1.winner_team_id, sf1.loser_team_id)

        assert [v.code for v in result.violations] == [SLOT_ALREADY_RESOLVED]
        # Winner target was fine but nothing is written
        champ = game_at(session, tid, "MTE-CHAMP")
        assert champ.home_participant.is_placeholder

    def test_dangling_target(self, session: Session, regional):
        tid = regional["tournament_id"]
        game = complete(session, game_at(session, tid, "E-R64-G1"))
        session.delete(game_at(session, tid, "E-R32-G1"))
        session.commit()

        result = propagate(session, game.id, game.winner_team_id)
        assert [v.code for v in result.violations] == [LINK_VIOLATION]

    def test_duplicate_target(self, session: Session, regional):
        tid = regional["tournament_id"]
        game = complete(session, game_at(session, tid, "E-R64-G1"))
        session.add(Game(
            tournament_id=tid, round="round_of_32", round_order=2, region="East",
            bracket_position="E-R32-G1", sequence_in_round=1,
        ))
        session.commit()

        result = propagate(session, game.id, game.winner_team_id)
        assert [v.code for v in result.violations] == [DUPLICATE_TOPOLOGY]


class TestMultiTeamEvent:
    def test_semifinals_resolve_all_four_slots(self, session: Session, mte):
        tid = mte["tournament_id"]
        seeds = mte["seeding"][None]
        sf1 = complete(session, game_at(session, tid, "MTE-SF1"), Slot.AWAY)  # 2 beats 1
        sf2 = complete(session, game_at(session, tid, "MTE-SF2"))  # 3 beats 4

        assert propagate(session, sf1.id, sf1.winner_team_id, sf1.loser_team_id).ok
        assert propagate(session, sf2.id, sf2.winner_team_id, sf2.loser_team_id).ok

        champ = game_at(session, tid, "MTE-CHAMP")
        cons = game_at(session, tid, "MTE-CONS")
        assert champ.home_participant == ParticipantSlot.known(seeds[2], 2)
        assert champ.away_participant == ParticipantSlot.known(seeds[3], 3)
        assert cons.home_participant == ParticipantSlot.known(seeds[1], 1)
        assert cons.away_participant == ParticipantSlot.known(seeds[4], 4)
        for slot in (champ.home_participant, champ.away_participant, cons.home_participant, cons.away_participant):
            assert not slot.is_placeholder

    def test_placeholder_overwritten_without_force(self, session: Session, mte):
        tid = mte["tournament_id"]
        sf1 = complete(session, game_at(session, tid, "MTE-SF1"))
        result = propagate(session, sf1.id, sf1.winner_team_id, sf1.loser_team_id)
        assert result.ok
        assert {u.bracket_position for u in result.updated} == {"MTE-CHAMP", "MTE-CONS"}


class TestPropagateCompleted:
    def test_sweep_resolves_completed_games_in_round_order(self, session: Session, regional):
        tid = regional["tournament_id"]
        for seq in range(1, 9):
            complete(session, game_at(session, tid, f"E-R64-G{seq}"))
        # Out-of-order import: a second-round result recorded before the sweep
        r32 = game_at(session, tid, "E-R32-G1")
        r32.set_participant(Slot.HOME, ParticipantSlot.known(regional["seeding"]["East"][1], 1))
        r32.set_participant(Slot.AWAY, ParticipantSlot.known(regional["seeding"]["East"][8], 8))
        complete(session, r32)

        summary = propagate_completed(session, tid)

        assert summary["games_processed"] == 9
        assert summary["violations"] == []
        # E-R32-G1 already held both R64 winners; the other 6 R64 results plus the R32 result write
        assert summary["slots_resolved"] == 6 + 1
        assert summary["unresolved_after"] < summary["unresolved_before"]
        assert game_at(session, tid, "E-S16-G1").home_team_id == regional["seeding"]["East"][1]

    def test_sweep_reports_conflicts_without_forcing(self, session: Session, regional):
        tid = regional["tournament_id"]
        game = complete(session, game_at(session, tid, "E-R64-G1"))
        target = game_at(session, tid, "E-R32-G1")
        target.set_participant(Slot.HOME, ParticipantSlot.known(regional["seeding"]["East"][16], 16))
        session.add(target)
        session.commit()

        summary = propagate_completed(session, tid)

        assert [v["code"] for v in summary["violations"]] == [SLOT_ALREADY_RESOLVED]
        assert game_at(session, tid, "E-R32-G1").home_team_id == regional["seeding"]["East"][16]
        assert game.winner_team_id != regional["seeding"]["East"][16]

    def test_sweep_unknown_tournament(self, session: Session):
        summary = propagate_completed(session, 404)

        assert summary["games_processed"] == 0
        assert [v["code"] for v in summary["violations"]] == [TOURNAMENT_NOT_FOUND]
