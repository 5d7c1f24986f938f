"""
Tests for the topology generator: pure game-set construction from a shape and seeding table.
"""

from datetime import date, timedelta

import pytest

from bracket_engine.models.game import SLOT_KNOWN, SLOT_PLACEHOLDER, SLOT_UNRESOLVED
from bracket_engine.services.bracket_errors import ShapeViolation
from bracket_engine.services.bracket_topology import (
    DEFAULT_REGIONS,
    BracketedMultiTeamEvent,
    RegionalSingleElimination,
    Round,
)
from bracket_engine.services.topology_generator import generate

START = date(2026, 3, 19)


def regional_seeding():
    """Team ids 1..64: region index * 100 + seed keeps ids readable."""
    return {
        region: {seed: (i + 1) * 100 + seed for seed in range(1, 17)}
        for i, region in enumerate(DEFAULT_REGIONS)
    }


def mte_seeding():
    return {None: {1: 11, 2: 22, 3: 33, 4: 44}}


def by_position(games):
    return {g.bracket_position: g for g in games}


class TestRegionalGeneration:
    def test_generates_63_games_in_round_order(self):
        games = generate(RegionalSingleElimination(), regional_seeding(), START)
        assert len(games) == 63
        orders = [g.round_order for g in games]
        assert orders == sorted(orders)
        assert games[0].round == Round.ROUND_OF_64.value
        assert games[-1].bracket_position == "CHAMP"

    def test_first_round_slots_come_from_seeding(self):
        games = by_position(generate(RegionalSingleElimination(), regional_seeding(), START))
        g = games["E-R64-G1"]
        assert (g.home_state, g.home_team_id, g.home_seed) == (SLOT_KNOWN, 101, 1)
        assert (g.away_state, g.away_team_id, g.away_seed) == (SLOT_KNOWN, 116, 16)
        g = games["M-R64-G8"]
        assert (g.home_team_id, g.away_team_id) == (402, 415)

    def test_later_rounds_unresolved(self):
        games = generate(RegionalSingleElimination(), regional_seeding(), START)
        later = [g for g in games if g.round != Round.ROUND_OF_64.value]
        assert len(later) == 31
        for g in later:
            assert g.home_state == SLOT_UNRESOLVED and g.home_team_id is None
            assert g.away_state == SLOT_UNRESOLVED and g.away_team_id is None

    def test_scheduled_dates_offset_from_start(self):
        games = by_position(generate(RegionalSingleElimination(), regional_seeding(), START))
        assert games["E-R64-G1"].scheduled_date == START
        assert games["E-R32-G1"].scheduled_date == START + timedelta(days=2)
        assert games["FF-G2"].scheduled_date == START + timedelta(days=8)
        assert games["CHAMP"].scheduled_date == START + timedelta(days=10)

    def test_day_offsets_override(self):
        games = by_position(generate(
            RegionalSingleElimination(),
            regional_seeding(),
            START,
            day_offsets={Round.CHAMPIONSHIP: 14},
        ))
        assert games["CHAMP"].scheduled_date == START + timedelta(days=14)
        assert games["E-R64-G1"].scheduled_date == START

    def test_games_carry_no_edges(self):
        games = generate(RegionalSingleElimination(), regional_seeding(), START)
        assert all(g.advancement.is_terminal for g in games)

    def test_tournament_id_stamped(self):
        games = generate(RegionalSingleElimination(), regional_seeding(), START, tournament_id=7)
        assert {g.tournament_id for g in games} == {7}


class TestMultiTeamGeneration:
    def test_semifinals_and_placeholders(self):
        games = by_position(generate(BracketedMultiTeamEvent(), mte_seeding(), START))
        assert len(games) == 4

        assert (games["MTE-SF1"].home_team_id, games["MTE-SF1"].away_team_id) == (11, 22)
        assert (games["MTE-SF2"].home_team_id, games["MTE-SF2"].away_team_id) == (33, 44)

        champ, cons = games["MTE-CHAMP"], games["MTE-CONS"]
        assert champ.home_participant.is_placeholder and champ.away_participant.is_placeholder
        assert (champ.home_team_id, champ.away_team_id) == (11, 22)
        assert cons.home_state == SLOT_PLACEHOLDER
        assert (cons.home_team_id, cons.away_team_id) == (33, 44)

    def test_final_day_offsets(self):
        games = by_position(generate(BracketedMultiTeamEvent(), mte_seeding(), START))
        assert games["MTE-SF1"].scheduled_date == START
        assert games["MTE-CHAMP"].scheduled_date == START + timedelta(days=1)
        assert games["MTE-CONS"].scheduled_date == START + timedelta(days=1)


class TestSeedingValidation:
    def test_missing_seed_raises(self):
        seeding = regional_seeding()
        del seeding["West"][9]
        with pytest.raises(ShapeViolation) as exc:
            generate(RegionalSingleElimination(), seeding, START)
        assert any("West" in p and "9" in p for p in exc.value.problems)

    def test_three_teams_for_multi_team_raises(self):
        with pytest.raises(ShapeViolation):
            generate(BracketedMultiTeamEvent(), {None: {1: 11, 2: 22, 3: 33}}, START)

    def test_unknown_region_raises(self):
        seeding = regional_seeding()
        seeding["Northeast"] = {1: 999}
        with pytest.raises(ShapeViolation):
            generate(RegionalSingleElimination(), seeding, START)

    def test_participant_seeded_twice_raises(self):
        seeding = regional_seeding()
        seeding["South"][16] = seeding["East"][1]
        with pytest.raises(ShapeViolation) as exc:
            generate(RegionalSingleElimination(), seeding, START)
        assert any("seeded twice" in p for p in exc.value.problems)

    def test_seed_out_of_range_raises(self):
        seeding = mte_seeding()
        seeding[None][5] = 55
        with pytest.raises(ShapeViolation):
            generate(BracketedMultiTeamEvent(), seeding, START)

    def test_all_problems_reported_at_once(self):
        seeding = regional_seeding()
        del seeding["East"][1]
        del seeding["Midwest"][16]
        with pytest.raises(ShapeViolation) as exc:
            generate(RegionalSingleElimination(), seeding, START)
        assert len(exc.value.problems) >= 2
