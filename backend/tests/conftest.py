import os
from datetime import date

# App startup runs init_db() on the configured engine; keep it off disk
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from bracket_engine.database import get_session  # noqa: E402
from bracket_engine.main import app  # noqa: E402
from bracket_engine.services.bracket_topology import DEFAULT_REGIONS, SHAPE_MULTI_TEAM, SHAPE_REGIONAL  # noqa: E402

TEST_DATABASE_URL = "sqlite:///:memory:"

# ============================================================================
# Test Database Setup with StaticPool
# ============================================================================
# 1. sqlite:///:memory: with StaticPool so ALL sessions share same DB
# 2. check_same_thread=False required for TestClient/threaded access
# 3. All models imported before create_all() (see session_fixture)
# 4. Tables created and dropped per test
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def override_get_session():
    """Override session to use test engine"""
    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="session", scope="function")
def session_fixture():
    """Provide a test database session on a fresh schema"""
    from bracket_engine.models.game import Game  # noqa: F401
    from bracket_engine.models.team import Team  # noqa: F401
    from bracket_engine.models.tournament import Tournament  # noqa: F401
    from bracket_engine.models.tournament_seed import TournamentSeed  # noqa: F401

    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session

    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Test client with the app's session dependency pointed at the test engine"""
    app.dependency_overrides[get_session] = override_get_session

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


# ============================================================================
# Seeded tournaments
# ============================================================================


def _make_teams(session: Session, names):
    from bracket_engine.models.team import Team

    teams = [Team(name=name) for name in names]
    for team in teams:
        session.add(team)
    session.commit()
    for team in teams:
        session.refresh(team)
    return teams


@pytest.fixture
def regional_tournament(session: Session):
    """64-team regional tournament with a complete seeding table.

    Returns dict with tournament_id and seeding {region: {seed: team_id}}.
    """
    from bracket_engine.models.tournament import Tournament
    from bracket_engine.models.tournament_seed import TournamentSeed

    tournament = Tournament(
        name="National Championship",
        shape=SHAPE_REGIONAL,
        regions=list(DEFAULT_REGIONS),
        start_date=date(2026, 3, 19),
    )
    session.add(tournament)
    session.commit()
    session.refresh(tournament)

    seeding = {}
    for region in DEFAULT_REGIONS:
        teams = _make_teams(session, [f"{region} {seed}" for seed in range(1, 17)])
        seeding[region] = {seed: team.id for seed, team in enumerate(teams, start=1)}
        for seed, team_id in seeding[region].items():
            session.add(TournamentSeed(tournament_id=tournament.id, team_id=team_id, seed=seed, region=region))
    session.commit()

    return {"tournament_id": tournament.id, "seeding": seeding}


@pytest.fixture
def mte_tournament(session: Session):
    """4-team bracketed multi-team event with seeds 1-4."""
    from bracket_engine.models.tournament import Tournament
    from bracket_engine.models.tournament_seed import TournamentSeed

    tournament = Tournament(
        name="Holiday Classic",
        shape=SHAPE_MULTI_TEAM,
        team_count=4,
        start_date=date(2026, 11, 25),
    )
    session.add(tournament)
    session.commit()
    session.refresh(tournament)

    teams = _make_teams(session, ["Alpha", "Bravo", "Charlie", "Delta"])
    seeding = {seed: team.id for seed, team in enumerate(teams, start=1)}
    for seed, team_id in seeding.items():
        session.add(TournamentSeed(tournament_id=tournament.id, team_id=team_id, seed=seed, region=None))
    session.commit()

    return {"tournament_id": tournament.id, "seeding": {None: seeding}}
