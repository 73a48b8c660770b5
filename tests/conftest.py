"""
Pytest configuration and fixtures.

Every test gets its own in-memory SQLite database. Service tests use
``db_session`` directly; route tests go through ``client``, whose sessions
commit on success and roll back on error like ``get_db`` does.
"""
import pytest
import pytest_asyncio
from dataclasses import dataclass
from typing import AsyncGenerator, Optional
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool
from faker import Faker

from teamaccess.main import app
from teamaccess.core.database.base import Base
from teamaccess.core.database.engine import get_db, import_models
from teamaccess.features.teams.models import Team, TeamMember, TeamMemberRole
from teamaccess.features.teams.service import TeamAggregateRoot
from teamaccess.features.users.auth import create_access_token
from teamaccess.features.users.models import User

# Initialize Faker
fake = Faker()

# Test database configuration
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@dataclass
class TeamFixture:
    team: Team
    owner: TeamMember

    @property
    def id(self) -> str:
        return self.team.id


@pytest_asyncio.fixture
async def engine():
    """A fresh in-memory database with every table created."""
    import_models()
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client with database session override."""
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


async def make_team(db_session: AsyncSession) -> TeamFixture:
    """Create and commit a team with its owner member."""
    user = User(username=fake.unique.user_name())
    db_session.add(user)
    await db_session.flush()

    teams = TeamAggregateRoot(db_session)
    created = await teams.create_team(user.id, fake.unique.company())
    owner = await teams.get_owner(created.id)
    await db_session.commit()
    return TeamFixture(team=created, owner=owner)


@pytest_asyncio.fixture
async def team(db_session: AsyncSession) -> TeamFixture:
    return await make_team(db_session)


@pytest_asyncio.fixture
async def other_team(db_session: AsyncSession, team: TeamFixture) -> TeamFixture:
    """A second, unrelated team."""
    return await make_team(db_session)


@pytest.fixture
def add_member(db_session: AsyncSession):
    """Factory adding a committed member to a team."""
    async def _add(
        team_id: str,
        role: TeamMemberRole = TeamMemberRole.MEMBER,
        name: Optional[str] = None
    ) -> TeamMember:
        member = await TeamAggregateRoot(db_session).add_member(
            team_id,
            fake.unique.user_name(),
            role=role,
            name=name or fake.name(),
        )
        await db_session.commit()
        return member

    return _add


def auth_headers(member: TeamMember, is_root: bool = False) -> dict:
    token = create_access_token(member.id, member.team_id, is_root=is_root)
    return {"Authorization": f"Bearer {token}"}
