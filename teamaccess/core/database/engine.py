"""
Database engine configuration and session management.

Default: SQLite (async with aiosqlite)
Production: PostgreSQL (asyncpg), selected purely through DATABASE_URL.
"""
from collections.abc import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from teamaccess.core import config

engine = create_async_engine(
    config.SQLALCHEMY_DATABASE_URL,
    # NullPool for SQLite to avoid connection pool issues
    poolclass=NullPool if config.SQLALCHEMY_DATABASE_URL.startswith("sqlite") else None,
    echo=False,
    future=True,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting async database sessions.

    The request runs in one transaction: committed when the route returns,
    rolled back when it raises. Services only flush; the member-exit saga is
    the one caller that commits per step.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def import_models() -> None:
    """Import every model module so its tables are registered on Base.metadata."""
    from teamaccess.features.users.models import User  # noqa: F401
    from teamaccess.features.teams.models import Team, TeamMember, MemberExitJournal  # noqa: F401
    from teamaccess.features.orgs.models import OrgNode, org_ancestors, org_memberships  # noqa: F401
    from teamaccess.features.groups.models import MemberGroup, group_memberships  # noqa: F401
    from teamaccess.features.permissions.models import Grant  # noqa: F401
    from teamaccess.features.resources import models as resource_models  # noqa: F401


async def init_db():
    """
    Initialize database tables.
    Call this on application startup to create all tables.
    """
    from teamaccess.core.database.base import Base

    import_models()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
