"""
Database Connection
===================
Async PostgreSQL connection using SQLAlchemy
"""

import logging

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from followup_gate.config import settings

logger = logging.getLogger(__name__)


# Create engine
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.SQL_ECHO,
    future=True,
)

# Session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_session():
    """Get a database session"""
    async with async_session_factory() as session:
        yield session


async def init_db(bind=None):
    """Create all tables (for development only - use migrations in production)"""
    from followup_gate.db.models import Base
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")
