import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from mistake_analyzer.models import entities  # noqa: F401  (registers tables on Base.metadata)
from mistake_analyzer.models.base import Base

logger = logging.getLogger(__name__)


async def initialize_database(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ready (%s)", ", ".join(sorted(Base.metadata.tables)))
