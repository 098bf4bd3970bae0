"""SQLAlchemy-backed match cache."""

from datetime import UTC

from sqlalchemy import func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tracklinker.config import get_logger
from tracklinker.domain.entities import DecidedBy, MatchRecord, MatchVia
from tracklinker.infrastructure.persistence.database.db_connection import get_session
from tracklinker.infrastructure.persistence.database.db_models import DBMatchRecord

logger = get_logger(__name__).bind(service="persistence")


def to_domain(row: DBMatchRecord) -> MatchRecord:
    updated_at = row.updated_at
    # SQLite drops tzinfo on read
    if updated_at.tzinfo is None:
        updated_at = updated_at.replace(tzinfo=UTC)
    return MatchRecord(
        source_provider=row.source_provider,
        source_track_id=row.source_track_id,
        target_provider=row.target_provider,
        target_id=row.target_id,
        score=row.score,
        decided_by=DecidedBy(row.decided_by),
        via=MatchVia(row.via),
        updated_at=updated_at,
        metadata=dict(row.match_metadata or {}),
    )


class MatchCacheRepository:
    """Match decisions keyed by (source_provider, source_track_id).

    ``put`` is an upsert: the latest write wins.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def get(self, source_provider: str, source_track_id: str) -> MatchRecord | None:
        async with get_session(self.session_factory) as session:
            row = await session.scalar(
                select(DBMatchRecord).where(
                    DBMatchRecord.source_provider == source_provider,
                    DBMatchRecord.source_track_id == source_track_id,
                )
            )
            return to_domain(row) if row is not None else None

    async def put(self, record: MatchRecord) -> None:
        values = {
            "source_provider": record.source_provider,
            "source_track_id": record.source_track_id,
            "target_provider": record.target_provider,
            "target_id": record.target_id,
            "score": record.score,
            "decided_by": str(record.decided_by),
            "via": str(record.via),
            "updated_at": record.updated_at,
            "match_metadata": record.metadata,
        }
        stmt = sqlite_insert(DBMatchRecord.__table__).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["source_provider", "source_track_id"],
            set_={
                key: stmt.excluded[key]
                for key in values
                if key not in ("source_provider", "source_track_id")
            },
        )
        async with get_session(self.session_factory) as session:
            await session.execute(stmt)

        logger.debug("Saved match", key=record.key, target_id=record.target_id)

    async def count(self) -> int:
        async with get_session(self.session_factory) as session:
            return await session.scalar(select(func.count()).select_from(DBMatchRecord)) or 0
