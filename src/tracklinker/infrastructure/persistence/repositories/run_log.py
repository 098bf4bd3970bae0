"""SQLAlchemy-backed run log."""

from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tracklinker.config import get_logger
from tracklinker.domain.entities import RunError, RunRecord, RunStatus, RunSummary
from tracklinker.infrastructure.persistence.database.db_connection import get_session
from tracklinker.infrastructure.persistence.database.db_models import DBTransferRun

logger = get_logger(__name__).bind(service="persistence")


def _aware(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def to_domain(row: DBTransferRun) -> RunRecord:
    return RunRecord(
        id=row.id,
        source_playlist_id=row.source_playlist_id,
        target_playlist_id=row.target_playlist_id,
        started_at=_aware(row.started_at) or datetime.now(UTC),
        finished_at=_aware(row.finished_at),
        status=RunStatus(row.status),
        added=row.added,
        skipped=row.skipped,
        failed=row.failed,
        errors=[RunError(track_id=item["track_id"], message=item["message"]) for item in row.errors or []],
    )


class RunLogRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def start_run(self, source_playlist_id: str) -> int:
        async with get_session(self.session_factory) as session:
            row = DBTransferRun(
                source_playlist_id=source_playlist_id,
                started_at=datetime.now(UTC),
                status=str(RunStatus.RUNNING),
                added=0,
                skipped=0,
                failed=0,
                errors=[],
            )
            session.add(row)
            await session.flush()
            run_id = row.id

        logger.debug("Started run", run_id=run_id, source_playlist_id=source_playlist_id)
        return run_id

    async def finalize_run(self, run_id: int, summary: RunSummary) -> None:
        async with get_session(self.session_factory) as session:
            row = await session.get(DBTransferRun, run_id)
            if row is None:
                raise KeyError(f"Run {run_id} does not exist")
            row.finished_at = datetime.now(UTC)
            row.status = str(summary.status)
            row.target_playlist_id = summary.target_playlist_id
            row.added = summary.added
            row.skipped = summary.skipped
            row.failed = summary.failed
            row.errors = [{"track_id": e.track_id, "message": e.message} for e in summary.errors]

    async def recent_runs(self, limit: int = 20) -> list[RunRecord]:
        async with get_session(self.session_factory) as session:
            rows = await session.scalars(
                select(DBTransferRun).order_by(DBTransferRun.id.desc()).limit(limit)
            )
            return [to_domain(row) for row in rows.all()]
