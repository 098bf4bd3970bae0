"""In-process match cache and run log for dry runs and tests."""

from datetime import UTC, datetime
import itertools

import attrs

from tracklinker.domain.entities import MatchRecord, RunRecord, RunSummary, create_match_key


class InMemoryMatchCache:
    def __init__(self) -> None:
        self.records: dict[str, MatchRecord] = {}

    async def get(self, source_provider: str, source_track_id: str) -> MatchRecord | None:
        return self.records.get(create_match_key(source_provider, source_track_id))

    async def put(self, record: MatchRecord) -> None:
        self.records[record.key] = record


class InMemoryRunLog:
    def __init__(self) -> None:
        self.runs: dict[int, RunRecord] = {}
        self._ids = itertools.count(1)

    async def start_run(self, source_playlist_id: str) -> int:
        run_id = next(self._ids)
        self.runs[run_id] = RunRecord(source_playlist_id=source_playlist_id, id=run_id)
        return run_id

    async def finalize_run(self, run_id: int, summary: RunSummary) -> None:
        if run_id not in self.runs:
            raise KeyError(f"Run {run_id} does not exist")
        self.runs[run_id] = attrs.evolve(
            self.runs[run_id],
            finished_at=datetime.now(UTC),
            target_playlist_id=summary.target_playlist_id,
            added=summary.added,
            skipped=summary.skipped,
            failed=summary.failed,
            errors=list(summary.errors),
            status=summary.status,
        )

    async def recent_runs(self, limit: int = 20) -> list[RunRecord]:
        return sorted(self.runs.values(), key=lambda run: run.id or 0, reverse=True)[:limit]
