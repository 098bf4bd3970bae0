"""Progress reporting for transfer runs.

The orchestrator reports through a ``ProgressSink``: any callable taking a
``TransferProgress``, synchronous or async. Sinks are presentation code and
must never break a run, so failures inside a sink are logged and dropped.
"""

import inspect

from tracklinker.config import get_logger
from tracklinker.domain.entities import TransferProgress, TransferStage
from tracklinker.domain.repositories import ProgressSink

logger = get_logger(__name__).bind(service="progress")


class ProgressEmitter:
    """Builds progress events and hands them to an optional sink."""

    def __init__(self, sink: ProgressSink | None = None) -> None:
        self._sink = sink
        self.last: TransferProgress | None = None

    async def emit(
        self,
        stage: TransferStage,
        processed: int,
        total: int,
        message: str | None = None,
        last_error: str | None = None,
    ) -> TransferProgress:
        progress = TransferProgress(
            stage=stage,
            processed=processed,
            total=total,
            message=message,
            last_error=last_error,
        )
        self.last = progress

        if self._sink is None:
            return progress

        try:
            result = self._sink(progress)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Progress sink failed: {e}", stage=str(stage))

        return progress


class RecordingProgressSink:
    """Sink that keeps every event, for headless runs and tests."""

    def __init__(self) -> None:
        self.events: list[TransferProgress] = []

    def __call__(self, progress: TransferProgress) -> None:
        self.events.append(progress)

    @property
    def stages(self) -> list[TransferStage]:
        return [event.stage for event in self.events]
