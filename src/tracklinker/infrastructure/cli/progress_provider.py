"""Rich progress display driven by transfer progress events."""

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

from tracklinker.domain.entities import TransferProgress, TransferStage

_STAGE_STYLES = {
    TransferStage.PREPARING: "dim cyan",
    TransferStage.MAPPING: "cyan",
    TransferStage.AWAITING_USER: "yellow",
    TransferStage.CREATING_PLAYLIST: "dim cyan",
    TransferStage.INSERTING: "cyan",
    TransferStage.COMPLETE: "green",
    TransferStage.CANCELED: "yellow",
    TransferStage.ERROR: "red",
}


class RichTransferProgress:
    """Progress sink rendering one Rich task per transfer stage."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=self.console,
            transient=False,
        )
        self._tasks: dict[TransferStage, TaskID] = {}

    def __enter__(self) -> "RichTransferProgress":
        self._progress.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self._progress.stop()

    def __call__(self, event: TransferProgress) -> None:
        style = _STAGE_STYLES.get(event.stage, "cyan")
        description = f"[{style}]{event.message or event.stage}[/{style}]"

        task_id = self._tasks.get(event.stage)
        if task_id is None:
            task_id = self._progress.add_task(
                description, total=event.total or None, completed=event.processed
            )
            self._tasks[event.stage] = task_id
        else:
            self._progress.update(
                task_id,
                description=description,
                completed=event.processed,
                total=event.total or None,
            )

        if event.last_error:
            self.console.print(f"[red]  ! {event.last_error}[/red]")
