"""
Progress bars for tube-mirror using the Rich library.

Two long-running loops show a bar on the console:

    - Fetching the missing entries of a playlist or channel: FetchProgressBar
    - Purging the videos named by the delete directory: DeletionProgressBar

Log records keep flowing above the bar (see TqdmLoggingHandler), and
everything shown here is also in the full log file.

Usage:
    from tube_mirror.core.progress import FetchProgressBar

    with FetchProgressBar(total=len(plan.to_download)) as progress:
        for video_id in plan.to_download:
            result = fetcher.fetch(video_id)
            progress.update(success=result.success)
"""

from abc import ABC, abstractmethod
from typing import Optional

from rich import get_console
from rich.console import JustifyMethod, OverflowMethod
from rich.progress import BarColumn, Progress, ProgressColumn, Task, TaskID
from rich.style import StyleType
from rich.text import Text
from rich.theme import Theme


# =============================================================================
# Theme
# =============================================================================

PROGRESS_THEME = Theme({
    "bar.back": "grey23",
    "bar.complete": "rgb(204,0,0)",
    "bar.finished": "rgb(114,156,31)",
    "bar.pulse": "rgb(204,0,0)",
    "progress.percentage": "white",
})


# =============================================================================
# Custom Column
# =============================================================================

class SizedTextColumn(ProgressColumn):
    """Text column truncated (with ellipsis) to a fixed width."""

    def __init__(
        self,
        text_format: str,
        style: StyleType = "none",
        justify: JustifyMethod = "left",
        overflow: Optional[OverflowMethod] = None,
        width: int = 20,
    ) -> None:
        self.text_format = text_format
        self.style = style
        self.justify: JustifyMethod = justify
        self.overflow: Optional[OverflowMethod] = overflow
        self.width = width
        super().__init__()

    def render(self, task: Task) -> Text:
        text = Text.from_markup(
            self.text_format.format(task=task),
            style=self.style,
            justify=self.justify,
        )
        text.truncate(max_width=self.width, overflow=self.overflow, pad=True)
        return text


# =============================================================================
# Base Progress Bar
# =============================================================================

class BaseProgressBar(ABC):
    """
    Abstract base class for the progress bars.

    Subclasses keep their own counters and implement _get_status_text()
    and update().
    """

    def __init__(self, total: int, description: str, status_width: int = 35):
        """
        Args:
            total: Number of items the loop will process.
            description: Label on the left (e.g. the playlist title).
            status_width: Width of the counters column.
        """
        self.total = total
        self.description = description
        self.completed = 0

        self.console = get_console()
        self.console.push_theme(PROGRESS_THEME)

        self.progress = Progress(
            SizedTextColumn("[white]{task.description}", overflow="ellipsis", width=24),
            SizedTextColumn("{task.fields[status]}", width=status_width, style="white"),
            BarColumn(bar_width=40, finished_style="green"),
            "[progress.percentage]{task.percentage:>3.0f}%",
            console=self.console,
            transient=False,
            refresh_per_second=10,
        )

        self.task_id: Optional[TaskID] = None
        self._started = False

    def __enter__(self) -> "BaseProgressBar":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    def start(self) -> None:
        if not self._started:
            self.progress.start()
            self.task_id = self.progress.add_task(
                description=self.description,
                total=self.total,
                status=self._get_status_text(),
            )
            self._started = True

    def stop(self) -> None:
        if self._started:
            self.progress.stop()
            self.console.pop_theme()
            self._started = False

    def _update_progress(self) -> None:
        if self.task_id is not None:
            self.progress.update(
                self.task_id,
                completed=self.completed,
                status=self._get_status_text(),
            )

    @abstractmethod
    def _get_status_text(self) -> str:
        """Counters shown next to the description, with Rich markup."""

    @abstractmethod
    def update(self, *args, **kwargs) -> None:
        """Record one processed item."""


# =============================================================================
# Fetch Progress Bar
# =============================================================================

class FetchProgressBar(BaseProgressBar):
    """
    Progress of the downloads of one playlist or channel.

    Example:
        Liked videos_PL123      ✓ 12  ✗ 1  ⊘ 2         ━━━━━━━━━━━━  60%

    ✓ fetched, ✗ failed (transient), ⊘ tombstoned as unavailable.
    """

    def __init__(self, total: int, description: str = "Fetching"):
        super().__init__(total=total, description=description)
        self.fetched = 0
        self.failed = 0
        self.unavailable = 0

    def _get_status_text(self) -> str:
        parts = [
            f"[green]✓ {self.fetched}[/green]",
            f"[red]✗ {self.failed}[/red]",
        ]
        if self.unavailable > 0:
            parts.append(f"[yellow]⊘ {self.unavailable}[/yellow]")
        return "  ".join(parts)

    def update(self, success: bool, unavailable: bool = False) -> None:
        """
        Args:
            success: Whether the video is now in the artifact store.
            unavailable: Whether the failure was permanent and tombstoned.
        """
        self.completed += 1
        if success:
            self.fetched += 1
        elif unavailable:
            self.unavailable += 1
        else:
            self.failed += 1

        self._update_progress()


# =============================================================================
# Deletion Progress Bar
# =============================================================================

class DeletionProgressBar(BaseProgressBar):
    """
    Progress of a purge run.

    Example:
        Deleting                ✓ 40  ⊘ 3              ━━━━━━━━━━━━ 100%
    """

    def __init__(self, total: int, description: str = "Deleting"):
        super().__init__(total=total, description=description)
        self.deleted = 0
        self.skipped = 0

    def _get_status_text(self) -> str:
        parts = [f"[green]✓ {self.deleted}[/green]"]
        if self.skipped > 0:
            parts.append(f"[yellow]⊘ {self.skipped}[/yellow]")
        return "  ".join(parts)

    def update(self, deleted: bool) -> None:
        self.completed += 1
        if deleted:
            self.deleted += 1
        else:
            self.skipped += 1

        self._update_progress()


__all__ = [
    "PROGRESS_THEME",
    "SizedTextColumn",
    "BaseProgressBar",
    "FetchProgressBar",
    "DeletionProgressBar",
]
