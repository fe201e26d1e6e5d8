#!/usr/bin/env python3
"""
rich_ui.py: Rich-based progress and summary for image-transcoder.

Shows a progress bar while the dispatcher works through the images and a
table of original/compressed sizes once every image has resolved.
"""

from typing import List, Optional

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TimeElapsedColumn
from rich.table import Table

from ..core.dispatcher import TranscodeDispatcher
from ..core.image_store import ImageStore
from ..core.models import ImageRecord, ImageStatus, Settings, WorkerResponse
from ..utils.format import format_compression_ratio, format_file_size, get_output_file_name
from ..utils.log_utils import get_logger

logger = get_logger(__name__)


class RichTranscodeUI:
    """Compress a batch of records and display progress and results in the terminal."""

    def __init__(self, records: List[ImageRecord], settings: Settings, console: Optional[Console] = None):
        self.records = records
        self.settings = settings
        self.console = console or Console()
        self.progress: Optional[Progress] = None
        self.task_id = None
        self.resolved = 0

    def _on_result(self, record: ImageRecord, response: WorkerResponse) -> None:
        self.resolved += 1
        if self.progress is not None:
            self.progress.update(self.task_id, completed=self.resolved)
        if record.status is ImageStatus.ERROR:
            logger.warning(f"[red]{record.name}: {record.error}[/red]")

    async def run(self) -> ImageStore:
        """Process every record and return the populated store."""
        dispatcher = TranscodeDispatcher(settings=self.settings)
        dispatcher.on_result = self._on_result

        with Progress(
            SpinnerColumn("dots8"),
            TextColumn("[bold yellow]Compressing images..."),
            BarColumn(bar_width=None),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TextColumn("({task.completed}/{task.total})"),
            TimeElapsedColumn(),
            console=self.console,
        ) as progress:
            self.progress = progress
            self.task_id = progress.add_task("compress", total=len(self.records))
            async with dispatcher:
                dispatcher.add_images(self.records)
                await dispatcher.wait_idle()
            self.progress = None

        self.console.print(self.build_table(dispatcher.store))
        return dispatcher.store

    def build_table(self, store: ImageStore) -> Table:
        """Summary table with one row per image plus a totals row."""
        output_format = self.settings.output_format.value
        table = Table(title="Compression Results", show_footer=False)
        table.add_column("File", style="bold")
        table.add_column("Output")
        table.add_column("Original", justify="right")
        table.add_column("Compressed", justify="right")
        table.add_column("Dimensions", justify="right")
        table.add_column("Saved", justify="right", style="green")

        for record in store:
            output_name = get_output_file_name(record.name, output_format, record.source_type)
            if record.status is ImageStatus.DONE:
                table.add_row(
                    record.name,
                    output_name,
                    format_file_size(record.original_size),
                    format_file_size(record.compressed_size),
                    f"{record.compressed_width}x{record.compressed_height}",
                    format_compression_ratio(record.original_size, record.compressed_size),
                )
            else:
                table.add_row(
                    record.name,
                    output_name,
                    format_file_size(record.original_size),
                    "[red]error[/red]",
                    f"{record.original_width}x{record.original_height}",
                    f"[red]{record.error or record.status.value}[/red]",
                )

        original, compressed = store.total_sizes()
        if compressed:
            table.add_section()
            table.add_row(
                "Total", "", format_file_size(original), format_file_size(compressed), "",
                format_compression_ratio(original, compressed),
            )
        return table
