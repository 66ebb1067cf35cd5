# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

from datetime import datetime

from rich.console import Console, Group
from rich.padding import Padding
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text
from tabulate import Line, TableFormat, tabulate

from rlnq_lib.core.common import format_duration_wdhhmmss, get_panel_width
from rlnq_lib.core.config import CFG
from rlnq_lib.properties.record import JobRecord
from rlnq_lib.properties.states import JobStatus
from rlnq_lib.registry.registry import JobTypeRegistry
from rlnq_lib.submit.command import format_command

# Table formatting configuration for `tabulate`.
_COMPACT_TABLE = TableFormat(
    lineabove=Line("", "", "", ""),
    linebelowheader="",
    linebetweenrows="",
    linebelow=Line("", "", "", ""),
    headerrow=("", "  ", ""),
    datarow=("", "  ", ""),
    padding=0,
    with_header_hide=["lineabove", "linebelow"],
)

# Mapping of the color names used in the configuration to ANSI escape codes.
_ANSI_COLORS = {
    "default": "",
    "red": "\033[31m",
    "green": "\033[32m",
    "yellow": "\033[33m",
    "blue": "\033[34m",
    "magenta": "\033[35m",
    "white": "\033[37m",
    "bright_red": "\033[91m",
    "bright_green": "\033[92m",
    "bright_yellow": "\033[93m",
    "bright_blue": "\033[94m",
    "bright_magenta": "\033[95m",
    "bright_white": "\033[97m",
    "grey70": "\033[38;5;249m",
    "grey50": "\033[38;5;244m",
    "bold": "\033[1m",
    "reset": "\033[0m",
}


def _color(text: str, color: str) -> str:
    """Wrap `text` in ANSI color codes; unknown colors are ignored."""
    code = _ANSI_COLORS.get(color, "")
    return f"{code}{text}{_ANSI_COLORS['reset']}" if code else text


def _table_panel(title: str, table: str, console: Console | None) -> Group:
    console = console or Console()
    panel = Panel(
        Text.from_ansi(table),
        title=Text(title, style=CFG.jobs_presenter.title_style, justify="center"),
        border_style=CFG.jobs_presenter.border_style,
        padding=(1, 1),
        width=get_panel_width(
            console, 1, CFG.jobs_presenter.min_width, CFG.jobs_presenter.max_width
        ),
        expand=False,
    )
    return Group(Text(""), panel, Text(""))


class RecordPresenter:
    """
    Presentation layer for a single job record.
    """

    def __init__(self, record: JobRecord):
        self._record = record

    def createFullInfoPanel(self, console: Console | None = None) -> Group:
        """
        Create a full job information panel.

        Args:
            console (Console | None): Optional Rich console.
                If not provided, a new Console is created.

        Returns:
            Group: A Rich Group containing the full job info panel.
        """
        console = console or Console()

        content = Group(
            Padding(self._createBasicInfoTable(), (0, 2)),
            Text(""),
            self._rule("COMMAND"),
            Text(""),
            Padding(Text(self._getCommand(), overflow="fold"), (0, 2)),
            Text(""),
            self._rule("HISTORY"),
            Text(""),
            Padding(self._createJobHistoryTable(), (0, 2)),
            Text(""),
            self._rule("STATUS"),
            Text(""),
            Padding(self._createJobStatusTable(), (0, 2)),
        )

        full_panel = Panel(
            content,
            title=Text(
                f"JOB: {self._record.id}",
                style=CFG.presenter.title_style,
                justify="center",
            ),
            border_style=CFG.presenter.border_style,
            # no horizontal padding so Rule reaches borders
            padding=(1, 0),
            width=get_panel_width(
                console, 3, CFG.presenter.min_width, CFG.presenter.max_width
            ),
        )

        return Group(Text(""), full_panel, Text(""))

    def getShortInfo(self) -> Text:
        """
        Return the job name followed by its colorized status.
        """
        status = self._record.status
        return Text(self._record.id) + "    " + Text(str(status), style=status.color)

    def _rule(self, title: str) -> Rule:
        return Rule(
            title=Text(title, style=CFG.presenter.title_style),
            style=CFG.presenter.rule_style,
        )

    def _getCommand(self) -> str:
        if not self._record.command:
            return "(runs in-process)"
        return format_command(self._record.command)

    def _createBasicInfoTable(self) -> Table:
        """
        Create a table with basic job information.
        """
        record = self._record
        table = Table(show_header=False, box=None, padding=(0, 1))
        table.add_column(justify="right", style=CFG.presenter.key_style)
        table.add_column(
            justify="left", overflow="fold", style=CFG.presenter.value_style
        )

        table.add_row("Job type:", Text(record.job_type))
        table.add_row("Project:", Text(str(record.project)))
        if record.output_dir:
            table.add_row("Output directory:", Text(str(record.output_dir)))

        if record.to_queue is not None:
            table.add_row("Destination:", Text("queue" if record.to_queue else "local"))
        if record.queue_id:
            table.add_row("Queue job id:", Text(record.queue_id))
        if record.pid:
            table.add_row("Process id:", Text(str(record.pid)))

        table.add_row("Parent jobs:", Text(", ".join(record.parent_ids) or "none"))

        return table

    def _createJobHistoryTable(self) -> Table:
        """
        Create a table summarizing the job timeline.
        """
        submitted = self._record.submission_time
        started = self._record.start_time
        ended = self._record.end_time

        table = Table(show_header=False, box=None, padding=(0, 1))
        table.add_column(justify="right", style=CFG.presenter.key_style)
        table.add_column(
            justify="left", style=CFG.presenter.value_style, overflow="fold"
        )

        table.add_row("Submitted at:", Text(self._formatTime(submitted)))
        if started:
            table.add_row("Started at:", Text(self._formatTime(started)))
        if started and ended:
            table.add_row(
                "",
                Text(
                    f"was running for {format_duration_wdhhmmss(ended - started)}",
                    style=CFG.presenter.notes_style,
                ),
            )
        if ended:
            table.add_row(
                f"{self._translateStatusToCompletedMsg(self._record.status).title()} at:",
                Text(self._formatTime(ended)),
            )

        return table

    def _createJobStatusTable(self) -> Table:
        """
        Create a table summarizing the current job status.
        """
        status = self._record.status
        table = Table(show_header=False, box=None, padding=(0, 1))
        table.add_column(justify="right", style=CFG.presenter.key_style)
        table.add_column(justify="left", style=CFG.presenter.value_style)

        table.add_row(
            "Job status:",
            Text(self._getStatusMessage(status), style=f"{status.color} bold"),
        )

        if status == JobStatus.RUNNING and self._record.start_time:
            elapsed = format_duration_wdhhmmss(datetime.now() - self._record.start_time)
            table.add_row("", Text(f"Running for {elapsed}"))

        if self._record.error_message:
            table.add_row(
                "", Text(self._record.error_message, style=CFG.presenter.notes_style)
            )

        return table

    @staticmethod
    def _formatTime(time: datetime) -> str:
        return time.strftime(CFG.date_formats.standard)

    @staticmethod
    def _getStatusMessage(status: JobStatus) -> str:
        match status:
            case JobStatus.PENDING:
                return "Job is pending"
            case JobStatus.RUNNING:
                return "Job is running"
            case JobStatus.SUCCESS:
                return "Job has finished"
            case JobStatus.FAILED:
                return "Job has failed"
            case JobStatus.CANCELLED:
                return "Job has been cancelled"

    @staticmethod
    def _translateStatusToCompletedMsg(status: JobStatus) -> str:
        match status:
            case JobStatus.CANCELLED:
                return "cancelled"
            case JobStatus.FAILED:
                return "failed"
            case _:
                return "finished"


class JobsPresenter:
    """
    Present a collection of job records as a compact table.
    """

    _HEADERS = ["S", "Job", "Type", "Destination", "Submitted", "Runtime", "Parents"]

    def __init__(self, records: list[JobRecord]):
        self._records = records

    def createJobsInfoPanel(self, console: Console | None = None) -> Group:
        """
        Create a Rich panel with a table of the jobs.

        Args:
            console (Console | None): Optional Rich Console instance.

        Returns:
            Group: Rich Group containing the jobs table.
        """
        return _table_panel("COLLECTED JOBS", self.createJobsTable(), console)

    def createJobsTable(self) -> str:
        """
        Build a compact tabulated string representation of the job list.

        Uses `tabulate` because Rich's Table is prohibitively slow for large numbers of items.
        """
        rows = [self._createJobRow(record) for record in self._records]
        headers = [
            _color(h, CFG.jobs_presenter.headers_style) for h in JobsPresenter._HEADERS
        ]
        return tabulate(
            rows,
            headers=headers,
            tablefmt=_COMPACT_TABLE,
            stralign="center",
            numalign="center",
        )

    @staticmethod
    def _createJobRow(record: JobRecord) -> list[str]:
        status = record.status
        main = CFG.jobs_presenter.main_style
        secondary = CFG.jobs_presenter.secondary_style

        if record.to_queue is None:
            destination = "-"
        elif record.to_queue:
            destination = f"queue {record.queue_id}" if record.queue_id else "queue"
        else:
            destination = "local"

        if record.start_time:
            runtime = format_duration_wdhhmmss(
                (record.end_time or datetime.now()) - record.start_time
            )
        else:
            runtime = "-"

        return [
            _color(str(status)[0].upper(), status.color),
            _color(record.id, main),
            _color(record.job_type, main),
            _color(destination, secondary),
            _color(record.submission_time.strftime(CFG.date_formats.standard), secondary),
            _color(runtime, secondary),
            _color(", ".join(record.parent_ids) or "-", secondary),
        ]


class TypesPresenter:
    """
    Present the job kinds known to a registry.
    """

    _HEADERS = ["Job type", "Stage", "Tier", "Aliases"]

    def __init__(self, registry: JobTypeRegistry):
        self._registry = registry

    def createTypesPanel(self, console: Console | None = None) -> Group:
        """Create a Rich panel with a table of the job kinds."""
        return _table_panel("JOB TYPES", self.createTypesTable(), console)

    def createTypesTable(self) -> str:
        rows = []
        for canonical in self._registry.listCanonicalTypes():
            definition = self._registry.getDefinition(canonical)
            aliases = sorted(definition.aliases - {canonical})
            rows.append(
                [
                    _color(canonical, CFG.jobs_presenter.main_style),
                    _color(definition.stage_name, CFG.jobs_presenter.main_style),
                    _color(str(definition.compute_tier), CFG.jobs_presenter.secondary_style),
                    _color(", ".join(aliases) or "-", CFG.jobs_presenter.secondary_style),
                ]
            )

        headers = [
            _color(h, CFG.jobs_presenter.headers_style) for h in TypesPresenter._HEADERS
        ]
        return tabulate(rows, headers=headers, tablefmt=_COMPACT_TABLE, stralign="left")
