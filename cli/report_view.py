"""
Rich console rendering of standup reports.
"""
from typing import List

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from services.pdf_generator import summary_percentages
from utils.models import CategorizedIssue, StandupReport


CONSOLE_PREVIEW_LIMIT = 15


def summary_panel(report: StandupReport) -> Panel:
    summary = report.summary
    total = summary.total_sprint_issues
    percentages = summary_percentages(summary)
    lines = [
        f"[bold]Date:[/bold] {report.date}    [bold]Sprint ID:[/bold] {report.sprint_id}",
    ]
    if summary.project_key:
        lines.append(f"[bold]Project:[/bold] {summary.project_key}")
    lines.extend([
        "",
        f"[green]Completed:[/green] {summary.completed_issues} ({percentages['completed']}%)",
        f"[yellow]In Progress:[/yellow] {summary.in_progress_issues} ({percentages['in_progress']}%)",
        f"[cyan]To Do:[/cyan] {summary.todo_issues} ({percentages['todo']}%)",
        f"[bold]Total:[/bold] {total}",
        "",
        f"[red]Overdue:[/red] {len(report.overdue_issues)}   "
        f"[yellow]Stale:[/yellow] {len(report.stale_issues)}   "
        f"[blue]Unassigned:[/blue] {len(report.unassigned_issues)}   "
        f"[red]Blocked:[/red] {len(report.blocked_issues)}",
    ])
    return Panel("\n".join(lines), title=f"Daily Standup - {report.sprint_name}", border_style="green")


def issues_table(title: str, issues: List[CategorizedIssue], style: str) -> Table:
    table = Table(title=title, box=box.ROUNDED, title_style=f"bold {style}")
    table.add_column("Issue", style="cyan", no_wrap=True)
    table.add_column("Summary", style="white")
    table.add_column("Assignee", style="magenta")
    table.add_column("Status", style="green")
    table.add_column("Days", justify="right")
    table.add_column("Due", style="yellow")

    for issue in issues[:CONSOLE_PREVIEW_LIMIT]:
        table.add_row(
            issue.key,
            issue.summary,
            issue.assignee,
            issue.status,
            str(issue.days_since_update),
            issue.duedate or "-",
        )

    overflow = len(issues) - CONSOLE_PREVIEW_LIMIT
    if overflow > 0:
        table.caption = f"... and {overflow} more"
    return table


def assignee_table(report: StandupReport) -> Table:
    table = Table(title="Team Member Summary", box=box.ROUNDED)
    table.add_column("Team Member", style="white")
    table.add_column("Issues", justify="right")
    table.add_column("Stale", justify="right", style="yellow")
    table.add_column("Overdue", justify="right", style="red")

    for name, member in report.by_assignee.items():
        table.add_row(name, str(len(member.issues)), str(member.stale_count), str(member.overdue_count))
    return table


def print_report(report: StandupReport, console: Console) -> None:
    """Print a standup report as a summary panel and issue tables."""
    console.print(summary_panel(report))

    sections = [
        ("Overdue Issues", report.overdue_issues, "red"),
        ("Stale Issues", report.stale_issues, "yellow"),
        ("Unassigned Issues", report.unassigned_issues, "blue"),
        ("Blocked Issues", report.blocked_issues, "red"),
    ]
    for title, issues, style in sections:
        if issues:
            console.print(issues_table(title, issues, style))

    if report.by_assignee:
        console.print(assignee_table(report))
