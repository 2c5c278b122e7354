"""
PDF Generator Service

Renders a StandupReport into a PDF document.

The primary path renders the Jinja2 template to HTML and converts it with
WeasyPrint (A4, 20mm/15mm margins); the HTML is saved next to the PDF. If
that path fails for any reason (WeasyPrint or its system libraries missing,
render error), a ReportLab canvas renderer draws a simpler document from the
same report data.

Dependencies:
- jinja2: Template engine
- weasyprint: HTML to PDF rendering engine (imported lazily)
- reportlab: Fallback page-drawing renderer
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from jinja2 import Environment, FileSystemLoader, TemplateError
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas

from utils.filename_utils import generate_report_filename
from utils.models import CategorizedIssue, StandupReport, SprintSummary


# WeasyPrint is imported lazily inside functions that use it
# This allows the module to load even if WeasyPrint/Pango is not available
WEASYPRINT_AVAILABLE = None  # None = not yet checked, True = available, False = unavailable
WEASYPRINT_ERROR = None

logger = logging.getLogger(__name__)

TEMPLATE_NAME = 'standup_report.html'
FALLBACK_PREVIEW_LIMIT = 10


class PDFGeneratorError(Exception):
    """Base exception for PDF generation errors."""
    pass


class WeasyPrintNotAvailableError(PDFGeneratorError):
    """Raised when WeasyPrint is not available or cannot be imported."""
    pass


class TemplateRenderError(PDFGeneratorError):
    """Raised when template rendering fails."""
    pass


@dataclass(frozen=True)
class ReportSection:
    kind: str
    title: str
    attribute: str
    html_limit: int
    noun: str


SECTIONS = (
    ReportSection('overdue', 'Overdue Issues', 'overdue_issues', 15, 'overdue issues'),
    ReportSection('stale', 'Stale Issues', 'stale_issues', 20, 'stale issues'),
    ReportSection('unassigned', 'Unassigned Issues', 'unassigned_issues', 15, 'unassigned issues'),
    ReportSection('blocked', 'Blocked Issues', 'blocked_issues', 15, 'blocked issues'),
)


def check_weasyprint_availability() -> None:
    """
    Check if WeasyPrint is available and properly configured.

    The import is attempted on first call and the result cached.

    Raises:
        WeasyPrintNotAvailableError: If WeasyPrint cannot be imported
    """
    global WEASYPRINT_AVAILABLE, WEASYPRINT_ERROR

    if WEASYPRINT_AVAILABLE is None:
        try:
            from weasyprint import HTML  # noqa: F401
            WEASYPRINT_AVAILABLE = True
            logger.info("WeasyPrint is available and ready")
        except (ImportError, OSError) as e:
            # OSError: Pango/GObject system libraries missing
            WEASYPRINT_AVAILABLE = False
            WEASYPRINT_ERROR = str(e)
            logger.warning(f"WeasyPrint import failed: {e}")

    if not WEASYPRINT_AVAILABLE:
        raise WeasyPrintNotAvailableError(f"WeasyPrint is not available: {WEASYPRINT_ERROR}")


def get_template_dir() -> Path:
    return Path(__file__).parent / 'templates'


def _percent(part: int, total: int) -> int:
    """Percentage rounded half up; 0 for an empty sprint."""
    if total <= 0:
        return 0
    return math.floor(part * 100 / total + 0.5)


def summary_percentages(summary: SprintSummary) -> Dict[str, int]:
    total = summary.total_sprint_issues
    return {
        'completed': _percent(summary.completed_issues, total),
        'in_progress': _percent(summary.in_progress_issues, total),
        'todo': _percent(summary.todo_issues, total),
    }


def preview(issues: List[CategorizedIssue], limit: int) -> Tuple[List[CategorizedIssue], int]:
    """Split a list into its first ``limit`` items and the overflow count."""
    return issues[:limit], max(len(issues) - limit, 0)


def priority_class(priority: str) -> str:
    if 'High' in (priority or ''):
        return 'priority-high'
    if 'Low' in (priority or ''):
        return 'priority-low'
    return 'priority-medium'


def stale_class(days: int) -> str:
    if days > 7:
        return 'critical'
    if days > 4:
        return 'warning'
    return ''


def build_template_context(report: StandupReport, generated_at: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Prepare template variables for a report.

    Only non-empty category sections are included, each capped to its
    preview length with the number of omitted issues.
    """
    sections = []
    for section in SECTIONS:
        issues = getattr(report, section.attribute)
        if not issues:
            continue
        shown, overflow = preview(issues, section.html_limit)
        sections.append({
            'kind': section.kind,
            'title': section.title,
            'noun': section.noun,
            'issues': shown,
            'overflow': overflow,
        })

    return {
        'report': report,
        'percentages': summary_percentages(report.summary),
        'sections': sections,
        'generation_date': (generated_at or datetime.now()).strftime('%Y-%m-%d %H:%M:%S'),
    }


def render_report_html(report: StandupReport, generated_at: Optional[datetime] = None) -> str:
    """
    Render the standup report template.

    Raises:
        TemplateRenderError: If the template is missing or fails to render
    """
    env = Environment(
        loader=FileSystemLoader(str(get_template_dir())),
        autoescape=True  # XSS protection
    )
    env.filters['priority_class'] = priority_class
    env.filters['stale_class'] = stale_class

    try:
        template = env.get_template(TEMPLATE_NAME)
        html = template.render(**build_template_context(report, generated_at))
    except TemplateError as e:
        raise TemplateRenderError(f"Failed to render template {TEMPLATE_NAME}: {e}") from e

    logger.info(f"Rendered standup report HTML ({len(html)} chars)")
    return html


def generate_pdf_from_html(html_content: str, output_path: Union[str, Path]) -> Path:
    """
    Generate a PDF file from HTML content with WeasyPrint.

    Args:
        html_content: HTML string to convert to PDF
        output_path: Path where PDF should be saved

    Returns:
        Path: Absolute path to generated PDF file

    Raises:
        WeasyPrintNotAvailableError: If WeasyPrint is not available
        PDFGeneratorError: If PDF generation fails
    """
    check_weasyprint_availability()

    from weasyprint import HTML

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    try:
        logger.info(f"Generating PDF: {output_path}")
        HTML(string=html_content, base_url=str(get_template_dir())).write_pdf(output_path)
    except Exception as e:
        raise PDFGeneratorError(f"Failed to generate PDF: {e}") from e

    if not output_path.exists():
        raise PDFGeneratorError(f"PDF file was not created: {output_path}")

    logger.info(f"Successfully generated PDF: {output_path} ({output_path.stat().st_size:,} bytes)")
    return output_path.absolute()


class _PageWriter:
    """Top-down text cursor over a ReportLab canvas with automatic page breaks."""

    def __init__(self, pdf: canvas.Canvas, margin: float = 18 * mm):
        self.pdf = pdf
        self.margin = margin
        self.width, self.height = A4
        self.y = self.height - margin

    def new_page(self) -> None:
        self.pdf.showPage()
        self.y = self.height - self.margin

    def text(
        self,
        value: str,
        size: float = 12,
        bold: bool = False,
        color=colors.black,
        align: str = 'left'
    ) -> None:
        font = 'Helvetica-Bold' if bold else 'Helvetica'
        leading = size * 1.3
        lines = simpleSplit(value, font, size, self.width - 2 * self.margin) or ['']

        self.pdf.setFont(font, size)
        self.pdf.setFillColor(color)
        for line in lines:
            if self.y - leading < self.margin:
                self.new_page()
                self.pdf.setFont(font, size)
                self.pdf.setFillColor(color)
            self.y -= leading
            if align == 'center':
                self.pdf.drawCentredString(self.width / 2, self.y, line)
            else:
                self.pdf.drawString(self.margin, self.y, line)
        self.pdf.setFillColor(colors.black)

    def space(self, lines: float = 1.0) -> None:
        self.y -= 12 * lines

    def heading(self, value: str) -> None:
        self.space(0.5)
        self.text(value, size=16, bold=True)
        self.space(0.3)


def _issue_detail(kind: str, issue: CategorizedIssue) -> str:
    if kind == 'stale':
        return f"  Assignee: {issue.assignee} | Last Updated: {issue.days_since_update} days ago | Status: {issue.status}"
    return f"  Assignee: {issue.assignee} | Due: {issue.duedate or 'N/A'} | Priority: {issue.priority}"


def generate_pdf_with_reportlab(
    report: StandupReport,
    output_path: Union[str, Path],
    generated_at: Optional[datetime] = None
) -> Path:
    """
    Draw the report directly with ReportLab.

    Presents the same content as the HTML path with plainer styling:
    summary counts and percentages, the four category lists (first 10
    issues each plus an overflow line) and the per-assignee counts.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    logger.info(f"Using ReportLab fallback for {output_path}")

    pdf = canvas.Canvas(str(output_path), pagesize=A4)
    pdf.setTitle(f"Daily Standup Report - {report.sprint_name}")
    writer = _PageWriter(pdf)
    summary = report.summary
    percentages = summary_percentages(summary)

    writer.text('Daily Standup Report', size=24, bold=True, align='center')
    writer.text(report.sprint_name, size=18, align='center')
    writer.space()

    writer.text(f"Date: {report.date}")
    writer.text(f"Sprint ID: {report.sprint_id}")
    if summary.project_key:
        writer.text(f"Project: {summary.project_key}")
    writer.space()

    writer.heading('Sprint Summary')
    writer.text(f"Total Issues: {summary.total_sprint_issues}")
    writer.text(f"Completed: {summary.completed_issues} ({percentages['completed']}%)")
    writer.text(f"In Progress: {summary.in_progress_issues} ({percentages['in_progress']}%)")
    writer.text(f"To Do: {summary.todo_issues} ({percentages['todo']}%)")
    writer.space()

    writer.heading('Critical Metrics')
    writer.text(f"Overdue Issues: {len(report.overdue_issues)}", color=colors.red)
    writer.text(f"Stale Issues: {len(report.stale_issues)}", color=colors.orange)
    writer.text(f"Unassigned Issues: {len(report.unassigned_issues)}", color=colors.blue)
    writer.text(f"Blocked Issues: {len(report.blocked_issues)}", color=colors.red)

    for section in SECTIONS:
        issues = getattr(report, section.attribute)
        if not issues:
            continue
        writer.new_page()
        writer.heading(section.title)
        shown, overflow = preview(issues, FALLBACK_PREVIEW_LIMIT)
        for issue in shown:
            writer.text(f"- {issue.key}: {issue.summary}", size=10)
            writer.text(_issue_detail(section.kind, issue), size=10, color=colors.grey)
            writer.space(0.5)
        if overflow:
            writer.text(f"... and {overflow} more", size=10)

    if report.by_assignee:
        writer.new_page()
        writer.heading('Team Member Summary')
        for name, member in report.by_assignee.items():
            writer.text(f"{name}:", size=10, bold=True)
            writer.text(
                f"  Total Issues: {len(member.issues)} | Stale: {member.stale_count} | Overdue: {member.overdue_count}",
                size=10
            )
            writer.space(0.5)

    writer.space()
    stamp = (generated_at or datetime.now()).strftime('%Y-%m-%d %H:%M:%S')
    writer.text(f"Generated on {stamp} | Engineering Manager MCP", size=8, align='center')
    pdf.save()

    logger.info(f"ReportLab PDF generated: {output_path}")
    return output_path.absolute()


def render_standup_pdf(
    report: StandupReport,
    output_path: Union[str, Path],
    generated_at: Optional[datetime] = None
) -> Path:
    """
    Render a report to ``output_path``, falling back to ReportLab on failure.

    Blocking; use generate_standup_pdf() from async code.
    """
    output_path = Path(output_path)
    try:
        html = render_report_html(report, generated_at)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        html_path = output_path.with_suffix('.html')
        html_path.write_text(html, encoding='utf-8')
        logger.info(f"Saved HTML file: {html_path}")
        return generate_pdf_from_html(html, output_path)
    except Exception as e:
        logger.error(f"HTML/WeasyPrint PDF generation failed, falling back to ReportLab: {e}")
        return generate_pdf_with_reportlab(report, output_path, generated_at)


def default_output_path(report: StandupReport, output_dir: Union[str, Path], now: Optional[datetime] = None) -> Path:
    return Path(output_dir) / generate_report_filename(report.sprint_name, report.sprint_id, now)


async def generate_standup_pdf(
    report: StandupReport,
    output_path: Optional[Union[str, Path]] = None,
    output_dir: Union[str, Path] = '.'
) -> Path:
    """
    Render a report to PDF without blocking the event loop.

    Args:
        report: Built standup report (not modified)
        output_path: Target PDF path (default: timestamped file in output_dir)
        output_dir: Directory for the default path

    Returns:
        Absolute path of the generated PDF
    """
    target = Path(output_path) if output_path else default_output_path(report, output_dir)
    logger.info(f"Starting PDF generation for {report.sprint_name} -> {target}")
    return await asyncio.to_thread(render_standup_pdf, report, target)
