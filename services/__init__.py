"""
Engineering Manager MCP - Services Package

This package contains the standup report services:
- issue_classifier: Per-issue status and problem categorization
- standup_report: Report building, aggregation and caching
- pdf_generator: PDF rendering (WeasyPrint with ReportLab fallback)
- tool_handler: Tool validation and dispatch
"""

from .issue_classifier import categorize_issue, classify_status
from .standup_report import StandupReportBuilder, assemble_report
from .pdf_generator import generate_standup_pdf, render_report_html
from .tool_handler import ToolHandler

__all__ = [
    'categorize_issue',
    'classify_status',
    'StandupReportBuilder',
    'assemble_report',
    'generate_standup_pdf',
    'render_report_html',
    'ToolHandler',
]

__version__ = '1.0.0'
