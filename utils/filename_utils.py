"""
Filename sanitization utilities for cross-platform compatibility.

Ensures filenames are safe for Windows, Linux, and macOS filesystems.
Sprint names often contain colons or slashes ("WEB: Sprint 42") which must
not leak into report filenames.
"""
import re
import unicodedata
from datetime import datetime
from typing import Optional


def sanitize_filename(filename: str, max_length: int = 200) -> str:
    """Sanitize a filename by replacing invalid characters.

    Handles:
    - Windows reserved chars: < > : " / \\ | ? *
    - Colons (common in sprint names like "WEB: Sprint 42")
    - Unicode normalization
    - Control characters (0x00-0x1F)
    - Trailing dots and spaces (Windows restriction)

    Args:
        filename: Raw filename (may contain colons, spaces, etc.)
        max_length: Maximum filename length (default: 200)

    Returns:
        Safe filename string

    Examples:
        >>> sanitize_filename("WEB: Sprint 42")
        'WEB-Sprint-42'
        >>> sanitize_filename("Q4/FY25: Final Report")
        'Q4_FY25-Final-Report'
        >>> sanitize_filename("  Name  ")
        'Name'
    """
    if not filename:
        return "untitled"

    # Normalize unicode (handle accented characters)
    filename = unicodedata.normalize('NFKD', filename)
    filename = filename.encode('ascii', 'ignore').decode('ascii')

    filename = filename.replace(':', '-')
    filename = re.sub(r'[<>"/\\|?*]', '_', filename)
    filename = ''.join(c for c in filename if ord(c) >= 32)
    filename = filename.strip('. ')

    # Collapse runs of spaces/hyphens
    filename = re.sub(r'[-\s]+', '-', filename)

    if len(filename) > max_length:
        filename = filename[:max_length].rstrip('-_')

    return filename or 'report'


def generate_report_filename(
    sprint_name: str,
    sprint_id: int,
    timestamp: Optional[datetime] = None,
    extension: str = "pdf"
) -> str:
    """Generate a safe, timestamped filename for a standup report.

    Args:
        sprint_name: Sprint name (may contain unsafe characters)
        sprint_id: Numeric sprint ID
        timestamp: Generation time (default: now)
        extension: File extension without the dot

    Returns:
        Filename like ``standup-report-WEB-Sprint-42-7-20240115-093000.pdf``

    Examples:
        >>> generate_report_filename("WEB: Sprint 42", 7, datetime(2024, 1, 15, 9, 30))
        'standup-report-WEB-Sprint-42-7-20240115-093000.pdf'
    """
    stamp = (timestamp or datetime.now()).strftime('%Y%m%d-%H%M%S')
    safe_name = sanitize_filename(sprint_name, max_length=100)
    return f"standup-report-{safe_name}-{sprint_id}-{stamp}.{extension}"
