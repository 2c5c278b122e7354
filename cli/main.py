"""
Engineering Manager MCP - Main entry point.

Runs the MCP stdio server, or produces standup reports directly from the
command line.
"""
import sys
import json
import asyncio
import logging
import argparse
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel

from utils.config import Config, load_config
from utils.exceptions import BaseError, ConfigError


console = Console(stderr=True)
stdout_console = Console()

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: str, rich_output: bool) -> None:
    """Send logs to stderr; stdout is reserved for the MCP protocol and report output."""
    if rich_output:
        logging.basicConfig(
            level=level,
            format='%(message)s',
            datefmt='[%X]',
            handlers=[RichHandler(console=console, rich_tracebacks=True)]
        )
    else:
        logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='engineering-manager-mcp',
        description="Jira sprint standup reports and Slack tools over MCP",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  engineering-manager-mcp serve                         # MCP stdio server
  engineering-manager-mcp standup --board 42            # Print standup report
  engineering-manager-mcp standup --board 42 --json     # Report as JSON
  engineering-manager-mcp pdf --board 42 --project WEB  # Generate PDF
        """
    )
    parser.add_argument('--env', type=str, help='Path to .env file (default: ./.env)')
    parser.add_argument('--config', type=str, help='Path to config.yaml (default: ./config.yaml)')
    parser.add_argument('--version', action='version', version='Engineering Manager MCP v1.0.0')

    subparsers = parser.add_subparsers(dest='command')
    subparsers.add_parser('serve', help='Run the MCP server over stdio (default)')

    def add_report_arguments(sub: argparse.ArgumentParser) -> None:
        sub.add_argument('--board', type=int, required=True, help='Jira board ID')
        sub.add_argument('--project', type=str, help='Only include issues from this project key')
        sub.add_argument('--days-stale', type=int, help='Days without update to consider stale')

    standup = subparsers.add_parser('standup', help='Print the daily standup report')
    add_report_arguments(standup)
    standup.add_argument('--json', action='store_true', help='Print raw JSON instead of tables')

    pdf = subparsers.add_parser('pdf', help='Generate the standup report PDF')
    add_report_arguments(pdf)
    pdf.add_argument('--output', type=str, help='Output path for the PDF file')

    return parser


def report_arguments(args: argparse.Namespace) -> dict:
    arguments = {'board_id': args.board}
    if args.project:
        arguments['project_key'] = args.project
    if args.days_stale is not None:
        arguments['days_stale'] = args.days_stale
    return arguments


async def run_tool(config: Config, name: str, arguments: dict) -> dict:
    from services.tool_handler import ToolHandler

    handler = ToolHandler.from_config(config)
    try:
        return await handler.call(name, arguments)
    finally:
        await handler.aclose()


def print_error(result: dict) -> None:
    details = result.get('details', {})
    body = f"[red]{result['error']}[/red]\n\n[dim]{details.get('code')} (status {result.get('status')})[/dim]"
    for problem in details.get('validationErrors', []):
        body += f"\n  X {problem['field']}: {problem['message']}"
    console.print(Panel(body, title="Error", border_style="red"))


def run_standup(config: Config, args: argparse.Namespace) -> int:
    from cli.report_view import print_report
    from utils.models import StandupReport

    arguments = report_arguments(args)
    with console.status("Building standup report..."):
        result = asyncio.run(run_tool(config, 'jira_daily_standup_report', arguments))

    if 'error' in result:
        print_error(result)
        return 1

    if args.json:
        stdout_console.print_json(json.dumps(result))
    else:
        print_report(StandupReport.model_validate(result), stdout_console)
    return 0


def run_pdf(config: Config, args: argparse.Namespace) -> int:
    arguments = report_arguments(args)
    if args.output:
        arguments['output_path'] = args.output

    with console.status("Generating PDF..."):
        result = asyncio.run(run_tool(config, 'jira_generate_standup_pdf', arguments))

    if 'error' in result:
        print_error(result)
        return 1

    summary = result['reportSummary']
    pdf_path = result['filePath']
    console.print(Panel(
        f"[green]OK Report generated successfully![/green]\n\n"
        f"[bold]Sprint:[/bold] {summary['sprint']}\n"
        f"[bold]Issues:[/bold] {summary['totalIssues']} "
        f"({summary['overdueCount']} overdue, {summary['staleCount']} stale)\n"
        f"[bold]PDF:[/bold] {pdf_path}",
        title="Success",
        border_style="green"
    ))
    return 0


def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    command = args.command or 'serve'

    try:
        config = load_config(env_path=args.env, config_path=args.config)
    except ConfigError as e:
        console.print(f"\n[red]Configuration Error:[/red] {e.message}")
        return 1

    setup_logging(config.log_level, rich_output=command != 'serve')

    try:
        if command == 'serve':
            from cli.server import run_server
            run_server(config)
            return 0
        if command == 'standup':
            return run_standup(config, args)
        return run_pdf(config, args)

    except KeyboardInterrupt:
        console.print("\n\n[yellow]Cancelled by user[/yellow]")
        return 0

    except BaseError as e:
        console.print(f"\n[red]Error:[/red] {e.message}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
