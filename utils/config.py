"""
Configuration management for Engineering Manager MCP.

Loads credentials from the environment (optionally a .env file) and tunable
settings from an optional config.yaml. Configuration is built once at startup
and passed explicitly to the components that need it.

Environment variables:
    JIRA_BASE_URL   Jira instance URL (required)
    JIRA_EMAIL      Jira account e-mail (required)
    JIRA_API_TOKEN  Jira API token (required)
    SLACK_BOT_TOKEN Slack bot token (optional; Slack tools fail without it)
    LOG_LEVEL       Logging level (default: INFO)
    DEBUG           "true" to include error context in tool responses
"""
import os
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from urllib.parse import urlparse
import tempfile

import yaml
from dotenv import load_dotenv

from utils.cache import CacheSettings
from utils.exceptions import ConfigError
from utils.retry import RetryPolicy


logger = logging.getLogger(__name__)

REQUIRED_ENV_VARS = ['JIRA_BASE_URL', 'JIRA_EMAIL', 'JIRA_API_TOKEN']


@dataclass
class JiraConfig:
    """Jira connection settings."""
    base_url: str
    email: str
    api_token: str


@dataclass
class SlackConfig:
    """Slack Web API settings."""
    bot_token: Optional[str] = None
    base_url: str = "https://slack.com/api"


@dataclass
class ReportConfig:
    """Standup report settings."""
    default_days_stale: int = 2
    output_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))


@dataclass
class Config:
    """Complete application configuration."""
    jira: JiraConfig
    slack: SlackConfig
    cache: CacheSettings
    retry: RetryPolicy
    report: ReportConfig
    log_level: str = "INFO"
    debug: bool = False

    def safe_dict(self) -> Dict[str, str]:
        """Return a loggable view of the configuration with secrets masked."""
        return {
            'JIRA_BASE_URL': _mask_url(self.jira.base_url),
            'JIRA_EMAIL': _mask_email(self.jira.email),
            'JIRA_API_TOKEN': '***hidden***',
            'SLACK_BOT_TOKEN': '***hidden***' if self.slack.bot_token else 'NOT SET',
            'OUTPUT_DIR': str(self.report.output_dir),
        }


def _mask_url(url: str) -> str:
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.hostname:
        return '***invalid-url***'
    return f"{parsed.scheme}://{parsed.hostname}/***"


def _mask_email(email: str) -> str:
    parts = email.split('@')
    if len(parts) != 2:
        return '***@***'
    username, domain = parts
    if len(username) <= 2:
        return f"*@{domain}"
    return f"{username[0]}***{username[-1]}@{domain}"


def _is_valid_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc)


def load_yaml_settings(config_path: Optional[Path]) -> Dict[str, Any]:
    """
    Load optional YAML settings.

    Args:
        config_path: Path to config.yaml, or None to skip

    Returns:
        Settings dictionary (empty if the file does not exist)

    Raises:
        ConfigError: If the file exists but is not a YAML mapping
    """
    if config_path is None or not config_path.exists():
        return {}

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            settings = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in configuration file {config_path}: {e}")

    if not isinstance(settings, dict):
        raise ConfigError(f"Configuration file {config_path} must contain a YAML mapping")

    logger.debug(f"Loaded settings from {config_path}")
    return settings


def load_config(env_path: Optional[str] = None, config_path: Optional[str] = None) -> Config:
    """Load configuration from the environment (.env) and config.yaml.

    Args:
        env_path: Path to a .env file (default: ./.env if present)
        config_path: Path to config.yaml (default: ./config.yaml if present)

    Returns:
        Config object with all settings loaded

    Raises:
        ConfigError: If required environment variables are missing or invalid
    """
    project_root = Path.cwd()

    env_file = Path(env_path) if env_path else project_root / ".env"
    if env_file.exists():
        load_dotenv(env_file, override=False)
    elif env_path:
        raise ConfigError(f".env file not found at {env_file}")

    yaml_file = Path(config_path) if config_path else project_root / "config.yaml"
    if config_path and not yaml_file.exists():
        raise ConfigError(f"config.yaml not found at {yaml_file}")
    settings = load_yaml_settings(yaml_file)

    missing = [var for var in REQUIRED_ENV_VARS if not os.getenv(var, '').strip()]
    if missing:
        raise ConfigError(
            f"Missing or empty required environment variables: {', '.join(missing)}. "
            "Please check your .env file.",
            context={'missing': missing}
        )

    base_url = os.environ['JIRA_BASE_URL'].strip().rstrip('/')
    if not _is_valid_url(base_url):
        raise ConfigError("JIRA_BASE_URL must be a valid URL (e.g., https://your-domain.atlassian.net)")

    email = os.environ['JIRA_EMAIL'].strip()
    if '@' not in email:
        raise ConfigError("JIRA_EMAIL must be a valid email address")

    jira_config = JiraConfig(
        base_url=base_url,
        email=email,
        api_token=os.environ['JIRA_API_TOKEN'].strip(),
    )

    slack_token = os.getenv('SLACK_BOT_TOKEN', '').strip() or None
    slack_config = SlackConfig(bot_token=slack_token)

    cache_settings = settings.get('cache') or {}
    cache_config = CacheSettings(
        sprint_ttl=cache_settings.get('sprint_ttl', 600),
        issue_ttl=cache_settings.get('issue_ttl', 300),
        report_ttl=cache_settings.get('report_ttl', 300),
        metadata_ttl=cache_settings.get('metadata_ttl', 1800),
        max_size=cache_settings.get('max_size', 1000),
        cleanup_interval=cache_settings.get('cleanup_interval', 60),
    )

    retry_settings = settings.get('retry') or {}
    retry_policy = RetryPolicy(
        max_attempts=retry_settings.get('max_attempts', 3),
        initial_delay=retry_settings.get('initial_delay', 1.0),
        max_delay=retry_settings.get('max_delay', 10.0),
        factor=retry_settings.get('factor', 2.0),
    )

    report_settings = settings.get('report') or {}
    report_config = ReportConfig(
        default_days_stale=report_settings.get('default_days_stale', 2),
    )
    if report_settings.get('output_dir'):
        report_config.output_dir = project_root / report_settings['output_dir']

    config = Config(
        jira=jira_config,
        slack=slack_config,
        cache=cache_config,
        retry=retry_policy,
        report=report_config,
        log_level=os.getenv('LOG_LEVEL', 'INFO').upper(),
        debug=os.getenv('DEBUG', '').lower() in ('1', 'true', 'yes'),
    )

    logger.info(f"Configuration loaded: {config.safe_dict()}")
    return config
