"""
Utility modules for Engineering Manager MCP.
"""
from .cache import CacheKeys, CacheRegistry, CacheStore
from .config import load_config, Config
from .exceptions import ApiError, BaseError, ConfigError, JiraError, SlackError, ValidationError, handle_error
from .filename_utils import sanitize_filename, generate_report_filename
from .retry import RetryPolicy, retry_async

__all__ = [
    'CacheKeys',
    'CacheRegistry',
    'CacheStore',
    'load_config',
    'Config',
    'ApiError',
    'BaseError',
    'ConfigError',
    'JiraError',
    'SlackError',
    'ValidationError',
    'handle_error',
    'sanitize_filename',
    'generate_report_filename',
    'RetryPolicy',
    'retry_async',
]
