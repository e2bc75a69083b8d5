"""
Logging setup and configuration for Access Sync.

This module provides centralized logging configuration with file rotation,
retention cleanup, container-friendly console output, scrubbing of secrets
from log messages and an audit logger for access changes.
"""

import os
import re
import glob
import logging
import logging.handlers
from datetime import datetime, timedelta
from typing import Any, Dict

LOG_FILE_NAME = 'access_sync.log'


class SensitiveDataFilter(logging.Filter):
    """Filter to scrub sensitive data from log messages."""

    SENSITIVE_KEYWORDS = [
        'password', 'token', 'secret', 'api_key', 'apikey', 'session_token',
        'credential', 'authorization', 'client_secret', 'access_token'
    ]

    SENSITIVE_HEADERS = ['X-API-KEY', 'X-Metabase-Session']

    def __init__(self, name: str = ''):
        super().__init__(name)
        keywords = '|'.join(re.escape(keyword) for keyword in self.SENSITIVE_KEYWORDS)
        headers = '|'.join(re.escape(header) for header in self.SENSITIVE_HEADERS)

        self._patterns = [
            # key=value
            (re.compile(rf'((?:{keywords})\s*=\s*)[^\s,}}\]]+', re.IGNORECASE), r'\1****'),
            # "key": "value" and 'key': 'value'
            (re.compile(rf'(["\'][\w-]*(?:{keywords})["\']\s*:\s*["\'])[^"\']*(["\'])', re.IGNORECASE), r'\1****\2'),
            # "key": value (unquoted)
            (re.compile(rf'(["\'][\w-]*(?:{keywords})["\']\s*:\s*)([^"\',}}\s]+)', re.IGNORECASE), r'\1****'),
            # Authorization: Bearer/Basic value
            (re.compile(r'(Authorization:\s*(?:Bearer|Basic)\s+)[^\s,}\]]+', re.IGNORECASE), r'\1****'),
            # X-API-KEY: value and session headers
            (re.compile(rf'((?:{headers})["\']?\s*[:=]\s*["\']?)[^\s,}}\]"\']+', re.IGNORECASE), r'\1****'),
        ]

    def filter(self, record):
        """Filter out sensitive data from log records."""
        # Merge args into the message before scrubbing
        if record.args:
            record.msg = record.getMessage()
            record.args = None

        msg = str(record.msg)
        for pattern, replacement in self._patterns:
            msg = pattern.sub(replacement, msg)
        record.msg = msg

        return True


class LoggingManager:
    """
    Manages logging configuration for Access Sync.

    Provides file-based logging with rotation, retention policies, and
    container-friendly console output.
    """

    def __init__(self):
        self.configured = False
        self.log_dir = None
        self.retention_days = 7

    def setup_logging(self, config: Dict[str, Any]) -> None:
        """
        Set up logging based on configuration.

        Args:
            config: Logging configuration dictionary
        """
        if self.configured:
            return

        logging_config = config if config else {}

        # Extract configuration values
        log_level = logging_config.get('level', 'INFO').upper()
        self.log_dir = logging_config.get('log_dir', 'logs')
        rotation = logging_config.get('rotation', 'daily')
        self.retention_days = logging_config.get('retention_days', 7)
        console_enabled = logging_config.get('console_output', True)
        console_level = logging_config.get('console_level', 'WARNING').upper()

        # Create log directory
        self._ensure_log_directory()

        # Configure root logger
        root_logger = logging.getLogger()
        root_logger.setLevel(getattr(logging, log_level, logging.INFO))

        # Clear any existing handlers
        root_logger.handlers.clear()

        # Create formatters
        detailed_formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        console_formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%H:%M:%S'
        )

        sensitive_filter = SensitiveDataFilter()

        # Set up file handler with rotation
        file_handler = self._create_file_handler(rotation)
        file_handler.setLevel(getattr(logging, log_level, logging.INFO))
        file_handler.setFormatter(detailed_formatter)
        file_handler.addFilter(sensitive_filter)
        root_logger.addHandler(file_handler)

        # Console handler for container environments
        if console_enabled:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(getattr(logging, console_level, logging.WARNING))
            console_handler.setFormatter(console_formatter)
            console_handler.addFilter(sensitive_filter)
            root_logger.addHandler(console_handler)

        # Clean up old log files
        self._cleanup_old_logs()

        self.configured = True

        # Log successful configuration
        logger = logging.getLogger(__name__)
        logger.info(f"Logging configured: level={log_level}, dir={self.log_dir}, "
                    f"retention={self.retention_days} days, console={console_enabled}")

    def _ensure_log_directory(self) -> None:
        if self.log_dir and not os.path.exists(self.log_dir):
            try:
                os.makedirs(self.log_dir, exist_ok=True)
            except OSError as e:
                # Fall back to the current directory
                print(f"Warning: Could not create log directory {self.log_dir}: {e}")
                print("Falling back to current directory for logs")
                self.log_dir = '.'

    def _create_file_handler(self, rotation: str) -> logging.Handler:
        """
        Create appropriate file handler based on rotation setting.

        Args:
            rotation: Rotation setting ('daily', 'midnight', or 'none')
        """
        log_file = os.path.join(self.log_dir, LOG_FILE_NAME)

        if rotation.lower() in ['daily', 'midnight']:
            # Daily rotation, keeping one file per retained day
            handler = logging.handlers.TimedRotatingFileHandler(
                filename=log_file,
                when='midnight',
                interval=1,
                backupCount=self.retention_days,
                encoding='utf-8'
            )
            handler.suffix = '%Y-%m-%d'
        else:
            # No rotation
            handler = logging.FileHandler(log_file, encoding='utf-8')

        return handler

    def _cleanup_old_logs(self) -> None:
        """Remove rotated log files older than the retention period."""
        if not self.log_dir or self.retention_days <= 0:
            return

        cutoff_date = datetime.now() - timedelta(days=self.retention_days)

        # Only rotated files carry a suffix, so the active log is never matched
        for log_file in glob.glob(os.path.join(self.log_dir, f'{LOG_FILE_NAME}.*')):
            try:
                file_time = datetime.fromtimestamp(os.path.getmtime(log_file))
                if file_time < cutoff_date:
                    os.remove(log_file)
            except OSError as e:
                print(f"Warning: Could not remove old log file {log_file}: {e}")

    def reset(self) -> None:
        """Forget previous configuration so setup_logging applies again."""
        self.configured = False


_logging_manager = LoggingManager()


def setup_logging(config: Dict[str, Any]) -> None:
    """
    Convenience function to set up logging.

    Args:
        config: Logging configuration dictionary
    """
    _logging_manager.setup_logging(config)


def reset_logging() -> None:
    _logging_manager.reset()


class SecurityAuditLogger:
    """Audit trail for changes made to directory access."""

    def __init__(self):
        self.logger = logging.getLogger('security')

    def log_entitlement_change(self, operation: str, user_id: Any, group_id: Any, permission: str, success: bool):
        """Log grant and revoke operations."""
        status = "SUCCESS" if success else "FAILURE"
        self.logger.info(f"Entitlement {operation} {status}: user={user_id} group={group_id} permission={permission}")

    def log_account_change(self, operation: str, user_id: Any, success: bool):
        """Log account lifecycle operations (create, enable, disable)."""
        status = "SUCCESS" if success else "FAILURE"
        self.logger.info(f"Account {operation} {status}: user={user_id}")


security_logger = SecurityAuditLogger()
