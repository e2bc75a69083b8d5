"""
Sync driver and command-line entry point for Access Sync.

The connector processes one page per call. ``SyncRunner`` plays the host
orchestrator: it walks every listing page by page, collects a snapshot of the
resource/entitlement/grant graph and, on failure, reports where to resume.
"""

import sys
import json
import logging
from dataclasses import asdict, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from access_sync.client.base import DirectoryAPIError
from access_sync.client.metabase import MetabaseClient
from access_sync.config import ConfigurationError, load_config
from access_sync.connector.connector import Connector
from access_sync.connector.envelope import ListResult
from access_sync.connector.errors import ConnectorError
from access_sync.logging_setup import setup_logging
from access_sync.models import RateLimitDescription

logger = logging.getLogger(__name__)


class SyncError(Exception):
    """
    A sync step failed.

    Attributes:
        step: Description of the failed step
        page_token: Last valid cursor for that step; resume from here
        rate_limit: Rate-limit window reported with the failure, if any
    """

    def __init__(self, message: str, step: str = '', page_token: str = '',
                 rate_limit: Optional[RateLimitDescription] = None):
        super().__init__(message)
        self.step = step
        self.page_token = page_token
        self.rate_limit = rate_limit


class SyncRunner:
    """Walks all connector listings and collects a graph snapshot."""

    def __init__(self, connector: Connector):
        self.connector = connector
        self.stats = {
            'resources': 0,
            'entitlements': 0,
            'grants': 0,
            'pages': 0,
            'rate_limited_pages': 0,
        }

    def sync(self) -> Dict[str, List[Any]]:
        """
        Run one full sync pass.

        Returns:
            Snapshot with ``resources``, ``entitlements`` and ``grants`` lists

        Raises:
            SyncError: On the first failed step
        """
        snapshot = {'resources': [], 'entitlements': [], 'grants': []}

        for syncer in self.connector.resource_syncers():
            type_id = syncer.resource_type.id
            resources = self._walk(f"list {type_id} resources",
                                   lambda token: syncer.list(None, token))
            snapshot['resources'].extend(resources)
            self.stats['resources'] += len(resources)
            logger.info(f"Synced {len(resources)} {type_id} resources")

            for resource in resources:
                entitlements = self._walk(f"list entitlements for {resource.id}",
                                          lambda token: syncer.entitlements(resource, token))
                grants = self._walk(f"list grants for {resource.id}",
                                    lambda token: syncer.grants(resource, token))

                snapshot['entitlements'].extend(entitlements)
                snapshot['grants'].extend(grants)
                self.stats['entitlements'] += len(entitlements)
                self.stats['grants'] += len(grants)

        return snapshot

    def _walk(self, step: str, fetch: Callable[[str], ListResult]) -> List[Any]:
        items = []
        page_token = ''

        while True:
            try:
                result = fetch(page_token)
            except ConnectorError as e:
                raise SyncError(str(e), step, page_token, e.annotations.rate_limit) from e

            self.stats['pages'] += 1
            if result.annotations.contains_rate_limit():
                self.stats['rate_limited_pages'] += 1
                logger.debug(f"{step}: rate limit {result.annotations.rate_limit.to_dict()}")

            items.extend(result.items)

            if not result.next_page_token:
                return items
            if result.next_page_token == page_token:
                raise SyncError(f"{step}: page token did not advance", step, page_token)
            page_token = result.next_page_token


class SyncOrchestrator:
    """
    Loads configuration, sets up logging and runs sync, health check or
    account actions against the configured directory.
    """

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path
        self.config = None
        self.connector = None
        self.sync_stats = {}

    def _load_configuration(self):
        if self.config is None:
            self.config = load_config(self.config_path)

    def _build_connector(self) -> Connector:
        if self.connector is None:
            client = MetabaseClient(self.config['directory'], self.config.get('error_handling', {}))
            self.connector = Connector.from_config(self.config, client)
        return self.connector

    def run(self, output_path: Optional[str] = None) -> int:
        """
        Run a full sync.

        Returns:
            Exit code (0 for success, non-zero for failure)
        """
        start_time = datetime.now()
        try:
            self._load_configuration()
            setup_logging(self.config.get('logging', {}))
            logger.info("Starting Access Sync")

            connector = self._build_connector()
            connector.validate()

            runner = SyncRunner(connector)
            snapshot = runner.sync()
            self.sync_stats = dict(runner.stats)
            self.sync_stats['runtime_seconds'] = (datetime.now() - start_time).total_seconds()

            if output_path:
                with open(output_path, 'w') as f:
                    json.dump(snapshot, f, indent=2, default=_to_jsonable)
                logger.info(f"Snapshot written to {output_path}")

            self._log_sync_summary()
            return 0

        except ConfigurationError as e:
            logger.error(f"Configuration error: {e}")
            return 2
        except SyncError as e:
            logger.error(f"Sync failed at '{e.step}': {e}")
            if e.page_token:
                logger.error(f"Resume from page token {e.page_token!r}")
            if e.rate_limit:
                logger.error(f"Rate limit window: {e.rate_limit.to_dict()}")
            return 1
        except ConnectorError as e:
            logger.error(f"Directory validation failed: {e}")
            return 1
        except Exception as e:
            logger.error(f"Unexpected error: {e}", exc_info=True)
            return 4
        finally:
            self._cleanup()

    def health_check(self) -> Dict[str, Any]:
        """
        Check configuration and directory connectivity.

        Returns:
            Dictionary containing health status and details
        """
        health_status = {
            'status': 'healthy',
            'timestamp': datetime.now().isoformat(),
            'checks': {}
        }

        try:
            self._load_configuration()
            health_status['checks']['configuration'] = {
                'status': 'pass',
                'message': 'Configuration loaded successfully'
            }
        except ConfigurationError as e:
            health_status['checks']['configuration'] = {'status': 'fail', 'message': str(e)}
            health_status['status'] = 'unhealthy'
            return health_status

        try:
            annotations = self._build_connector().validate()
            check = {'status': 'pass', 'message': 'Directory reachable'}
            if annotations.rate_limit:
                check['rate_limit'] = annotations.rate_limit.to_dict()
            health_status['checks']['directory'] = check
        except ConnectorError as e:
            check = {'status': 'fail', 'message': str(e)}
            if e.annotations.rate_limit:
                check['rate_limit'] = e.annotations.rate_limit.to_dict()
            health_status['checks']['directory'] = check
            health_status['status'] = 'unhealthy'
        except DirectoryAPIError as e:
            health_status['checks']['directory'] = {'status': 'fail', 'message': str(e)}
            health_status['status'] = 'unhealthy'
        finally:
            self._cleanup()

        return health_status

    def set_user_active(self, user_id: str, active: bool) -> int:
        """Enable or disable one user. Returns an exit code."""
        try:
            self._load_configuration()
            setup_logging(self.config.get('logging', {}))
            connector = self._build_connector()

            args = {'userId': user_id}
            result = connector.enable_user(args) if active else connector.disable_user(args)
            return 0 if result.success else 1

        except ConfigurationError as e:
            logger.error(f"Configuration error: {e}")
            return 2
        except ConnectorError as e:
            logger.error(f"Action failed: {e}")
            return 1
        finally:
            self._cleanup()

    def _log_sync_summary(self):
        stats = self.sync_stats
        logger.info("=== Sync Summary ===")
        logger.info(f"Total runtime: {stats.get('runtime_seconds', 0):.2f} seconds")
        logger.info(f"Resources: {stats.get('resources', 0)}")
        logger.info(f"Entitlements: {stats.get('entitlements', 0)}")
        logger.info(f"Grants: {stats.get('grants', 0)}")
        logger.info(f"Pages fetched: {stats.get('pages', 0)} "
                    f"({stats.get('rate_limited_pages', 0)} with rate-limit data)")

    def _cleanup(self):
        if self.connector:
            self.connector.close()
            self.connector = None


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    if isinstance(value, bytes):
        return '<redacted>'
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def main():
    """Main entry point for the application."""
    import argparse

    parser = argparse.ArgumentParser(description='Access Sync - directory entitlement reconciliation')
    parser.add_argument('--config', '-c', help='Path to configuration file')
    parser.add_argument('--output', '-o', help='Write the synced graph snapshot to this JSON file')
    parser.add_argument('--health-check', action='store_true',
                        help='Check configuration and directory connectivity instead of syncing')
    group = parser.add_mutually_exclusive_group()
    group.add_argument('--enable-user', metavar='USER_ID', help='Reactivate a user account')
    group.add_argument('--disable-user', metavar='USER_ID', help='Deactivate a user account')

    args = parser.parse_args()

    orchestrator = SyncOrchestrator(config_path=args.config)

    if args.health_check:
        health_status = orchestrator.health_check()
        print(json.dumps(health_status, indent=2))
        sys.exit(0 if health_status['status'] == 'healthy' else 1)

    if args.enable_user:
        sys.exit(orchestrator.set_user_active(args.enable_user, True))
    if args.disable_user:
        sys.exit(orchestrator.set_user_active(args.disable_user, False))

    sys.exit(orchestrator.run(output_path=args.output))


if __name__ == "__main__":
    main()
