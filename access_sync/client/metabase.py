"""
Metabase directory backend.

This module implements the DirectoryClient contract against Metabase's REST
API: users, permission groups and group memberships.
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from access_sync.client.base import DirectoryAPIError, DirectoryClient
from access_sync.client.transport import HTTPTransport
from access_sync.models import (
    APIResult,
    CreateUserRequest,
    Group,
    Membership,
    PageOptions,
    User,
    UserPage,
    VersionInfo,
)

logger = logging.getLogger(__name__)

# Enterprise (paid) builds are tagged v1.x, open source builds v0.x
PAID_VERSION_PREFIX = 'v1.'


class MetabaseClient(DirectoryClient):
    """
    Metabase API client implementation.

    The plan tier is read from ``paid_plan`` in the configuration when it is a
    boolean. With ``auto`` (the default) it follows the version tag returned by
    the most recent ``get_version`` call, fetching the version first if none
    has been read yet.
    """

    def __init__(self, config: Dict[str, Any], error_config: Optional[Dict[str, Any]] = None,
                 transport: Optional[HTTPTransport] = None):
        """
        Initialize Metabase client.

        Args:
            config: Directory configuration section
            error_config: ``error_handling`` configuration section
            transport: Pre-built transport (tests inject a mock here)
        """
        self.config = config
        self.name = config.get('name', 'metabase')
        self.paid_plan = config.get('paid_plan', 'auto')
        self.transport = transport or HTTPTransport(config, error_config)
        self._version = None

        logger.info(f"Initialized Metabase client for {self.name}")

    def list_users(self, options: PageOptions) -> APIResult:
        offset = self._parse_page_token(options.page_token)
        query = {
            'limit': options.page_size,
            'offset': offset,
            'include_deactivated': 'true',
        }

        result = self.transport.request('GET', '/api/user', query=query)
        payload = result.data

        if isinstance(payload, list):
            # Older servers ignore paging and return every user at once
            users = [User.from_api(item) for item in payload]
            return APIResult(UserPage(users, ''), result.rate_limit)

        users = [User.from_api(item) for item in payload.get('data', [])]
        total = payload.get('total')

        next_page_token = ''
        next_offset = offset + len(users)
        if users and total is not None and next_offset < int(total):
            next_page_token = str(next_offset)

        logger.debug(f"Listed {len(users)} users at offset {offset} from {self.name}")
        return APIResult(UserPage(users, next_page_token), result.rate_limit)

    def list_groups(self) -> APIResult:
        result = self.transport.request('GET', '/api/permissions/group')
        groups = [Group.from_api(item) for item in (result.data or [])]
        logger.debug(f"Listed {len(groups)} groups from {self.name}")
        return APIResult(groups, result.rate_limit)

    def list_memberships(self) -> APIResult:
        result = self.transport.request('GET', '/api/permissions/membership')

        memberships = {}  # type: Dict[str, List[Membership]]
        for key, rows in (result.data or {}).items():
            memberships[str(key)] = [Membership.from_api(row) for row in rows]

        return APIResult(memberships, result.rate_limit)

    def add_user_to_group(self, membership: Membership) -> APIResult:
        result = self.transport.request('POST', '/api/permissions/membership', body=membership.to_api())
        logger.debug(f"Added user {membership.user_id} to group {membership.group_id} in {self.name}")
        return APIResult(None, result.rate_limit)

    def remove_user_from_group(self, membership_id: int) -> APIResult:
        result = self.transport.request('DELETE', f'/api/permissions/membership/{membership_id}')
        logger.debug(f"Removed membership {membership_id} in {self.name}")
        return APIResult(None, result.rate_limit)

    def update_user_active_status(self, user_id: str, active: bool) -> APIResult:
        path = f'/api/user/{quote(str(user_id), safe="")}'

        if active:
            result = self.transport.request('PUT', f'{path}/reactivate')
        else:
            result = self.transport.request('DELETE', path)

        data = result.data if isinstance(result.data, dict) else {}
        if data.get('id') is not None:
            user = User.from_api(data)
        else:
            # Deactivation answers with {"success": true} only
            user = User(id=_int_or_none(user_id), is_active=active)

        return APIResult(user, result.rate_limit)

    def create_user(self, request: CreateUserRequest) -> APIResult:
        result = self.transport.request('POST', '/api/user', body=request.to_api())
        return APIResult(User.from_api(result.data or {}), result.rate_limit)

    def get_version(self) -> APIResult:
        result = self.transport.request('GET', '/api/session/properties')
        self._version = VersionInfo.from_api(result.data or {})
        logger.info(f"{self.name} reports version {self._version.tag or 'unknown'}")
        return APIResult(self._version, result.rate_limit)

    def is_paid_plan(self) -> bool:
        if isinstance(self.paid_plan, bool):
            return self.paid_plan
        if self._version is None:
            self.get_version()
        return self._version.tag.startswith(PAID_VERSION_PREFIX)

    def close(self):
        self.transport.close()

    @staticmethod
    def _parse_page_token(page_token: str) -> int:
        if not page_token:
            return 0
        if not (page_token.isascii() and page_token.isdigit()):
            raise DirectoryAPIError(f"invalid page token {page_token!r}")
        return int(page_token)


def _int_or_none(value: str) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
