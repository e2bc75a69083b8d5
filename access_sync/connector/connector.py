"""
Connector facade consumed by the host sync runtime.

The connector is stateless between calls: every operation is a function of
its inputs plus a fresh round trip to the directory backend.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from access_sync.client.base import DirectoryClient
from access_sync.connector.actions import ACCOUNT_PROFILE_FIELDS, ACTION_SCHEMAS, UserActions
from access_sync.connector.annotations import Annotations
from access_sync.connector.envelope import ActionResult, backend_call
from access_sync.connector.groups import GroupBuilder
from access_sync.connector.resources import Entitlement, Grant, Resource, resource_types
from access_sync.connector.users import DEFAULT_PAGE_SIZE, CreateAccountResult, UserBuilder
from access_sync.credentials import DEFAULT_PASSWORD_LENGTH

logger = logging.getLogger(__name__)


class Connector:
    """
    Entry points for resource listing, access mutations and account actions.

    Args:
        client: Directory backend
        page_size: Users requested per page
        password_length: Length of generated account passwords
    """

    def __init__(self, client: DirectoryClient, page_size: int = DEFAULT_PAGE_SIZE,
                 password_length: int = DEFAULT_PASSWORD_LENGTH):
        self.client = client
        self.users = UserBuilder(client, page_size=page_size, password_length=password_length)
        self.groups = GroupBuilder(client)
        self.actions = UserActions(client)

    @classmethod
    def from_config(cls, config: Dict[str, Any], client: DirectoryClient) -> 'Connector':
        directory_config = config.get('directory', {})
        credentials_config = config.get('credentials', {})
        return cls(
            client,
            page_size=directory_config.get('page_size', DEFAULT_PAGE_SIZE),
            password_length=credentials_config.get('password_length', DEFAULT_PASSWORD_LENGTH),
        )

    def resource_syncers(self) -> List[Any]:
        return [self.users, self.groups]

    def metadata(self) -> Dict[str, Any]:
        return {
            'display_name': 'Access Sync',
            'description': 'Syncs directory users, groups and group memberships',
            'resource_types': [resource_type.id for resource_type in resource_types()],
            'account_creation_schema': ACCOUNT_PROFILE_FIELDS,
            'actions': ACTION_SCHEMAS,
        }

    def validate(self) -> Annotations:
        """
        Check that the backend is reachable and credentials are accepted.

        Raises:
            BackendError: If the version lookup fails
        """
        annotations = Annotations()
        version = backend_call(annotations, "failed to get version", self.client.get_version)
        plan = 'paid' if self.client.is_paid_plan() else 'free'
        logger.info(f"Directory version {version.tag or 'unknown'}, {plan} plan")
        return annotations

    def grant(self, principal: Resource, entitlement: Entitlement) -> Annotations:
        return self.groups.grant(principal, entitlement)

    def revoke(self, grant: Grant) -> Annotations:
        return self.groups.revoke(grant)

    def create_account(self, profile: Optional[Mapping[str, Any]]) -> CreateAccountResult:
        return self.users.create_account(profile)

    def enable_user(self, args: Optional[Mapping[str, Any]]) -> ActionResult:
        return self.actions.enable_user(args)

    def disable_user(self, args: Optional[Mapping[str, Any]]) -> ActionResult:
        return self.actions.disable_user(args)

    def close(self):
        self.client.close()
