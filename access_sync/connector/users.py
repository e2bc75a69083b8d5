"""
User resources: paged listing, group membership grants and account creation.
"""

import logging
from typing import Callable, Dict, List, NamedTuple, Optional

from access_sync.client.base import DirectoryClient
from access_sync.connector.actions import CreateAccountRequest
from access_sync.connector.annotations import Annotations
from access_sync.connector.envelope import NO_MORE_PAGES, ListResult, backend_call, page_token_or_start
from access_sync.connector.resources import (
    GROUP_RESOURCE_TYPE,
    USER_RESOURCE_TYPE,
    Grant,
    PermissionKind,
    Resource,
    ResourceId,
    format_resource_id,
    new_grant,
    user_resource,
)
from access_sync.credentials import DEFAULT_PASSWORD_LENGTH, PlaintextData, generate_password, password_artifact
from access_sync.logging_setup import security_logger
from access_sync.models import CreateUserRequest, Membership, PageOptions

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100


class CreateAccountResult(NamedTuple):
    resource: Resource
    plaintexts: List[PlaintextData]
    annotations: Annotations


def correlate_grants(memberships: Dict[str, List[Membership]], principal_id: ResourceId) -> List[Grant]:
    """
    Build the grants held by one user from the full membership listing.

    A row belongs to the user when its ``user_id`` matches. Rows that carry no
    ``user_id`` belong to the user their listing key names.
    """
    grants = []
    for key, rows in memberships.items():
        for membership in rows:
            owner = membership.user_id if membership.user_id is not None else key
            if str(owner) != principal_id.resource:
                continue

            group_id = ResourceId(GROUP_RESOURCE_TYPE.id, format_resource_id(membership.group_id, 'group'))
            permission = PermissionKind.from_membership(membership.is_group_manager)
            grants.append(new_grant(group_id, permission, principal_id))
    return grants


class UserBuilder:
    """Syncs user resources and creates user accounts."""

    resource_type = USER_RESOURCE_TYPE

    def __init__(self, client: DirectoryClient, page_size: int = DEFAULT_PAGE_SIZE,
                 password_length: int = DEFAULT_PASSWORD_LENGTH,
                 password_generator: Optional[Callable[[int], str]] = None):
        self.client = client
        self.page_size = page_size
        self.password_length = password_length
        self.password_generator = password_generator or generate_password

    def list(self, parent_id: Optional[ResourceId] = None, page_token: Optional[str] = None) -> ListResult:
        """
        List one page of users.

        Args:
            parent_id: Unused; users are top-level resources
            page_token: Cursor returned by the previous page, or None to start

        Returns:
            ListResult with the page's user resources and the next cursor
            (empty when there are no further pages)

        Raises:
            BackendError: If the listing fails; carries any rate-limit signal
            ResourceMappingError: If a user cannot be mapped
        """
        annotations = Annotations()
        options = PageOptions(page_size=self.page_size, page_token=page_token_or_start(page_token))

        page = backend_call(annotations, "failed to list users", lambda: self.client.list_users(options))

        resources = [user_resource(user) for user in page.users]
        return ListResult(resources, page.next_page_token or NO_MORE_PAGES, annotations)

    def entitlements(self, resource: Resource, page_token: Optional[str] = None) -> ListResult:
        return ListResult([], NO_MORE_PAGES, Annotations())

    def grants(self, resource: Resource, page_token: Optional[str] = None) -> ListResult:
        """
        Group membership grants held by a user.

        The whole membership listing is fetched; either every grant for the
        user is returned or, when the listing fails, none are.

        Raises:
            BackendError: If the membership listing fails
        """
        annotations = Annotations()
        memberships = backend_call(annotations, "failed to list memberships", self.client.list_memberships)

        grants = correlate_grants(memberships, resource.id)
        logger.debug(f"User {resource.id.resource} holds {len(grants)} group grants")
        return ListResult(grants, NO_MORE_PAGES, annotations)

    def create_account(self, profile) -> CreateAccountResult:
        """
        Create a user account with a generated password.

        Args:
            profile: Account profile bag (``email`` required; ``first_name``,
                ``last_name`` optional)

        Returns:
            CreateAccountResult with the new user resource and exactly one
            plaintext ``password`` artifact

        Raises:
            ValidationError: If the profile is invalid (no backend call is made)
            BackendError: If the create call fails
        """
        account = CreateAccountRequest.from_profile(profile)
        password = self.password_generator(self.password_length)

        request = CreateUserRequest(
            email=account.email,
            first_name=account.first_name,
            last_name=account.last_name,
            password=password,
        )

        annotations = Annotations()
        try:
            user = backend_call(annotations, "failed to create user", lambda: self.client.create_user(request))
        except Exception:
            security_logger.log_account_change('create', account.email, False)
            raise

        resource = user_resource(user)
        security_logger.log_account_change('create', resource.id.resource, True)
        logger.info(f"Created user {resource.id.resource}")

        return CreateAccountResult(resource, [password_artifact(password)], annotations)
