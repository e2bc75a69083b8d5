"""
Group resources: listing, entitlement derivation and membership mutations.
"""

import logging
from typing import List, Optional

from access_sync.client.base import DirectoryClient
from access_sync.connector.annotations import Annotations
from access_sync.connector.envelope import NO_MORE_PAGES, ListResult, backend_call
from access_sync.connector.resources import (
    GROUP_RESOURCE_TYPE,
    Entitlement,
    Grant,
    PermissionKind,
    Resource,
    ResourceId,
    assignment_entitlement,
    group_resource,
    parse_numeric_id,
    permission_for,
)
from access_sync.logging_setup import security_logger
from access_sync.models import APIResult, Membership

logger = logging.getLogger(__name__)


def derive_entitlements(resource: Resource, is_paid_plan: bool) -> List[Entitlement]:
    """
    Entitlements offered by a group.

    The member entitlement always comes first; the manager entitlement follows
    only on a paid plan.
    """
    entitlements = [assignment_entitlement(resource, PermissionKind.MEMBER)]
    if is_paid_plan:
        entitlements.append(assignment_entitlement(resource, PermissionKind.MANAGER))
    return entitlements


class GroupBuilder:
    """Syncs group resources and applies group membership changes."""

    resource_type = GROUP_RESOURCE_TYPE

    def __init__(self, client: DirectoryClient):
        self.client = client

    def list(self, parent_id: Optional[ResourceId] = None, page_token: Optional[str] = None) -> ListResult:
        """
        List all groups. The backend returns groups unpaged, so the next page
        token is always empty.

        Raises:
            BackendError: If the group listing fails
            ResourceMappingError: If a group cannot be mapped
        """
        annotations = Annotations()
        groups = backend_call(annotations, "failed to list groups", self.client.list_groups)

        resources = []
        for group in groups:
            resources.append(group_resource(group))

        logger.debug(f"Mapped {len(resources)} group resources")
        return ListResult(resources, NO_MORE_PAGES, annotations)

    def entitlements(self, resource: Resource, page_token: Optional[str] = None) -> ListResult:
        # Plan tier is asked for on every call; it can change between syncs
        annotations = Annotations()
        paid = backend_call(annotations, "failed to get plan tier", lambda: APIResult(self.client.is_paid_plan()))
        entitlements = derive_entitlements(resource, paid)
        return ListResult(entitlements, NO_MORE_PAGES, annotations)

    def grants(self, resource: Resource, page_token: Optional[str] = None) -> ListResult:
        """
        Always empty. Membership grants are emitted from the user side only so
        each grant is produced by exactly one enumeration path.
        """
        return ListResult([], NO_MORE_PAGES, Annotations())

    def grant(self, principal: Resource, entitlement: Entitlement) -> Annotations:
        """
        Add ``principal`` to the entitlement's group at the entitlement's level.

        No existence check is made first; a duplicate grant is whatever the
        backend makes of it.

        Raises:
            ValidationError: If the group or user id is not numeric
            UnsupportedEntitlementError: If the entitlement kind cannot be resolved
            BackendError: If the membership create call fails
        """
        group_id = parse_numeric_id(entitlement.resource_id.resource, 'group')
        user_id = parse_numeric_id(principal.id.resource, 'user')
        permission = permission_for(entitlement)

        membership = Membership(
            group_id=group_id,
            user_id=user_id,
            is_group_manager=permission is PermissionKind.MANAGER,
        )

        annotations = Annotations()
        try:
            backend_call(
                annotations,
                f"failed to grant user {user_id} to group {group_id}",
                lambda: self.client.add_user_to_group(membership),
            )
        except Exception:
            security_logger.log_entitlement_change('grant', user_id, group_id, permission.value, False)
            raise

        security_logger.log_entitlement_change('grant', user_id, group_id, permission.value, True)
        logger.info(f"Granted {permission.value} of group {group_id} to user {user_id}")
        return annotations

    def revoke(self, grant: Grant) -> Annotations:
        """
        Remove the membership behind ``grant``.

        The full membership listing is scanned for the row matching
        (group, user) and the first match is deleted by its membership id.
        When no row matches the grant is already gone and nothing is deleted,
        so revoking twice is safe.

        The listing and the delete are not atomic. A concurrent grant or revoke
        of the same (group, user) pair between the two calls can be missed;
        callers needing stronger guarantees serialize changes per pair.

        Raises:
            ValidationError: If the group or user id is not numeric
            BackendError: If the listing or the delete fails
        """
        group_id = parse_numeric_id(grant.entitlement.resource_id.resource, 'group')
        user_id = parse_numeric_id(grant.principal_id.resource, 'user')

        annotations = Annotations()
        memberships = backend_call(annotations, "failed to list memberships", self.client.list_memberships)

        target = _find_membership(memberships, group_id, user_id)
        if target is None:
            logger.info(f"User {user_id} is not in group {group_id}; nothing to revoke")
            return annotations

        try:
            backend_call(
                annotations,
                f"failed to revoke user {user_id} from group {group_id}",
                lambda: self.client.remove_user_from_group(target.membership_id),
            )
        except Exception:
            security_logger.log_entitlement_change('revoke', user_id, group_id, _kind(target), False)
            raise

        security_logger.log_entitlement_change('revoke', user_id, group_id, _kind(target), True)
        logger.info(f"Revoked membership {target.membership_id} (user {user_id}, group {group_id})")
        return annotations


def _find_membership(memberships, group_id: int, user_id: int) -> Optional[Membership]:
    for rows in memberships.values():
        for membership in rows:
            if membership.group_id == group_id and membership.user_id == user_id:
                return membership
    return None


def _kind(membership: Membership) -> str:
    return PermissionKind.from_membership(membership.is_group_manager).value
