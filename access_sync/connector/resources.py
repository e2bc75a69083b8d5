"""
Normalized resource graph types and the mapping from directory entities.

Users and groups become ``Resource`` objects with stable, id-derived
identifiers. Group memberships become ``Entitlement`` and ``Grant`` edges
whose identifiers follow ``<resource-type>:<resource-id>:<permission>``.
"""

import re
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from access_sync.connector.errors import ResourceMappingError, UnsupportedEntitlementError, ValidationError
from access_sync.models import Group, User

logger = logging.getLogger(__name__)

_NUMERIC_ID = re.compile(r'[0-9]+')

STATUS_ENABLED = 'enabled'
STATUS_DISABLED = 'disabled'


@dataclass(frozen=True)
class ResourceType:
    id: str
    display_name: str
    traits: Tuple[str, ...] = ()
    description: str = ''


USER_RESOURCE_TYPE = ResourceType('user', 'User', ('user',), 'Directory user account')
GROUP_RESOURCE_TYPE = ResourceType('group', 'Group', ('group',), 'Directory permission group')


class PermissionKind(Enum):
    """Level of group access an entitlement grants."""

    MEMBER = 'member'
    MANAGER = 'manager'

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    @classmethod
    def from_membership(cls, is_group_manager: bool) -> 'PermissionKind':
        return cls.MANAGER if is_group_manager else cls.MEMBER


@dataclass(frozen=True)
class ResourceId:
    resource_type: str
    resource: str

    def __str__(self) -> str:
        return f"{self.resource_type}:{self.resource}"


@dataclass(frozen=True)
class Resource:
    id: ResourceId
    display_name: str
    profile: Dict[str, Any] = field(default_factory=dict, hash=False, compare=False)
    status: Optional[str] = None
    emails: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Entitlement:
    """
    A grantable permission on a resource.

    ``permission`` is the structured kind. It may be None for entitlements
    received from a caller that only carries the string id; in that case the
    kind is recovered from the id suffix.
    """

    id: str
    resource_id: ResourceId
    permission: Optional[PermissionKind] = None
    display_name: str = ''
    description: str = ''
    grantable_to: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Grant:
    id: str
    entitlement: Entitlement
    principal_id: ResourceId


def format_resource_id(value: Union[int, str, None], kind: str) -> str:
    """
    Format a backend id for use in a ResourceId.

    Raises:
        ResourceMappingError: If the id is missing or of an unsupported type
    """
    if value is None or value == '':
        raise ResourceMappingError(f"{kind} is missing an id")
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ResourceMappingError(f"unsupported {kind} id {value!r}")
    return str(value)


def user_resource(user: User) -> Resource:
    """Map a directory user to a user resource."""
    resource_id = ResourceId(USER_RESOURCE_TYPE.id, format_resource_id(user.id, 'user'))

    display_name = f"{user.first_name} {user.last_name}".strip() or user.email

    profile = {
        'user_id': resource_id.resource,
        'email': user.email,
        'first_name': user.first_name,
        'last_name': user.last_name,
        'is_active': user.is_active,
    }

    return Resource(
        id=resource_id,
        display_name=display_name,
        profile=profile,
        status=STATUS_ENABLED if user.is_active else STATUS_DISABLED,
        emails=(user.email,) if user.email else (),
    )


def group_resource(group: Group) -> Resource:
    """Map a directory group to a group resource."""
    resource_id = ResourceId(GROUP_RESOURCE_TYPE.id, format_resource_id(group.id, 'group'))
    return Resource(
        id=resource_id,
        display_name=group.name,
        profile={'name': group.name, 'member_count': group.member_count},
    )


def entitlement_id(resource_id: ResourceId, permission: PermissionKind) -> str:
    return f"{resource_id.resource_type}:{resource_id.resource}:{permission.value}"


def assignment_entitlement(resource: Resource, permission: PermissionKind) -> Entitlement:
    """Build the entitlement for holding ``permission`` on a group resource."""
    kind = permission.display_name
    return Entitlement(
        id=entitlement_id(resource.id, permission),
        resource_id=resource.id,
        permission=permission,
        display_name=f"{resource.display_name} {kind}",
        description=f"Is a {kind} of {resource.display_name} group",
        grantable_to=(USER_RESOURCE_TYPE.id,),
    )


def new_grant(resource_id: ResourceId, permission: PermissionKind, principal_id: ResourceId) -> Grant:
    """Build a grant edge from a principal to ``permission`` on ``resource_id``."""
    entitlement = Entitlement(
        id=entitlement_id(resource_id, permission),
        resource_id=resource_id,
        permission=permission,
        grantable_to=(principal_id.resource_type,),
    )
    return Grant(
        id=f"{entitlement.id}:{principal_id.resource_type}:{principal_id.resource}",
        entitlement=entitlement,
        principal_id=principal_id,
    )


def parse_numeric_id(value: Union[int, str, None], kind: str) -> int:
    """
    Parse a resource id into the numeric id the backend requires.

    Only plain ASCII digit strings are accepted; signs, whitespace and
    underscores are rejected rather than coerced.

    Raises:
        ValidationError: If the id is not a plain non-negative integer
    """
    if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
        return value
    if isinstance(value, str) and _NUMERIC_ID.fullmatch(value):
        return int(value)
    raise ValidationError(f"invalid {kind} id {value!r}")


def permission_for(entitlement: Entitlement) -> PermissionKind:
    """
    Resolve the permission kind of an entitlement.

    The structured ``permission`` field wins. Entitlements without one are
    matched on their id: either the bare kind or a ``:<kind>`` suffix.

    Raises:
        UnsupportedEntitlementError: If the id matches neither kind
    """
    if entitlement.permission is not None:
        return entitlement.permission

    for kind in (PermissionKind.MANAGER, PermissionKind.MEMBER):
        if entitlement.id == kind.value or entitlement.id.endswith(f":{kind.value}"):
            return kind

    raise UnsupportedEntitlementError(f"unsupported entitlement id {entitlement.id!r}")


def resource_types() -> List[ResourceType]:
    return [USER_RESOURCE_TYPE, GROUP_RESOURCE_TYPE]
