"""Entitlement reconciliation engine: resources, entitlements, grants and access mutations."""

from access_sync.connector.annotations import Annotations
from access_sync.connector.connector import Connector
from access_sync.connector.errors import (
    BackendError,
    ConnectorError,
    ResourceMappingError,
    UnsupportedEntitlementError,
    ValidationError,
)

__all__ = [
    'Annotations',
    'BackendError',
    'Connector',
    'ConnectorError',
    'ResourceMappingError',
    'UnsupportedEntitlementError',
    'ValidationError',
]
