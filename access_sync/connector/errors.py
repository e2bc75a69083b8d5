"""
Connector error taxonomy.

Every connector error carries an ``annotations`` collection so a rate-limit
signal received on a failed backend call still reaches the caller.
"""

from typing import Optional

from access_sync.connector.annotations import Annotations


class ConnectorError(Exception):
    """Base exception for connector errors."""

    def __init__(self, message: str, annotations: Optional[Annotations] = None):
        super().__init__(message)
        self.annotations = annotations if annotations is not None else Annotations()


class ValidationError(ConnectorError):
    """Missing or malformed input, raised before any backend call."""
    pass


class UnsupportedEntitlementError(ValidationError):
    """Entitlement does not resolve to a known permission kind."""
    pass


class ResourceMappingError(ConnectorError):
    """A backend entity could not be converted into a resource."""
    pass


class BackendError(ConnectorError):
    """A directory call failed; the message names the failed operation."""
    pass
