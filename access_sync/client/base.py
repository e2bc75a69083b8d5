"""
Directory client contract.

This module defines the abstract base class every directory backend must
implement, along with the errors those backends raise. The connector depends
only on this contract, never on a concrete backend.

Every operation that talks to the backend returns an ``APIResult`` on success.
On failure it raises ``DirectoryAPIError``, which carries whatever rate-limit
signal accompanied the failed response.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from access_sync.models import (
    APIResult,
    CreateUserRequest,
    Membership,
    PageOptions,
    RateLimitDescription,
)

logger = logging.getLogger(__name__)


class DirectoryAPIError(Exception):
    """Base exception for directory backend errors."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 rate_limit: Optional[RateLimitDescription] = None):
        super().__init__(message)
        self.status_code = status_code
        self.rate_limit = rate_limit


class DirectoryAuthenticationError(DirectoryAPIError):
    """Raised when authentication to the directory backend fails."""
    pass


class DirectoryClient(ABC):
    """
    Abstract directory backend.

    Implementations perform at most one logical backend operation per call and
    hold no state the connector relies on between calls.
    """

    @abstractmethod
    def list_users(self, options: PageOptions) -> APIResult:
        """
        List one page of users.

        Args:
            options: Page size and opaque cursor (empty cursor starts from the beginning)

        Returns:
            APIResult whose value is a ``UserPage``
        """

    @abstractmethod
    def list_groups(self) -> APIResult:
        """Return an APIResult whose value is a list of ``Group``."""

    @abstractmethod
    def list_memberships(self) -> APIResult:
        """Return an APIResult whose value maps a key to a list of ``Membership`` rows."""

    @abstractmethod
    def add_user_to_group(self, membership: Membership) -> APIResult:
        """Create a membership. The APIResult value is None."""

    @abstractmethod
    def remove_user_from_group(self, membership_id: int) -> APIResult:
        """Delete a membership by its membership id. The APIResult value is None."""

    @abstractmethod
    def update_user_active_status(self, user_id: str, active: bool) -> APIResult:
        """Set the user's active flag. The APIResult value is the updated ``User``."""

    @abstractmethod
    def create_user(self, request: CreateUserRequest) -> APIResult:
        """Create a user account. The APIResult value is the new ``User``."""

    @abstractmethod
    def is_paid_plan(self) -> bool:
        """
        Whether the backend's current plan offers group managers.

        May ask the backend when the answer is not yet known.

        Raises:
            DirectoryAPIError: If that lookup fails
        """

    @abstractmethod
    def get_version(self) -> APIResult:
        """Return an APIResult whose value is a ``VersionInfo``."""

    def close(self):
        """Release any transport resources. Default implementation does nothing."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
