"""
Side-channel metadata attached to connector results and errors.
"""

from typing import Optional

from access_sync.models import RateLimitDescription


class Annotations(list):
    """
    Ordered collection of annotation objects.

    At most one rate-limit annotation is kept; a newer signal replaces the
    older one so the caller always sees the latest window.
    """

    def with_rate_limiting(self, rate_limit: Optional[RateLimitDescription]) -> 'Annotations':
        if rate_limit is None:
            return self
        self[:] = [item for item in self if not isinstance(item, RateLimitDescription)]
        self.append(rate_limit)
        return self

    @property
    def rate_limit(self) -> Optional[RateLimitDescription]:
        for item in self:
            if isinstance(item, RateLimitDescription):
                return item
        return None

    def contains_rate_limit(self) -> bool:
        return self.rate_limit is not None
