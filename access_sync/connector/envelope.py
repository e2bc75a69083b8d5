"""
Rate-limit and pagination envelope.

Every directory call made by the connector goes through ``backend_call``.
The rule it enforces: a rate-limit signal is attached to the outgoing
annotations whether the call succeeded or failed, and a failed call never
yields a domain result.

Pagination uses opaque string cursors. An empty cursor on input means start
from the beginning; an empty cursor on output means there are no further
pages. The connector processes exactly one page per call.
"""

import logging
from typing import Any, Callable, Dict, List, NamedTuple, Optional

from access_sync.client.base import DirectoryAPIError
from access_sync.connector.annotations import Annotations
from access_sync.connector.errors import BackendError
from access_sync.models import APIResult

logger = logging.getLogger(__name__)

NO_MORE_PAGES = ''


class ListResult(NamedTuple):
    """One page of resources, entitlements or grants."""

    items: List[Any]
    next_page_token: str
    annotations: Annotations


class ActionResult(NamedTuple):
    """Outcome of an account action: a result bag plus annotations."""

    response: Dict[str, Any]
    annotations: Annotations

    @property
    def success(self) -> bool:
        return bool(self.response.get('success'))


def backend_call(annotations: Annotations, description: str, call: Callable[[], APIResult]) -> Any:
    """
    Run one directory call and fold its rate-limit signal into ``annotations``.

    Args:
        annotations: Collection that receives the rate-limit signal, if any
        description: Failed-operation context, e.g. "failed to list groups"
        call: Zero-argument callable performing the directory call

    Returns:
        The call's domain value

    Raises:
        BackendError: If the call failed. The error carries ``annotations``.
    """
    try:
        result = call()
    except DirectoryAPIError as e:
        annotations.with_rate_limiting(e.rate_limit)
        logger.error(f"{description}: {e}")
        raise BackendError(f"{description}: {e}", annotations) from e

    annotations.with_rate_limiting(result.rate_limit)
    return result.value


def page_token_or_start(page_token: Optional[str]) -> str:
    """Normalize an incoming cursor; None and empty both mean the first page."""
    return page_token or ''
