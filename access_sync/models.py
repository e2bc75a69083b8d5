"""
Value snapshots returned by the directory service.

All objects in this module are immutable and carry no behaviour beyond
construction from the backend's JSON payloads. The connector never caches
them between calls.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Tuple, Union

logger = logging.getLogger(__name__)

# Reset values below this are treated as "seconds from now" rather than epoch seconds
_RESET_DELTA_THRESHOLD = 10 ** 9

RATE_LIMIT_OK = 'ok'
RATE_LIMIT_OVERLIMIT = 'overlimit'


@dataclass(frozen=True)
class User:
    """A directory user account."""

    id: Optional[int]
    email: str = ''
    first_name: str = ''
    last_name: str = ''
    is_active: bool = True

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> 'User':
        return cls(
            id=data.get('id'),
            email=data.get('email') or '',
            first_name=data.get('first_name') or '',
            last_name=data.get('last_name') or '',
            is_active=bool(data.get('is_active', True)),
        )


@dataclass(frozen=True)
class Group:
    """A directory group. ``member_count`` is denormalized and read-only."""

    id: Optional[int]
    name: str = ''
    member_count: int = 0

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> 'Group':
        return cls(
            id=data.get('id'),
            name=data.get('name') or '',
            member_count=int(data.get('member_count') or 0),
        )


@dataclass(frozen=True)
class Membership:
    """
    A single (group, user) membership row.

    ``membership_id`` is the only handle the backend accepts for deletion.
    It is ``None`` on membership create requests.
    """

    group_id: Optional[int]
    user_id: Optional[int]
    is_group_manager: bool = False
    membership_id: Optional[int] = None

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> 'Membership':
        return cls(
            group_id=data.get('group_id'),
            user_id=data.get('user_id'),
            is_group_manager=bool(data.get('is_group_manager', False)),
            membership_id=data.get('membership_id'),
        )

    def to_api(self) -> Dict[str, Any]:
        return {
            'group_id': self.group_id,
            'user_id': self.user_id,
            'is_group_manager': self.is_group_manager,
        }


@dataclass(frozen=True)
class VersionInfo:
    tag: str = ''

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> 'VersionInfo':
        version = data.get('version') or {}
        return cls(tag=version.get('tag') or '')


@dataclass(frozen=True)
class PageOptions:
    """Paging input. An empty ``page_token`` means start from the beginning."""

    page_size: int = 100
    page_token: str = ''


@dataclass(frozen=True)
class UserPage:
    """One page of users. An empty ``next_page_token`` means no further pages."""

    users: List[User] = field(default_factory=list)
    next_page_token: str = ''


@dataclass(frozen=True)
class CreateUserRequest:
    email: str
    first_name: str = ''
    last_name: str = ''
    password: Optional[str] = field(default=None, repr=False)

    def to_api(self) -> Dict[str, Any]:
        body = {
            'email': self.email,
            'first_name': self.first_name,
            'last_name': self.last_name,
        }
        if self.password:
            body['password'] = self.password
        return body


@dataclass(frozen=True)
class RateLimitDescription:
    """
    Backend quota metadata attached to a call outcome.

    A rate-limit signal is orthogonal to success or failure: it may accompany
    either, and callers must surface it in both cases.
    """

    limit: Optional[int] = None
    remaining: Optional[int] = None
    reset_at: Optional[datetime] = None
    status: str = RATE_LIMIT_OK

    @property
    def retry_after_seconds(self) -> Optional[float]:
        """Seconds until the window resets, or None when the reset time is unknown."""
        if self.reset_at is None:
            return None
        delta = (self.reset_at - datetime.now(timezone.utc)).total_seconds()
        return max(delta, 0.0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'limit': self.limit,
            'remaining': self.remaining,
            'reset_at': self.reset_at.isoformat() if self.reset_at else None,
            'status': self.status,
        }

    @classmethod
    def from_headers(cls, headers: Union[Mapping[str, str], Iterable[Tuple[str, str]], None],
                     status_code: Optional[int] = None,
                     now: Optional[datetime] = None) -> Optional['RateLimitDescription']:
        """
        Build a rate-limit signal from HTTP response headers.

        Args:
            headers: Response headers as a mapping or a list of (name, value) pairs
            status_code: HTTP status of the response; 429 marks the signal as over limit
            now: Reference time for relative reset values (defaults to current UTC time)

        Returns:
            RateLimitDescription, or None if the response carried no rate-limit headers
        """
        if not headers:
            return None

        items = headers.items() if isinstance(headers, Mapping) else headers
        normalized = {name.lower(): value for name, value in items}
        now = now or datetime.now(timezone.utc)

        limit = _parse_int(normalized.get('x-ratelimit-limit'))
        remaining = _parse_int(normalized.get('x-ratelimit-remaining'))
        reset_at = _parse_reset(normalized.get('x-ratelimit-reset'), now)

        retry_after = normalized.get('retry-after')
        if retry_after is not None:
            reset_at = _parse_retry_after(retry_after, now) or reset_at

        if limit is None and remaining is None and reset_at is None:
            return None

        status = RATE_LIMIT_OK
        if status_code == 429 or remaining == 0:
            status = RATE_LIMIT_OVERLIMIT

        return cls(limit=limit, remaining=remaining, reset_at=reset_at, status=status)


class APIResult(NamedTuple):
    """Successful outcome of a directory call plus its optional rate-limit signal."""

    value: Any
    rate_limit: Optional[RateLimitDescription] = None


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        logger.debug(f"Ignoring non-integer rate-limit header value: {value!r}")
        return None


def _parse_reset(value: Optional[str], now: datetime) -> Optional[datetime]:
    seconds = _parse_int(value)
    if seconds is None:
        return None
    if seconds >= _RESET_DELTA_THRESHOLD:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    return now + timedelta(seconds=seconds)


def _parse_retry_after(value: str, now: datetime) -> Optional[datetime]:
    seconds = _parse_int(value)
    if seconds is not None:
        return now + timedelta(seconds=seconds)
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        parsed = None
    if parsed is None:
        logger.debug(f"Ignoring unparseable Retry-After header: {value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
