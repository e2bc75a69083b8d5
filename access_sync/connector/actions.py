"""
Account actions: enable and disable users, and the typed requests that
replace loosely-typed argument bags.

Argument bags are validated into request objects before any backend call.
Missing required keys and unknown keys are both rejected.
"""

import logging
from typing import Any, Dict, Mapping, Optional

from access_sync.client.base import DirectoryClient
from access_sync.connector.annotations import Annotations
from access_sync.connector.envelope import ActionResult, backend_call
from access_sync.connector.errors import ValidationError
from access_sync.logging_setup import security_logger

logger = logging.getLogger(__name__)

ENABLE_USER = 'enable_user'
DISABLE_USER = 'disable_user'

USER_ID_ARG = 'userId'

ACTION_SCHEMAS = {
    ENABLE_USER: {
        'display_name': 'Enable User',
        'description': 'Reactivate a deactivated user account',
        'arguments': {USER_ID_ARG: {'type': 'string', 'required': True, 'display_name': 'User ID'}},
    },
    DISABLE_USER: {
        'display_name': 'Disable User',
        'description': 'Deactivate a user account',
        'arguments': {USER_ID_ARG: {'type': 'string', 'required': True, 'display_name': 'User ID'}},
    },
}

ACCOUNT_PROFILE_FIELDS = {
    'email': {'type': 'string', 'required': True, 'display_name': 'Email'},
    'first_name': {'type': 'string', 'required': False, 'display_name': 'First name'},
    'last_name': {'type': 'string', 'required': False, 'display_name': 'Last name'},
}


def _reject_unknown(values: Mapping[str, Any], allowed, label: str):
    for key in values:
        if key not in allowed:
            raise ValidationError(f"unsupported {label} {key!r}")


class UserStatusRequest:
    """Validated input for enable_user / disable_user."""

    def __init__(self, user_id: str, active: bool):
        self.user_id = user_id
        self.active = active

    @classmethod
    def from_args(cls, args: Optional[Mapping[str, Any]], active: bool) -> 'UserStatusRequest':
        """
        Raises:
            ValidationError: If ``userId`` is missing or empty, or an unknown key is present
        """
        args = args or {}
        _reject_unknown(args, (USER_ID_ARG,), 'argument')

        user_id = args.get(USER_ID_ARG)
        if user_id is None or user_id == '':
            raise ValidationError(f"missing required argument {USER_ID_ARG}")
        if isinstance(user_id, bool) or not isinstance(user_id, (str, int)):
            raise ValidationError(f"invalid argument {USER_ID_ARG}: {user_id!r}")

        return cls(str(user_id), active)


class CreateAccountRequest:
    """Validated account profile for create_account."""

    def __init__(self, email: str, first_name: str = '', last_name: str = ''):
        self.email = email
        self.first_name = first_name
        self.last_name = last_name

    @classmethod
    def from_profile(cls, profile: Optional[Mapping[str, Any]]) -> 'CreateAccountRequest':
        """
        Raises:
            ValidationError: If ``email`` is missing, a field is not a string,
                or an unknown field is present
        """
        profile = profile or {}
        _reject_unknown(profile, ACCOUNT_PROFILE_FIELDS, 'profile field')

        values = {}
        for name, rules in ACCOUNT_PROFILE_FIELDS.items():
            value = profile.get(name)
            if value is None:
                value = ''
            if not isinstance(value, str):
                raise ValidationError(f"invalid field {name}: expected a string")
            value = value.strip()
            if not value and rules['required']:
                raise ValidationError(f"missing required field: {name}")
            values[name] = value

        return cls(**values)


class UserActions:
    """Enables and disables user accounts."""

    def __init__(self, client: DirectoryClient):
        self.client = client

    def enable_user(self, args: Optional[Mapping[str, Any]]) -> ActionResult:
        return self._set_active(UserStatusRequest.from_args(args, True))

    def disable_user(self, args: Optional[Mapping[str, Any]]) -> ActionResult:
        return self._set_active(UserStatusRequest.from_args(args, False))

    def _set_active(self, request: UserStatusRequest) -> ActionResult:
        operation = 'enable' if request.active else 'disable'
        annotations = Annotations()

        try:
            user = backend_call(
                annotations,
                f"failed to update user {request.user_id} active status",
                lambda: self.client.update_user_active_status(request.user_id, request.active),
            )
        except Exception:
            security_logger.log_account_change(operation, request.user_id, False)
            raise

        security_logger.log_account_change(operation, request.user_id, True)
        logger.info(f"User {request.user_id} {operation}d")

        response = {'success': True}  # type: Dict[str, Any]
        if user is not None:
            response['is_active'] = user.is_active
        return ActionResult(response, annotations)
