"""
Credential artifacts returned from account creation.

Generated secrets are handed back to the caller exactly once as plaintext
artifacts. Nothing in this package stores them.
"""

import secrets
import string
from dataclasses import dataclass, field

DEFAULT_PASSWORD_LENGTH = 20
MIN_PASSWORD_LENGTH = 8

# Punctuation subset that survives shells, URLs and JSON without escaping
PASSWORD_SYMBOLS = '!#%+-.=@^_~'


@dataclass(frozen=True)
class PlaintextData:
    """A secret to be delivered once to the account owner."""

    name: str
    description: str = ''
    value: bytes = field(default=b'', repr=False)


def generate_password(length: int = DEFAULT_PASSWORD_LENGTH) -> str:
    """
    Generate a random password with at least one lowercase letter, uppercase
    letter, digit and symbol.

    Args:
        length: Password length, at least MIN_PASSWORD_LENGTH

    Returns:
        The generated password

    Raises:
        ValueError: If length is below MIN_PASSWORD_LENGTH
    """
    if length < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password length must be at least {MIN_PASSWORD_LENGTH}")

    classes = [string.ascii_lowercase, string.ascii_uppercase, string.digits, PASSWORD_SYMBOLS]
    alphabet = ''.join(classes)

    chars = [secrets.choice(pool) for pool in classes]
    chars.extend(secrets.choice(alphabet) for _ in range(length - len(classes)))

    # Shuffle so the guaranteed characters are not always in front
    for i in range(len(chars) - 1, 0, -1):
        j = secrets.randbelow(i + 1)
        chars[i], chars[j] = chars[j], chars[i]

    return ''.join(chars)


def password_artifact(password: str) -> PlaintextData:
    return PlaintextData(
        name='password',
        description='Generated password for the new account',
        value=password.encode('utf-8'),
    )
