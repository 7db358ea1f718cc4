"""
Password hashing and input policies.

bcrypt.checkpw() runs against a pre-computed dummy hash when the account
does not exist, so unknown usernames cost the same time as wrong passwords.
"""

import re

import bcrypt

from .exceptions import ValidationError

USERNAME_REGEX = re.compile(r"^\d{10}$")
# bcrypt rejects input longer than this many bytes
BCRYPT_MAX_BYTES = 72
# Upper, lower, digit and symbol; printable ASCII; 6 to 72 characters
PASSWORD_REGEX = re.compile(r"^(?=.*[A-Z])(?=.*[a-z])(?=.*\d)(?=.*[\W_])[!-~]{6,72}$")
# Letters in any script, single spaces between words
FULLNAME_REGEX = re.compile(r"^[^\W\d_]+(?: [^\W\d_]+)*$")

# Hash of "dummy_password_for_timing_safety" with cost factor 10
_DUMMY_BCRYPT_HASH = bcrypt.hashpw(b"dummy_password_for_timing_safety", bcrypt.gensalt(10)).decode()


def hash_password(password: str, cost: int = 10) -> str:
    """
    Raises:
        ValidationError: password longer than bcrypt accepts
    """
    encoded = password.encode()
    if len(encoded) > BCRYPT_MAX_BYTES:
        raise ValidationError("PASS_NOT_MATCHED_POLICY")
    return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=cost)).decode()


def check_password(password: str, password_hash: str | None) -> bool:
    """
    Constant-time comparison; a missing hash still runs bcrypt and returns False.

    Input longer than bcrypt accepts never matches, but still pays for one
    bcrypt round against the dummy hash.
    """
    encoded = password.encode()
    if password_hash is None or len(encoded) > BCRYPT_MAX_BYTES:
        bcrypt.checkpw(encoded[:BCRYPT_MAX_BYTES], _DUMMY_BCRYPT_HASH.encode())
        return False
    return bcrypt.checkpw(encoded, password_hash.encode())


def require(**fields: object) -> None:
    """
    Raise ValidationError naming every missing field.

    Raises:
        ValidationError: one or more fields are None or empty
    """
    missing = [name for name, value in fields.items() if value is None or value == ""]
    if missing:
        raise ValidationError(detail=f"missing required field(s): {', '.join(missing)}")


def check_username(username: str) -> None:
    if not USERNAME_REGEX.match(username):
        raise ValidationError("USER_NOT_MATCHED_POLICY")


def check_password_policy(password: str) -> None:
    if not PASSWORD_REGEX.match(password):
        raise ValidationError("PASS_NOT_MATCHED_POLICY")


def check_name(name: str | None) -> None:
    if name is not None and not FULLNAME_REGEX.match(name):
        raise ValidationError("NAME_NOT_MATCHED_POLICY")
