"""
Password hashing and strength rules.
"""

import re
from dataclasses import dataclass, field

from passlib.context import CryptContext


pwd_context = CryptContext(
    schemes=["pbkdf2_sha256"],
    deprecated="auto",
)

MIN_PASSWORD_LENGTH = 8


@dataclass
class PasswordValidation:
    valid: bool
    errors: list[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.valid


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """False for a wrong password or an unrecognised hash."""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        return False


def validate_password(password: str) -> PasswordValidation:
    """
    Check password strength, reporting every rule that fails.

    Rules: at least MIN_PASSWORD_LENGTH characters, one lowercase letter,
    one uppercase letter, one digit.
    """
    errors = []
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if not re.search(r'[a-z]', password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r'[A-Z]', password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r'\d', password):
        errors.append("Password must contain at least one number")
    return PasswordValidation(valid=not errors, errors=errors)
