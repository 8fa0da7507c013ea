"""
User accounts: domain types, password utilities and repository.
"""

from .models import Account, AccountAlreadyExistsError, NewAccount, UserRole
from .passwords import (
    PasswordValidation,
    hash_password,
    validate_password,
    verify_password,
)
from .repository import AccountRepository

__all__ = [
    'Account',
    'AccountAlreadyExistsError',
    'AccountRepository',
    'NewAccount',
    'PasswordValidation',
    'UserRole',
    'hash_password',
    'validate_password',
    'verify_password',
]
