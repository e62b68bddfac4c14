"""Services for accounts business logic."""

from .exceptions import (
    AccountsServiceError,
    StaffCreationError,
    InvalidCredentialsError,
    InactiveAccountError,
)
from .staff_management import create_staff_user
from .user_authentication import authenticate_user

__all__ = [
    # Exceptions
    'AccountsServiceError',
    'StaffCreationError',
    'InvalidCredentialsError',
    'InactiveAccountError',
    # Services
    'create_staff_user',
    'authenticate_user',
]
