"""Staff account provisioning service."""

from django.db import transaction, IntegrityError
from django.contrib.auth import get_user_model

from ..models import StaffRole
from .exceptions import StaffCreationError

User = get_user_model()


@transaction.atomic
def create_staff_user(
    *,
    email: str,
    password: str,
    display_name: str = "",
    role: str = StaffRole.CASHIER
) -> User:
    """
    Create a till operator account.

    Args:
        email: Login email
        password: Raw password (will be hashed)
        display_name: Name printed as cashier on sales
        role: One of StaffRole

    Returns:
        Created User instance

    Raises:
        StaffCreationError: If the role is unknown or the email is taken
    """
    if role not in StaffRole.values:
        raise StaffCreationError(f"Unknown role '{role}'")

    try:
        return User.objects.create_user(
            email=email,
            password=password,
            display_name=display_name,
            role=role,
            is_staff=role in (StaffRole.ADMIN, StaffRole.MANAGER),
        )
    except IntegrityError:
        raise StaffCreationError(f"User with email {email} already exists")
