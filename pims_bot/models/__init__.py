from .profile import (
    Category,
    Gender,
    Profile,
    GrantRedemption,
)

__all__ = [
    "Category",
    "Gender",
    "Profile",
    "GrantRedemption",
]
