"""
db/rls.py
---------
Application-level access checks on top of the data-access layer.

The 0004 migration enables row-level security with permissive
placeholder policies; the real gate is require_association_member().
"""

from __future__ import annotations

from db.data_access import get_data_access
from db.errors import ForbiddenError
from db.repositories.base import DataAccessLayer

ROLE_ORDER: tuple[str, ...] = (
    "guest",
    "member",
    "manager",
    "admin",
    "system_admin",
    "super_admin",
)


def require_association_member(
    user_id: str,
    association_id: str,
    dal: DataAccessLayer | None = None,
) -> str:
    """
    Return the caller's role in the association.

    Raises ForbiddenError when the profile holds no membership there.
    """
    member = (dal or get_data_access()).get_association_member(association_id, user_id)
    if member is None:
        raise ForbiddenError(
            f"Profile {user_id} is not a member of association {association_id}"
        )
    return member.role


def has_role_or_above(role: str, required: str) -> bool:
    """
    True when ``role`` ranks at or above ``required`` in ROLE_ORDER.

    An unrecognised ``role`` ranks below every known role; an unrecognised
    ``required`` raises ValueError.
    """
    if required not in ROLE_ORDER:
        raise ValueError(f"Unknown role: {required!r}")
    if role not in ROLE_ORDER:
        return False
    return ROLE_ORDER.index(role) >= ROLE_ORDER.index(required)
