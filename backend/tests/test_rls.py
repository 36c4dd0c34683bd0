"""Tests for the membership check and role ordering."""

import pytest

from db.errors import ForbiddenError
from db.rls import ROLE_ORDER, has_role_or_above, require_association_member


def test_member_role_is_returned(redis_dal, fake_redis):
    assoc = redis_dal.create_association({"name": "Club"})
    redis_dal.create_association_member(
        {"association_id": assoc.id, "profile_id": "user_1_abc", "role": "manager"}
    )
    fake_redis.commands.clear()

    assert require_association_member("user_1_abc", assoc.id, dal=redis_dal) == "manager"
    # one index lookup plus one record fetch, no scan
    assert "KEYS" not in fake_redis.commands


def test_non_member_is_forbidden(redis_dal):
    assoc = redis_dal.create_association({"name": "Club"})
    with pytest.raises(ForbiddenError):
        require_association_member("user_1_abc", assoc.id, dal=redis_dal)


def test_unknown_association_is_forbidden(postgres_dal, fake_pool):
    with pytest.raises(ForbiddenError):
        require_association_member("not-a-uuid", "also-not", dal=postgres_dal)


@pytest.mark.parametrize(
    ("role", "required", "expected"),
    [
        ("admin", "manager", True),
        ("manager", "manager", True),
        ("member", "manager", False),
        ("super_admin", "guest", True),
        ("guest", "member", False),
    ],
)
def test_role_ordering(role, required, expected):
    assert has_role_or_above(role, required) is expected


def test_unknown_role_ranks_lowest():
    assert has_role_or_above("pirate", "guest") is False


def test_unknown_required_role_raises():
    with pytest.raises(ValueError):
        has_role_or_above("admin", "pirate")


def test_role_order_is_ascending():
    assert ROLE_ORDER[0] == "guest"
    assert ROLE_ORDER[-1] == "super_admin"
