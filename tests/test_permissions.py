import pytest

from app.orghub.errors import BadRequest, Forbidden
from app.orghub.modules.roles.service import checked_permissions
from app.orghub.permissions import (
    CATALOG_KEYS,
    ELECTIONS_WRITE,
    MEMBERS_WRITE,
    WILDCARD,
    PermissionSet,
    normalize_permission_list,
)


def test_wildcard_allows_everything():
    perms = PermissionSet.parse([WILDCARD])
    assert perms.wildcard is True
    for key in CATALOG_KEYS:
        assert perms.allows(key)
    assert perms.allows("anything.at.all")


def test_exact_match_only():
    perms = PermissionSet.parse(["elections", MEMBERS_WRITE])
    assert perms.wildcard is False
    assert perms.allows(MEMBERS_WRITE)
    assert not perms.allows(ELECTIONS_WRITE)
    assert not perms.allows("members")


def test_empty_and_missing_grant_nothing():
    assert not PermissionSet.parse(None).allows(MEMBERS_WRITE)
    assert not PermissionSet.parse([]).allows(MEMBERS_WRITE)
    assert not PermissionSet.parse(["", "  "]).allows("")


def test_to_list_puts_wildcard_first():
    perms = PermissionSet.parse(["roles.write", WILDCARD, "members.write", "roles.write"])
    assert perms.to_list() == [WILDCARD, "members.write", "roles.write"]


def test_normalize_keeps_order_and_dedupes():
    assert normalize_permission_list([" roles.write", "members.write", "roles.write", ""]) == [
        "roles.write",
        "members.write",
    ]
    assert normalize_permission_list(None) == []


@pytest.mark.parametrize("raw", ["members.write", {"a": 1}, ["members.write", 3]])
def test_normalize_rejects_non_string_lists(raw):
    with pytest.raises(ValueError):
        normalize_permission_list(raw)


def test_checked_permissions_rules():
    assert checked_permissions([MEMBERS_WRITE], allow_wildcard=False) == [MEMBERS_WRITE]
    with pytest.raises(BadRequest):
        checked_permissions(["members.delete_everything"], allow_wildcard=False)
    with pytest.raises(Forbidden):
        checked_permissions([WILDCARD], allow_wildcard=False)
    assert checked_permissions([WILDCARD, MEMBERS_WRITE], allow_wildcard=True) == [WILDCARD, MEMBERS_WRITE]
    with pytest.raises(BadRequest):
        checked_permissions("members.write", allow_wildcard=True)
