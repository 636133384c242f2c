"""
Permission keys and the tagged permission set.

Roles store permissions as an ordered list of strings. PermissionSet parses
that list once: the "*" entry becomes an explicit wildcard flag instead of a
magic string that every caller has to remember to check.
"""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

WILDCARD = "*"

# Catalog of keys enforced by the API (organization-grantable).
ORGANIZATIONS_WRITE = "organizations.write"
MEMBERS_WRITE = "members.write"
ROLES_WRITE = "roles.write"
EVENTS_WRITE = "events.write"
ANNOUNCEMENTS_WRITE = "announcements.write"
ELECTIONS_WRITE = "elections.write"
NOTIFICATIONS_WRITE = "notifications.write"
INCOME_WRITE = "income.write"
EXPENSE_WRITE = "expense.write"

CATALOG: tuple[tuple[str, str], ...] = (
    (ORGANIZATIONS_WRITE, "Organization: edit profile"),
    (MEMBERS_WRITE, "Members: create, edit, remove"),
    (ROLES_WRITE, "Roles: create, edit, remove"),
    (EVENTS_WRITE, "Events: create, edit, remove"),
    (ANNOUNCEMENTS_WRITE, "Announcements: publish"),
    (ELECTIONS_WRITE, "Elections: manage elections and candidates"),
    (NOTIFICATIONS_WRITE, "Notifications: send to members"),
    (INCOME_WRITE, "Income: record and approve"),
    (EXPENSE_WRITE, "Expense: record and approve"),
)

CATALOG_KEYS: tuple[str, ...] = tuple(k for k, _ in CATALOG)


@dataclass(frozen=True)
class PermissionSet:
    keys: frozenset[str]
    wildcard: bool = False

    @classmethod
    def parse(cls, raw: Iterable[str] | None) -> "PermissionSet":
        keys = set()
        wildcard = False
        for item in raw or ():
            key = str(item).strip()
            if not key:
                continue
            if key == WILDCARD:
                wildcard = True
            else:
                keys.add(key)
        return cls(keys=frozenset(keys), wildcard=wildcard)

    def allows(self, permission: str) -> bool:
        # Exact match only; "elections" does not imply "elections.write".
        return self.wildcard or permission in self.keys

    def to_list(self) -> list[str]:
        out = sorted(self.keys)
        if self.wildcard:
            out.insert(0, WILDCARD)
        return out


def normalize_permission_list(raw) -> list[str]:
    """
    Validate a client-supplied permission list and return it de-duplicated in
    the order given. Raises ValueError for non-list input or non-string items.
    """
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValueError("permissions must be a list of strings.")
    out: list[str] = []
    for item in raw:
        if not isinstance(item, str):
            raise ValueError("permissions must be a list of strings.")
        key = item.strip()
        if key and key not in out:
            out.append(key)
    return out
