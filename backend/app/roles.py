# Overview: Closed role enumeration and the role sets that gate operations.

"""
Membership roles.

Roles are a closed set. Parsing goes through Role.parse so that an unknown
string (a typo, a casing slip) is rejected instead of silently failing every
role check downstream.
"""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    OWNER = "owner"
    MANAGER = "manager"
    CASHIER = "cashier"

    @classmethod
    def parse(cls, value) -> "Role":
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError("role must be a string")
        try:
            return cls(value.strip().lower())
        except ValueError:
            allowed = ", ".join(r.value for r in cls)
            raise ValueError(f"Unknown role {value!r}; expected one of: {allowed}")


ALL_ROLES = frozenset(Role)

# User management: list/create/update members, reset passwords
USER_ADMIN_ROLES = frozenset({Role.OWNER, Role.MANAGER})

# Catalog writes and transaction deletes
CATALOG_WRITE_ROLES = frozenset({Role.OWNER, Role.MANAGER})
TRANSACTION_DELETE_ROLES = frozenset({Role.OWNER, Role.MANAGER})

# Selling a line at a price other than the catalog price
PRICE_OVERRIDE_ROLES = frozenset({Role.OWNER, Role.MANAGER})
