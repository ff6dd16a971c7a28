#!/usr/bin/env python3
"""Example: Row-level security and record rules.

Shows the filters injected into a query for different users, including
the match-nothing filter for anonymous callers and a formula rule
compiled into a filter tree.

Usage:
    python examples/02_row_level_security.py
"""
from __future__ import annotations

import asyncio
import json

from aumos_record_security import RecordSecurity

PERMISSIONS = [
    {
        "object": "tickets",
        "object_permissions": {"read": ["agent", "manager", "admin"]},
        "record_rules": [
            {
                "name": "assigned",
                "condition": {"field": "assignee", "operator": "=", "value": "$current_user.id"},
                "permissions": {"read": True, "update": True},
                "priority": 10,
            },
            {
                "name": "public_open",
                "condition": {"type": "formula", "formula": "public == true && status != 'closed'"},
                "permissions": {"read": True},
            },
        ],
        "row_level_security": {
            "enabled": True,
            "default_rule": {"field": "team", "operator": "=", "value": "$current_user.team"},
            "exceptions": [
                {"role": "admin", "bypass": True},
                {"role": "manager", "condition": {"field": "region", "operator": "in",
                                                   "value": ["emea", "apac"]}},
            ],
        },
    }
]

USERS = {
    "agent": {"id": "u1", "roles": ["agent"], "team": "blue"},
    "manager": {"id": "u2", "roles": ["manager"], "team": "red"},
    "admin": {"id": "u3", "roles": ["admin"]},
    "anonymous": None,
}


async def main() -> None:
    security = RecordSecurity(PERMISSIONS)
    for label, user in USERS.items():
        query = await security.filter("tickets", user, {"filters": {"priority": "high"}})
        print(f"--- {label}")
        print(json.dumps(query, indent=2))


if __name__ == "__main__":
    asyncio.run(main())
