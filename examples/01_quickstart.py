#!/usr/bin/env python3
"""Example: Quickstart for aumos-record-security

Minimal working example: declare a policy, check permissions and mask
a result set.

Usage:
    python examples/01_quickstart.py

Requirements:
    pip install aumos-record-security
"""
from __future__ import annotations

import asyncio

import aumos_record_security as sec

PERMISSIONS = [
    {
        "object": "customers",
        "object_permissions": {"read": ["agent", "admin"], "delete": ["admin"]},
        "field_permissions": {"internal_notes": {"read": ["admin"]}},
        "field_masking": {
            "card_number": {"mask_format": "****-****-****-{last4}", "visible_to": ["admin"]},
            "email": {"mask_format": "***@***.***"},
        },
    }
]


async def main() -> None:
    print(f"aumos-record-security version: {sec.__version__}")

    # Step 1: Build the engine from a policy list
    security = sec.RecordSecurity(PERMISSIONS)
    agent = {"id": "u1", "roles": ["agent"]}

    # Step 2: Check object-level permissions
    for operation in ("read", "delete"):
        result = await security.check("customers", operation, agent)
        status = "GRANTED" if result.granted else "DENIED"
        print(f"  [{status}] {operation}: {result.reason}")

    # Step 3: Mask a result set for the agent
    rows = [
        {
            "id": "c1",
            "name": "Alice",
            "email": "alice@example.com",
            "card_number": "4111111111111234",
            "internal_notes": "VIP",
        }
    ]
    for row in await security.mask("customers", rows, agent):
        print(f"  {row}")


if __name__ == "__main__":
    asyncio.run(main())
