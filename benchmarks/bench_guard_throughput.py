"""Benchmark: Permission guard throughput -- checks per second.

Measures how many PermissionGuard.check_permission() calls complete per
second with the cache disabled, so every call loads the config and runs
the object-level and record-rule steps.
"""
from __future__ import annotations

import asyncio
import json
import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from aumos_record_security.permissions.models import PermissionCheckResult, SecurityContext
from aumos_record_security.permissions.permission_guard import PermissionGuard
from aumos_record_security.permissions.permission_loader import PermissionLoader

_ITERATIONS: int = 5_000


def _make_loader() -> PermissionLoader:
    """Build a realistic tickets policy with three record rules."""
    return PermissionLoader(
        {
            "permissions": [
                {
                    "object": "tickets",
                    "object_permissions": {
                        "read": ["agent", "manager"],
                        "update": ["agent", "manager"],
                    },
                    "record_rules": [
                        {
                            "name": "own_tickets",
                            "condition": {
                                "field": "owner_id",
                                "operator": "=",
                                "value": "$current_user.id",
                            },
                            "permissions": {"read": True, "update": True},
                            "priority": 10,
                        },
                        {
                            "name": "open_team_tickets",
                            "condition": {
                                "type": "formula",
                                "formula": "status == 'open' && team == $current_user.team",
                            },
                            "permissions": {"read": True},
                            "priority": 5,
                        },
                        {
                            "name": "escalated",
                            "condition": {
                                "type": "complex",
                                "expression": [
                                    {"field": "priority", "operator": ">=", "value": 3},
                                    {"field": "status", "operator": "!=", "value": "closed"},
                                    "and",
                                ],
                            },
                            "permissions": {"read": True},
                        },
                    ],
                }
            ]
        }
    )


async def _run(
    guard: PermissionGuard, context: SecurityContext
) -> tuple[float, PermissionCheckResult]:
    start = time.perf_counter()
    for _ in range(_ITERATIONS):
        last = await guard.check_permission(context)
    return time.perf_counter() - start, last


def bench_guard_check_throughput() -> dict[str, object]:
    """Benchmark PermissionGuard.check_permission() throughput.

    Returns
    -------
    dict with keys: operation, iterations, total_seconds, ops_per_second,
    avg_latency_ms, p99_latency_ms, memory_peak_mb, granted, matched_rule.
    """
    guard = PermissionGuard(_make_loader(), cache_enabled=False)
    context = SecurityContext(
        object_name="tickets",
        operation="read",
        user={"id": "u1", "roles": ["agent"], "team": "blue"},
        record={"owner_id": "u2", "status": "open", "team": "blue", "priority": 1},
    )

    total, last = asyncio.run(_run(guard, context))

    result: dict[str, object] = {
        "operation": "guard_check_throughput",
        "iterations": _ITERATIONS,
        "total_seconds": round(total, 4),
        "ops_per_second": round(_ITERATIONS / total, 1),
        "avg_latency_ms": round(total / _ITERATIONS * 1000, 4),
        "p99_latency_ms": 0.0,
        "memory_peak_mb": 0.0,
        "granted": last.granted,
        "matched_rule": last.rule,
    }
    print(
        f"[bench_guard_throughput] {result['operation']}: "
        f"{result['ops_per_second']:,.0f} ops/sec  "
        f"avg {result['avg_latency_ms']:.4f} ms"
    )
    return result


def run_benchmark() -> dict[str, object]:
    """Entry point returning the benchmark result dict."""
    return bench_guard_check_throughput()


if __name__ == "__main__":
    result = run_benchmark()
    results_dir = Path(__file__).parent / "results"
    results_dir.mkdir(exist_ok=True)
    output_path = results_dir / "guard_throughput_baseline.json"
    with open(output_path, "w", encoding="utf-8") as fh:
        json.dump(result, fh, indent=2)
    print(f"Results saved to {output_path}")
