"""Benchmark: Memory usage of rule compilation.

Uses tracemalloc to measure memory allocated while compiling many
permission configs, each with object permissions and record rules.
"""
from __future__ import annotations

import json
import sys
import tracemalloc
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from aumos_record_security.permissions.models import PermissionConfig
from aumos_record_security.permissions.permission_loader import compile_permission_config

_ITERATIONS: int = 500


def bench_compilation_memory_usage() -> dict[str, object]:
    """Benchmark memory usage during repeated rule compilation.

    Returns
    -------
    dict with keys: operation, iterations, peak_memory_kb, current_memory_kb,
    ops_per_second, avg_latency_ms, memory_peak_mb, rules_per_config.
    """
    tracemalloc.start()
    snapshot_before = tracemalloc.take_snapshot()

    config = PermissionConfig.model_validate(
        {
            "object": "invoices",
            "object_permissions": {"read": ["member", "admin"], "create": ["admin"]},
            "record_rules": [
                {
                    "name": "own",
                    "condition": {"field": "owner", "operator": "=", "value": "$current_user.id"},
                    "permissions": {"read": True, "update": True},
                    "priority": 10,
                },
                {
                    "name": "paid",
                    "condition": {"type": "formula", "formula": "status == 'paid' && amount < 1000"},
                    "permissions": {"read": True},
                },
            ],
        }
    )

    compiled = [compile_permission_config(config) for _ in range(_ITERATIONS)]

    snapshot_after = tracemalloc.take_snapshot()
    tracemalloc.stop()

    stats = snapshot_after.compare_to(snapshot_before, "lineno")
    total_bytes = sum(stat.size_diff for stat in stats if stat.size_diff > 0)
    peak_kb = round(total_bytes / 1024, 2)
    rules_per_config = len(compiled[0])
    del compiled

    result: dict[str, object] = {
        "operation": "compilation_memory_usage",
        "iterations": _ITERATIONS,
        "peak_memory_kb": peak_kb,
        "current_memory_kb": peak_kb,
        "ops_per_second": 0.0,
        "avg_latency_ms": 0.0,
        "memory_peak_mb": round(peak_kb / 1024, 4),
        "rules_per_config": rules_per_config,
    }
    print(
        f"[bench_memory_usage] {result['operation']}: "
        f"peak {peak_kb:.2f} KB over {_ITERATIONS} iterations"
    )
    return result


def run_benchmark() -> dict[str, object]:
    """Entry point returning the benchmark result dict."""
    return bench_compilation_memory_usage()


if __name__ == "__main__":
    result = run_benchmark()
    results_dir = Path(__file__).parent / "results"
    results_dir.mkdir(exist_ok=True)
    output_path = results_dir / "memory_baseline.json"
    with open(output_path, "w", encoding="utf-8") as fh:
        json.dump(result, fh, indent=2)
    print(f"Results saved to {output_path}")
