#!/usr/bin/env python3
"""
Show or reset circuit breakers.

Run with:
    python scripts/circuit_status.py
    python scripts/circuit_status.py --reset ai-gateway
"""

import argparse

from propertyops.core.circuit_breaker import get_circuit_breaker_store


def main():
    parser = argparse.ArgumentParser(description="Circuit breaker status")
    parser.add_argument("--reset", metavar="SERVICE", help="Close the named circuit and zero its counters")
    args = parser.parse_args()

    store = get_circuit_breaker_store()

    if args.reset:
        status = store.reset(args.reset)
        print(f"{status.service_name}: {status.state.value}")
        return

    statuses = store.list_statuses()
    if not statuses:
        print("No circuit breaker records yet.")
        return

    print(f"{'SERVICE':<30} {'STATE':<10} {'FAIL':>5} {'OK':>5}  LAST FAILURE")
    for s in statuses:
        last_failure = s.last_failure_at.isoformat(timespec="seconds") if s.last_failure_at else "-"
        print(f"{s.service_name:<30} {s.state.value:<10} {s.failure_count:>5} {s.success_count:>5}  {last_failure}")


if __name__ == "__main__":
    main()
