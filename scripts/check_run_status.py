#!/usr/bin/env python3
"""Print a short status summary of the current batch run. Run from project root."""
import json
import os
import sys
from collections import Counter
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def data_dir() -> Path:
    if len(sys.argv) > 1:
        return Path(sys.argv[1])
    env = (os.environ.get("PRICECYCLE_HOME") or "").strip()
    return Path(env) if env else PROJECT_ROOT / ".local"


def main() -> int:
    root = data_dir()
    print(f"--- Run status ({root}) ---\n")

    state_path = root / "runstate.json"
    if not state_path.exists():
        print("No runstate.json yet")
        return 0
    try:
        data = json.loads(state_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        print(f"Could not read runstate.json: {e}")
        return 1

    items = data.get("items") or []
    counts = Counter(i.get("status", "not-run") for i in items)
    print(f"Session: {data.get('sessionId', '?')} started {data.get('startedAt', '?')}")
    print(f"  completed: {data.get('isCompleted', False)}, current index: {data.get('currentIndex', 0)}")
    print("  " + ", ".join(f"{k}: {v}" for k, v in sorted(counts.items())))
    for item in items:
        if item.get("status") == "failed":
            print(f"  FAILED {item.get('itemId')}: {item.get('message')}")
    print()

    # Latest summary
    logs = root / "logs"
    summaries = sorted(logs.glob("*_summary.json"), key=lambda p: p.name, reverse=True)
    if summaries:
        latest = summaries[0]
        try:
            summary = json.loads(latest.read_text(encoding="utf-8"))
            print(f"Latest summary: {latest.name}")
            print(
                f"  total {summary.get('total')}, success {summary.get('success')}, failed {summary.get('failed')}, "
                f"skipped {summary.get('skipped')}, canceled {summary.get('canceled')}"
            )
        except (OSError, ValueError):
            print(f"Latest summary: {latest.name} (could not read)")
    else:
        print("No summaries yet")

    # Log tail
    log_path = logs / "debug.log"
    if log_path.exists():
        lines = log_path.read_text(encoding="utf-8").strip().splitlines()
        print("\nLast 15 log lines:")
        for line in lines[-15:]:
            print(line)

    return 0


if __name__ == "__main__":
    sys.exit(main())
