"""
Log Viewer Utilities for Synax Offline Sync.

Query and summarize the structured sync logs.
Used by the `synax logs` CLI command.
"""

import json
import re
from collections.abc import Iterator
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from .config import get_config


def parse_since(since: str) -> datetime:
    """
    Parse a 'since' time string into a datetime.

    Supports:
        - ISO format: "2026-01-11T10:00:00"
        - Relative: "1h", "30m", "2d", "1w"

    Raises:
        ValueError: If the string matches neither form
    """
    try:
        return datetime.fromisoformat(since)
    except ValueError:
        pass

    match = re.match(r"^(\d+)([mhdw])$", since.lower())
    if match:
        value = int(match.group(1))
        delta_map = {
            "m": timedelta(minutes=value),
            "h": timedelta(hours=value),
            "d": timedelta(days=value),
            "w": timedelta(weeks=value),
        }
        return datetime.now() - delta_map[match.group(2)]

    raise ValueError(f"Invalid time format: {since}. Use ISO format or relative (1h, 30m, 2d)")


def read_jsonl(filepath: Path, since: datetime | None = None) -> Iterator[dict[str, Any]]:
    """
    Read entries from a JSONL file, skipping malformed lines.

    Args:
        filepath: Path to JSONL file
        since: Only return entries at or after this time
    """
    if not filepath.exists():
        return

    with open(filepath, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                continue

            if since:
                try:
                    if datetime.fromisoformat(entry.get("timestamp", "")) < since:
                        continue
                except (ValueError, TypeError):
                    continue

            yield entry


def query_logs(
    log_type: str = "all",
    since: str | None = None,
    cycle_id: str | None = None,
    event: str | None = None,
    limit: int = 50,
) -> list[dict[str, Any]]:
    """
    Query log entries with filters.

    Args:
        log_type: "sync", "connectivity", or "all"
        since: Time filter (ISO or relative like "1h")
        cycle_id: Filter sync entries by cycle
        event: Filter sync entries by event name
        limit: Max entries to return, newest first

    Returns:
        List of matching log entries, each tagged with "_source"
    """
    config = get_config()
    since_dt = parse_since(since) if since else None

    files: list[tuple[str, Path]] = []
    if log_type in ("sync", "all"):
        files.append(("sync", config.sync_log_path))
    if log_type in ("connectivity", "all"):
        files.append(("connectivity", config.connectivity_log_path))

    results: list[dict[str, Any]] = []
    for source, filepath in files:
        for entry in read_jsonl(filepath, since=since_dt):
            entry["_source"] = source
            if cycle_id and entry.get("cycle_id") != cycle_id:
                continue
            if event and entry.get("event") != event:
                continue
            results.append(entry)

    results.sort(key=lambda x: x.get("timestamp", ""), reverse=True)
    return results[:limit]


def percentile(values: list[float], p: float) -> float:
    """Calculate percentile of a list of values."""
    if not values:
        return 0.0
    sorted_vals = sorted(values)
    k = (len(sorted_vals) - 1) * p / 100
    f = int(k)
    c = f + 1 if f + 1 < len(sorted_vals) else f
    return sorted_vals[f] + (k - f) * (sorted_vals[c] - sorted_vals[f])


def summarize_cycles(entries: list[dict[str, Any]]) -> dict[str, Any]:
    """
    Summarize drain cycles found in a list of sync log entries.

    Returns:
        Dictionary with cycle and item counts plus duration percentiles
    """
    completed = [e for e in entries if e.get("event") == "cycle_complete"]
    aborted = [e for e in entries if e.get("event") == "cycle_aborted"]
    durations = [e.get("duration_ms", 0) for e in completed if e.get("duration_ms")]

    failure_types: dict[str, int] = {}
    for entry in entries:
        if entry.get("event") == "item_failed":
            key = entry.get("error_type") or "unknown"
            failure_types[key] = failure_types.get(key, 0) + 1

    return {
        "cycles_completed": len(completed),
        "cycles_aborted": len(aborted),
        "items_synced": sum(1 for e in entries if e.get("event") == "item_synced"),
        "items_failed": sum(failure_types.values()),
        "failure_types": failure_types,
        "duration_p50_ms": percentile(durations, 50),
        "duration_p95_ms": percentile(durations, 95),
    }


def format_entry_line(entry: dict[str, Any]) -> str:
    """Format one log entry as a single display line."""
    ts = entry.get("timestamp", "")[:19].replace("T", " ")
    if entry.get("_source") == "connectivity":
        state = "online" if entry.get("online") else "offline"
        extra = " (sync triggered)" if entry.get("triggered_sync") else ""
        return f"{ts} [connectivity] {state}{extra}"

    event = entry.get("event", "?")
    cycle = (entry.get("cycle_id") or "")[:8]
    line = f"{ts} [sync {cycle}] {event}"
    if entry.get("entity_type"):
        line += f" {entry['entity_type']}/{entry.get('action') or '-'} {entry.get('entity_id', '')}"
    if event in ("cycle_complete", "cycle_aborted"):
        line += f" synced={entry.get('synced', 0)} failed={entry.get('failed', 0)}"
    if entry.get("error"):
        line += f" error={entry['error']}"
    return line
