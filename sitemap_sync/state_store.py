"""
1.0 Run State Module
Persists the last successful run timestamp and pending single-type removals.

File format (sitemap_state.json):
    {
        "lastSuccessfulRunTimestamp": "2025-01-31T08:15:00.000Z",
        "pendingRemovals": {"https://example.com/about": 1}
    }

The legacy generator stored the timestamp as epoch milliseconds; that is
still accepted on read. A missing or unreadable file means "no prior run".
"""

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional

from sitemap_sync.timestamps import format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

STATE_FILE_NAME = "sitemap_state.json"


@dataclass
class RunState:
    last_successful_run: Optional[datetime] = None
    pending_removals: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            "lastSuccessfulRunTimestamp": (
                format_timestamp(self.last_successful_run) if self.last_successful_run else None
            ),
            "pendingRemovals": dict(sorted(self.pending_removals.items())),
        }


def state_file_path(output_dir: str) -> str:
    return os.path.join(output_dir, STATE_FILE_NAME)


def load_run_state(path: str) -> RunState:
    """
    2.0 Load run state, treating absent or malformed files as empty state.
    """
    if not os.path.exists(path):
        logger.info(f"No run state at {path}; treating as first run")
        return RunState()

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Could not read/parse {path}: {e}")
        return RunState()

    if not isinstance(raw, dict):
        logger.warning(f"Run state in {path} is not an object; ignoring")
        return RunState()

    last_run = parse_timestamp(raw.get("lastSuccessfulRunTimestamp"))
    if raw.get("lastSuccessfulRunTimestamp") is not None and last_run is None:
        logger.warning(f"Unparseable lastSuccessfulRunTimestamp in {path}; ignoring")

    pending = {}
    raw_pending = raw.get("pendingRemovals") or {}
    if isinstance(raw_pending, dict):
        for loc, misses in raw_pending.items():
            if isinstance(misses, int) and not isinstance(misses, bool) and misses > 0:
                pending[str(loc)] = misses

    return RunState(last_successful_run=last_run, pending_removals=pending)


def save_run_state(path: str, state: RunState) -> bool:
    """
    3.0 Write run state. Failures are logged and reported, not raised.

    Returns:
        True when the file was written
    """
    try:
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        tmp_path = f"{path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(state.to_dict(), f, indent=2)
        os.replace(tmp_path, path)
    except OSError as e:
        logger.error(f"Could not write {path}: {e}")
        return False

    if state.last_successful_run:
        logger.info(
            f"Saved last successful run timestamp: {format_timestamp(state.last_successful_run)}"
        )
    return True
