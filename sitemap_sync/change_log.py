"""
1.0 Change Log Module
Records what each run changed in the sitemap set.

Key features:
- Compares the previously written URL set with the reconciled one
- change_type: 'discovered' (new loc), 'modified' (lastmod changed), 'removed'
- Monthly CSV files to prevent size bloat (sitemap_changes_YYYY-MM.csv)
- Schema migration when older files lack newer columns
"""

import logging
import os
from datetime import datetime
from typing import Dict, Optional

import pandas as pd

from sitemap_sync.reconciler import UrlSet
from sitemap_sync.timestamps import format_timestamp, utc_now

logger = logging.getLogger(__name__)

CHANGE_LOG_COLUMNS = [
    "detected_at", "loc", "change_type",
    "lastmod", "lastmod_prev",
    "grouping_key", "language",
]


def _frame(url_set: UrlSet) -> pd.DataFrame:
    rows = [
        {
            "loc": r.loc,
            "lastmod": r.entry.lastmod,
            "grouping_key": r.grouping_key,
            "language": r.language,
        }
        for r in url_set
    ]
    if not rows:
        return pd.DataFrame(columns=["loc", "lastmod", "grouping_key", "language"])
    return pd.DataFrame(rows)


def detect_changes(previous: UrlSet, current: UrlSet, detected_at: Optional[datetime] = None) -> pd.DataFrame:
    """
    2.0 Diff two URL sets.

    Returns:
        DataFrame with CHANGE_LOG_COLUMNS, one row per discovered, modified or
        removed location; unchanged locations are omitted.
    """
    detected_at = detected_at or utc_now()
    prev_df = _frame(previous).rename(
        columns={"lastmod": "lastmod_prev", "grouping_key": "grouping_key_prev", "language": "language_prev"}
    )
    cur_df = _frame(current)

    merged = cur_df.merge(prev_df, on="loc", how="outer", indicator=True)
    if merged.empty:
        return pd.DataFrame(columns=CHANGE_LOG_COLUMNS)

    merged["change_type"] = None
    merged.loc[merged["_merge"] == "left_only", "change_type"] = "discovered"
    merged.loc[merged["_merge"] == "right_only", "change_type"] = "removed"
    both = merged["_merge"] == "both"
    lastmod_changed = merged["lastmod"].fillna("") != merged["lastmod_prev"].fillna("")
    merged.loc[both & lastmod_changed, "change_type"] = "modified"

    # Removed rows only exist on the previous side
    removed = merged["_merge"] == "right_only"
    merged.loc[removed, "grouping_key"] = merged.loc[removed, "grouping_key_prev"]
    merged.loc[removed, "language"] = merged.loc[removed, "language_prev"]

    changes = merged[merged["change_type"].notna()].copy()
    changes["detected_at"] = format_timestamp(detected_at)
    changes = changes.reindex(columns=CHANGE_LOG_COLUMNS)
    return changes.sort_values(["change_type", "loc"]).reset_index(drop=True)


def summarize(changes: pd.DataFrame) -> Dict[str, int]:
    counts = changes["change_type"].value_counts().to_dict() if not changes.empty else {}
    return {kind: int(counts.get(kind, 0)) for kind in ("discovered", "modified", "removed")}


class ChangeLog:
    """
    3.0 ChangeLog Class
    Appends detected changes to monthly CSV files.
    """

    def __init__(self, log_dir: str):
        self.log_dir = log_dir
        os.makedirs(self.log_dir, exist_ok=True)
        logger.info(f"ChangeLog initialized with directory: {log_dir}")

    def monthly_path(self, run_ts: datetime) -> str:
        return os.path.join(self.log_dir, f"sitemap_changes_{run_ts.strftime('%Y-%m')}.csv")

    def save(self, changes: pd.DataFrame, run_ts: datetime) -> Optional[str]:
        """
        3.1 Append changes to this month's CSV, migrating older schemas.

        Returns:
            Path written, or None when there was nothing to write or writing failed
        """
        if changes.empty:
            return None

        path = self.monthly_path(run_ts)
        final_df = changes.reindex(columns=CHANGE_LOG_COLUMNS)

        try:
            if os.path.exists(path):
                existing_cols = list(pd.read_csv(path, nrows=0).columns)
                if existing_cols != CHANGE_LOG_COLUMNS:
                    logger.info(f"Migrating {path} to current change log schema")
                    existing_df = pd.read_csv(path, low_memory=False).reindex(columns=CHANGE_LOG_COLUMNS)
                    combined = pd.concat([existing_df, final_df], ignore_index=True)
                    combined.to_csv(path, mode="w", header=True, index=False)
                else:
                    final_df.to_csv(path, mode="a", header=False, index=False)
                logger.info(f"Appended {len(final_df):,} changes to {path}")
            else:
                final_df.to_csv(path, mode="w", header=True, index=False)
                logger.info(f"Created change log with {len(final_df):,} changes at {path}")
        except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            logger.error(f"Error saving change log {path}: {e}")
            return None

        return path
