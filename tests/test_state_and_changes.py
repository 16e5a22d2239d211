"""
STATE + CHANGE LOG TESTS
"""

import json
from datetime import datetime, timezone

import pandas as pd

from conftest import BASE
from sitemap_sync.change_log import CHANGE_LOG_COLUMNS, ChangeLog, detect_changes, summarize
from sitemap_sync.reconciler import UrlSet, WorkingRecord
from sitemap_sync.sitemap_codec import UrlEntry
from sitemap_sync.state_store import RunState, load_run_state, save_run_state
from sitemap_sync.timestamps import format_timestamp, parse_timestamp

RUN_TS = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# 1. TIMESTAMPS
# =============================================================================

def test_timestamp_formats():
    assert format_timestamp(RUN_TS) == "2025-03-01T12:00:00.000Z"
    assert parse_timestamp("2025-03-01T12:00:00Z") == RUN_TS
    assert parse_timestamp("2025-03-01T13:00:00+01:00") == RUN_TS
    assert parse_timestamp(1740830400000) == RUN_TS
    assert parse_timestamp("yesterday") is None
    assert parse_timestamp(None) is None


# =============================================================================
# 2. RUN STATE
# =============================================================================

def test_state_round_trip(tmp_path):
    path = str(tmp_path / "sitemap_state.json")
    assert save_run_state(path, RunState(RUN_TS, {f"{BASE}/about": 1}))
    loaded = load_run_state(path)
    assert loaded.last_successful_run == RUN_TS
    assert loaded.pending_removals == {f"{BASE}/about": 1}
    with open(path) as f:
        assert json.load(f)["lastSuccessfulRunTimestamp"] == "2025-03-01T12:00:00.000Z"


def test_missing_state_is_first_run(tmp_path):
    state = load_run_state(str(tmp_path / "nope.json"))
    assert state.last_successful_run is None
    assert state.pending_removals == {}


def test_malformed_state_is_first_run(tmp_path):
    path = tmp_path / "sitemap_state.json"
    path.write_text("{not json")
    assert load_run_state(str(path)).last_successful_run is None
    path.write_text("[1, 2]")
    assert load_run_state(str(path)).last_successful_run is None


def test_legacy_epoch_millis_state(tmp_path):
    path = tmp_path / "sitemap_state.json"
    path.write_text(json.dumps({"lastSuccessfulRunTimestamp": 1740830400000}))
    assert load_run_state(str(path)).last_successful_run == RUN_TS


# =============================================================================
# 3. CHANGE LOG
# =============================================================================

def url_set(*pairs):
    s = UrlSet()
    for loc, lastmod in pairs:
        s.set(WorkingRecord(UrlEntry(loc, lastmod), "news-articles", "en"))
    return s


def test_detect_changes():
    previous = url_set((f"{BASE}/news/a", "2025-01-01"), (f"{BASE}/news/b", "2025-01-01"), (f"{BASE}/news/c", "2025-01-01"))
    current = url_set((f"{BASE}/news/a", "2025-01-01"), (f"{BASE}/news/b", "2025-02-01"), (f"{BASE}/news/d", "2025-02-01"))

    changes = detect_changes(previous, current, RUN_TS)

    assert list(changes.columns) == CHANGE_LOG_COLUMNS
    by_loc = dict(zip(changes["loc"], changes["change_type"]))
    assert by_loc == {
        f"{BASE}/news/b": "modified",
        f"{BASE}/news/c": "removed",
        f"{BASE}/news/d": "discovered",
    }
    removed = changes[changes["change_type"] == "removed"].iloc[0]
    assert removed["grouping_key"] == "news-articles"
    assert summarize(changes) == {"discovered": 1, "modified": 1, "removed": 1}


def test_no_changes_is_empty():
    same = url_set((f"{BASE}/news/a", "2025-01-01"))
    assert detect_changes(same, same.copy(), RUN_TS).empty
    assert detect_changes(UrlSet(), UrlSet(), RUN_TS).empty
    assert summarize(detect_changes(UrlSet(), UrlSet(), RUN_TS)) == {"discovered": 0, "modified": 0, "removed": 0}


def test_change_log_appends_monthly(tmp_path):
    log = ChangeLog(str(tmp_path / "changes"))
    first = detect_changes(UrlSet(), url_set((f"{BASE}/news/a", "2025-01-01")), RUN_TS)
    second = detect_changes(url_set((f"{BASE}/news/a", "2025-01-01")), UrlSet(), RUN_TS)

    path = log.save(first, RUN_TS)
    assert log.save(second, RUN_TS) == path
    assert path.endswith("sitemap_changes_2025-03.csv")

    df = pd.read_csv(path)
    assert list(df["change_type"]) == ["discovered", "removed"]


def test_change_log_migrates_old_schema(tmp_path):
    log = ChangeLog(str(tmp_path))
    pd.DataFrame([{"detected_at": "x", "loc": "old", "change_type": "discovered"}]).to_csv(
        log.monthly_path(RUN_TS), index=False
    )
    path = log.save(detect_changes(UrlSet(), url_set((f"{BASE}/news/a", "2025-01-01")), RUN_TS), RUN_TS)
    df = pd.read_csv(path)
    assert list(df.columns) == CHANGE_LOG_COLUMNS
    assert list(df["loc"]) == ["old", f"{BASE}/news/a"]


def test_empty_changes_not_written(tmp_path):
    log = ChangeLog(str(tmp_path))
    assert log.save(pd.DataFrame(columns=CHANGE_LOG_COLUMNS), RUN_TS) is None
    assert list(tmp_path.iterdir()) == []
