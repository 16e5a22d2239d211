"""
1.0 Reconciliation Engine
Merges fetched CMS records with previously written sitemaps into one
authoritative URL set per run.

Run steps (each is a standalone function operating on a UrlSet):
1. seed_from_directory   - incremental: reload prior sitemap files
2. refresh_heartbeats    - always-included pages get a fresh lastmod every run
3. upsert_entries        - set fetched records (last write wins)
4. confirm_single_absence- incremental: a single type that is gone is removed
5. reconcile_collections - incremental after a prior run: drop collection URLs
                           missing from the full live listing, then upsert live items
6. ReconcileOutcome      - the committed set handed to the writer

The Reconciler class drives the steps in a fixed order:
language first, then content type, one CMS request at a time.
"""

import logging
import os
import posixpath
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from sitemap_sync.cms_fetcher import (
    CmsFetcher,
    FetchResult,
    SINGLE_ERROR,
    SINGLE_FOUND,
    entry_attributes,
)
from sitemap_sync.content_types import ContentType
from sitemap_sync.sitemap_codec import SitemapCodec, UrlEntry
from sitemap_sync.timestamps import format_timestamp, normalize_timestamp, utc_now
from sitemap_sync.url_builder import build_url_for_type, grouping_key_for

logger = logging.getLogger(__name__)

MODE_FULL = "full"
MODE_INCREMENTAL = "incremental"
VALID_MODES = (MODE_FULL, MODE_INCREMENTAL)

INDEX_FILE_NAME = "sitemap.xml"


# =============================================================================
# 2.0 DATA STRUCTURES
# =============================================================================

@dataclass(frozen=True)
class WorkingRecord:
    """A persisted UrlEntry plus the partitioning hints the XML does not carry."""
    entry: UrlEntry
    grouping_key: str
    language: str

    @property
    def loc(self) -> str:
        return self.entry.loc


class UrlSet:
    """
    2.1 The authoritative URL set: at most one WorkingRecord per location.
    """

    def __init__(self, records: Optional[Dict[str, WorkingRecord]] = None):
        self._records: Dict[str, WorkingRecord] = dict(records or {})

    def set(self, record: WorkingRecord) -> bool:
        """Insert or replace; returns True when the location was new."""
        is_new = record.loc not in self._records
        self._records[record.loc] = record
        return is_new

    def remove(self, loc: str) -> bool:
        return self._records.pop(loc, None) is not None

    def get(self, loc: str) -> Optional[WorkingRecord]:
        return self._records.get(loc)

    def locations(self) -> List[str]:
        return list(self._records)

    def records(self) -> List[WorkingRecord]:
        return list(self._records.values())

    def copy(self) -> "UrlSet":
        return UrlSet(self._records)

    def __contains__(self, loc: object) -> bool:
        return loc in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[WorkingRecord]:
        return iter(list(self._records.values()))


@dataclass
class SyncContext:
    """Per-run constants shared by every merge step."""
    content_types: Sequence[ContentType]
    languages: Sequence[str]
    site_base_url: str
    run_started: datetime = field(default_factory=utc_now)

    @property
    def default_language(self) -> str:
        return self.languages[0]

    @property
    def collection_types(self) -> List[ContentType]:
        return [ct for ct in self.content_types if ct.is_collection]

    def url_for(self, content_type: ContentType, language: str, slug: Optional[str] = None) -> str:
        return build_url_for_type(
            content_type,
            language,
            slug,
            site_base_url=self.site_base_url,
            default_language=self.default_language,
        )

    def classify(self, loc: str) -> Tuple[str, str]:
        return grouping_key_for(
            loc, self.content_types, self.languages, self.default_language, self.site_base_url
        )


@dataclass
class ReconcileOutcome:
    url_set: UrlSet
    previous: UrlSet
    fetched_something_new: bool = False
    pending_removals: Dict[str, int] = field(default_factory=dict)
    stats: Dict[str, int] = field(default_factory=dict)


def make_record(
    content_type: ContentType,
    language: str,
    ctx: SyncContext,
    updated_at=None,
    slug: Optional[str] = None,
) -> WorkingRecord:
    """2.2 Build the working record for one logical page."""
    loc = ctx.url_for(content_type, language, slug)
    return WorkingRecord(
        entry=UrlEntry(
            loc=loc,
            lastmod=normalize_timestamp(updated_at, ctx.run_started),
            changefreq=content_type.changefreq or "monthly",
            priority=content_type.priority or "0.5",
        ),
        grouping_key=content_type.grouping_key,
        language=language,
    )


# =============================================================================
# 3.0 MERGE STEPS
# =============================================================================

def seed_from_directory(
    url_set: UrlSet,
    output_dir: str,
    codec: SitemapCodec,
    ctx: SyncContext,
    index_file_name: str = INDEX_FILE_NAME,
) -> int:
    """
    3.1 Load every previously written sitemap file (not the index).

    The previous index is checked against the directory; entries pointing at
    files that no longer exist are logged.

    Grouping keys are re-derived from each location; unmatched locations are
    kept under the uncategorized group rather than dropped.

    Returns:
        Number of records loaded
    """
    if not os.path.isdir(output_dir):
        return 0

    index_path = os.path.join(output_dir, index_file_name)
    if os.path.exists(index_path):
        with open(index_path, "rb") as f:
            refs = codec.decode_index(f.read(), source=index_path)
        on_disk = set(os.listdir(output_dir))
        missing = [ref.loc for ref in refs if posixpath.basename(urlparse(ref.loc).path) not in on_disk]
        logger.info(f"Previous index lists {len(refs)} sitemap file(s)")
        if missing:
            logger.warning(f"Previous index references {len(missing)} missing file(s): {missing}")

    loaded = 0
    for file_name in sorted(os.listdir(output_dir)):
        if not file_name.endswith(".xml") or file_name == index_file_name:
            continue
        for entry in codec.read_file(os.path.join(output_dir, file_name)):
            grouping_key, language = ctx.classify(entry.loc)
            url_set.set(WorkingRecord(entry=entry, grouping_key=grouping_key, language=language))
            loaded += 1

    logger.info(f"Loaded {len(url_set)} existing URLs from sitemap files in {output_dir}")
    return loaded


def refresh_heartbeats(url_set: UrlSet, ctx: SyncContext) -> int:
    """
    3.2 Insert every always-included page for every language with a fresh lastmod.
    """
    count = 0
    for language in ctx.languages:
        for content_type in ctx.content_types:
            if content_type.always_include and content_type.is_single:
                url_set.set(make_record(content_type, language, ctx))
                count += 1
    return count


def upsert_entries(
    url_set: UrlSet,
    content_type: ContentType,
    language: str,
    entries: Sequence[dict],
    ctx: SyncContext,
) -> int:
    """
    3.3 Set fetched CMS records into the URL set.

    Collection records without a slug are skipped with a warning.

    Returns:
        Number of records set
    """
    count = 0
    for entry in entries:
        attributes = entry_attributes(entry)
        slug = None
        if content_type.is_collection:
            slug = attributes.get("slug")
            if slug is None or not str(slug).strip():
                logger.warning(
                    f"Collection entry ID {entry.get('id')} ({content_type.api_slug}, {language}) "
                    f"missing slug. Skipping."
                )
                continue
        record = make_record(content_type, language, ctx, attributes.get("updatedAt"), slug)
        url_set.set(record)
        count += 1
    return count


def confirm_single_absence(
    url_set: UrlSet,
    content_type: ContentType,
    language: str,
    ctx: SyncContext,
    pending_removals: Dict[str, int],
    grace_runs: int = 1,
) -> bool:
    """
    3.4 Handle a single type reported as not found.

    The URL is removed once it has been missing for grace_runs consecutive
    runs (1 = immediately). Always-included pages are never removed.

    Returns:
        True when the URL was removed from the set
    """
    if content_type.always_include:
        return False

    loc = ctx.url_for(content_type, language)
    misses = pending_removals.get(loc, 0) + 1

    if misses < max(grace_runs, 1):
        pending_removals[loc] = misses
        if loc in url_set:
            logger.info(
                f"Incremental: {loc} not found ({misses}/{grace_runs}); keeping until confirmed."
            )
        return False

    pending_removals.pop(loc, None)
    if url_set.remove(loc):
        logger.info(f"Incremental: Removed single type URL {loc} as it's no longer found/published.")
        return True
    return False


def reconcile_collections(
    url_set: UrlSet,
    listings: Sequence[Tuple[ContentType, str, FetchResult]],
    ctx: SyncContext,
) -> Tuple[int, int]:
    """
    3.5 Reconcile collection URLs against full live listings.

    Args:
        listings: (content_type, language, full unfiltered FetchResult)

    Removes every record of a listed (collection, language) pair whose location
    is not live, then upserts all live items. Pairs whose listing is
    incomplete are not pruned.

    Returns:
        (removed_count, upserted_count)
    """
    live_locs = set()
    prunable_pairs = set()
    for content_type, language, result in listings:
        if result.complete:
            prunable_pairs.add((content_type.grouping_key, language))
        else:
            logger.warning(
                f"Incremental: listing for {content_type.api_slug} ({language}) incomplete; "
                f"skipping deletion checks for it."
            )
        for entry in result.entries:
            slug = entry_attributes(entry).get("slug")
            if slug is not None and str(slug).strip():
                live_locs.add(ctx.url_for(content_type, language, slug))

    to_delete = [
        record.loc
        for record in url_set
        if (record.grouping_key, record.language) in prunable_pairs and record.loc not in live_locs
    ]
    if to_delete:
        logger.info(f"Incremental: Found {len(to_delete)} collection URLs to remove.")
    for loc in to_delete:
        url_set.remove(loc)

    upserted = 0
    for content_type, language, result in listings:
        upserted += upsert_entries(url_set, content_type, language, result.entries, ctx)

    return len(to_delete), upserted


# =============================================================================
# 4.0 RUN DRIVER
# =============================================================================

class Reconciler:
    """
    4.1 Drives one reconciliation run against the CMS.
    """

    def __init__(
        self,
        fetcher: CmsFetcher,
        ctx: SyncContext,
        codec: Optional[SitemapCodec] = None,
        single_removal_grace_runs: int = 1,
    ):
        self.fetcher = fetcher
        self.ctx = ctx
        self.codec = codec or SitemapCodec()
        self.single_removal_grace_runs = max(int(single_removal_grace_runs), 1)

    def run(
        self,
        mode: str,
        output_dir: str,
        last_run: Optional[datetime] = None,
        pending_removals: Optional[Dict[str, int]] = None,
    ) -> ReconcileOutcome:
        """
        4.2 Build the authoritative URL set for this run.

        Args:
            mode: "full" or "incremental"
            output_dir: Directory holding previously written sitemaps
            last_run: Last successful run timestamp (incremental only)
            pending_removals: Miss counters carried over from the last run

        Returns:
            ReconcileOutcome with the final set and run statistics
        """
        if mode not in VALID_MODES:
            raise ValueError(f"Unknown mode: {mode}")

        incremental = mode == MODE_INCREMENTAL
        since = last_run if incremental else None
        pending = dict(pending_removals or {}) if incremental else {}
        stats = {"upserted": 0, "skipped": 0, "removed_single": 0, "removed_collection": 0}

        # 4.2.1 Seed
        previous = UrlSet()
        seed_from_directory(previous, output_dir, self.codec, self.ctx)
        url_set = previous.copy() if incremental else UrlSet()

        # 4.2.2 Heartbeats
        stats["heartbeats"] = refresh_heartbeats(url_set, self.ctx)

        # 4.2.3 Upsert from fetch, language then content type
        fetched_something_new = False

        for language in self.ctx.languages:
            for content_type in self.ctx.content_types:
                if content_type.is_single:
                    result = self.fetcher.fetch_single_entry(content_type.api_slug, language)
                    if result.status == SINGLE_FOUND:
                        fetched_something_new = True
                        pending.pop(self.ctx.url_for(content_type, language), None)
                        stats["upserted"] += upsert_entries(
                            url_set, content_type, language, [result.entry], self.ctx
                        )
                    elif result.status == SINGLE_ERROR:
                        logger.warning(
                            f"Single type {content_type.api_slug} ({language}) unavailable this run; "
                            f"keeping previous state."
                        )
                    elif incremental:
                        if confirm_single_absence(
                            url_set, content_type, language, self.ctx, pending,
                            self.single_removal_grace_runs,
                        ):
                            stats["removed_single"] += 1
                else:
                    result = self.fetcher.fetch_collection_entries(content_type.api_slug, language, since)
                    if result.entries:
                        fetched_something_new = True
                    upserted = upsert_entries(url_set, content_type, language, result.entries, self.ctx)
                    stats["upserted"] += upserted
                    stats["skipped"] += len(result.entries) - upserted

        # 4.2.4 Deletion checks for collections (needs a prior run to compare against)
        if incremental and since is not None:
            logger.info("Incremental: Performing deletion checks for collections...")
            listings = []
            for language in self.ctx.languages:
                for content_type in self.ctx.collection_types:
                    listings.append((
                        content_type,
                        language,
                        self.fetcher.fetch_collection_entries(content_type.api_slug, language, None),
                    ))
            removed, _ = reconcile_collections(url_set, listings, self.ctx)
            stats["removed_collection"] = removed
        elif incremental:
            logger.info("Incremental: No prior run timestamp; skipping collection deletion checks.")

        logger.info(
            f"Reconciled {len(url_set)} URLs ({mode}): "
            f"{stats['upserted']} upserted, {stats['skipped']} skipped, "
            f"{stats['removed_single']} single + {stats['removed_collection']} collection removed, "
            f"run started {format_timestamp(self.ctx.run_started)}"
        )

        return ReconcileOutcome(
            url_set=url_set,
            previous=previous,
            fetched_something_new=fetched_something_new,
            pending_removals=pending,
            stats=stats,
        )
