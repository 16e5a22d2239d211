"""
1.0 Sitemap Writer Module
Partitions the authoritative URL set into sitemap files plus one index.

Layout (output directory):
    sitemap.xml                      (index of every group file)
    news-articles-en.xml             (one file per grouping key + language)
    news-articles-fr-1.xml           (numbered parts when a group exceeds the cap)
    news-articles-fr-2.xml
    single-home-page-en.xml
    other-pages-en.xml               (locations no content type claims)

Every previous group file is deleted before the new ones are written, so a
removed group never leaves orphaned parts behind. When no group has any URL
the index itself is deleted: an empty result is represented by absence.
"""

import logging
import os
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sitemap_sync.reconciler import INDEX_FILE_NAME, WorkingRecord
from sitemap_sync.sitemap_codec import SitemapCodec, SitemapRef
from sitemap_sync.timestamps import format_timestamp, utc_now

logger = logging.getLogger(__name__)

# Protocol limit is 50,000 URLs per file
DEFAULT_MAX_URLS_PER_FILE = 45000
PROTOCOL_MAX_URLS = 50000
DEFAULT_PUBLIC_PATH = "sitemaps"


def partition_records(records: Iterable[WorkingRecord]) -> Dict[str, List[WorkingRecord]]:
    """
    2.0 Group records by "{grouping_key}-{language}", sorted by name then location.
    """
    groups: Dict[str, List[WorkingRecord]] = defaultdict(list)
    for record in records:
        groups[f"{record.grouping_key}-{record.language}"].append(record)
    return {
        name: sorted(groups[name], key=lambda r: r.loc)
        for name in sorted(groups)
    }


def chunk_group(name: str, records: List[WorkingRecord], max_urls: int) -> List[tuple]:
    """
    2.1 Split one group into (file_name, records) parts of at most max_urls.

    A group that fits in one file keeps the plain name; larger groups are
    numbered from 1.
    """
    if len(records) <= max_urls:
        return [(f"{name}.xml", records)]
    parts = []
    for part_number, start in enumerate(range(0, len(records), max_urls), start=1):
        parts.append((f"{name}-{part_number}.xml", records[start:start + max_urls]))
    return parts


class SitemapWriter:
    """
    3.0 SitemapWriter Class
    Writes group sitemap files and the sitemap index to one directory.
    """

    def __init__(
        self,
        output_dir: str,
        site_base_url: str,
        max_urls_per_file: int = DEFAULT_MAX_URLS_PER_FILE,
        public_path: str = DEFAULT_PUBLIC_PATH,
        codec: Optional[SitemapCodec] = None,
        index_file_name: str = INDEX_FILE_NAME,
    ):
        if max_urls_per_file < 1 or max_urls_per_file > PROTOCOL_MAX_URLS:
            raise ValueError(f"max_urls_per_file must be between 1 and {PROTOCOL_MAX_URLS}")
        self.output_dir = output_dir
        self.site_base_url = site_base_url.rstrip("/")
        self.max_urls_per_file = max_urls_per_file
        self.public_path = public_path.strip("/")
        self.codec = codec or SitemapCodec()
        self.index_file_name = index_file_name
        os.makedirs(self.output_dir, exist_ok=True)

    def public_url(self, file_name: str) -> str:
        if self.public_path:
            return f"{self.site_base_url}/{self.public_path}/{file_name}"
        return f"{self.site_base_url}/{file_name}"

    def remove_group_files(self) -> int:
        """3.1 Delete every previously written sitemap file except the index."""
        removed = 0
        for file_name in os.listdir(self.output_dir):
            if file_name.endswith(".xml") and file_name != self.index_file_name:
                try:
                    os.remove(os.path.join(self.output_dir, file_name))
                    removed += 1
                except OSError as e:
                    logger.warning(f"Could not remove old sitemap part {file_name}: {e}")
        logger.debug(f"Removed {removed} old sitemap files from {self.output_dir}")
        return removed

    def _write_bytes(self, file_name: str, content: bytes) -> None:
        with open(os.path.join(self.output_dir, file_name), "wb") as f:
            f.write(content)

    def write(self, records: Iterable[WorkingRecord], generated_at: Optional[datetime] = None) -> List[str]:
        """
        3.2 Write all group files and the index.

        Returns:
            Names of the group files written, in index order
        """
        generated_at = generated_at or utc_now()
        groups = partition_records(records)

        self.remove_group_files()

        written: List[str] = []
        for name, group_records in groups.items():
            for file_name, chunk in chunk_group(name, group_records, self.max_urls_per_file):
                self._write_bytes(file_name, self.codec.encode_urlset(r.entry for r in chunk))
                logger.info(f"Generated sitemap: {file_name} with {len(chunk)} URLs")
                written.append(file_name)

        index_path = os.path.join(self.output_dir, self.index_file_name)
        if written:
            lastmod = format_timestamp(generated_at)
            refs = [SitemapRef(loc=self.public_url(f), lastmod=lastmod) for f in written]
            self._write_bytes(self.index_file_name, self.codec.encode_index(refs))
            logger.info(
                f"Generated sitemap index: {self.index_file_name} with {len(written)} sitemap file(s)"
            )
        else:
            logger.info(f"No sitemap files generated. Removing {self.index_file_name} if it exists.")
            if os.path.exists(index_path):
                os.remove(index_path)

        return written
