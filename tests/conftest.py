"""
Shared fixtures: an in-memory CMS standing in for CmsFetcher.
"""

import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from sitemap_sync.cms_fetcher import (  # noqa: E402
    FetchResult,
    SingleResult,
    SINGLE_ERROR,
    SINGLE_FOUND,
    SINGLE_NOT_FOUND,
)
from sitemap_sync.content_types import ContentType, KIND_COLLECTION, KIND_SINGLE  # noqa: E402
from sitemap_sync.timestamps import parse_timestamp  # noqa: E402

BASE = "https://www.example.com"

HOME = ContentType(KIND_SINGLE, "home-page", "", "daily", "1.0", always_include=True)
ABOUT = ContentType(KIND_SINGLE, "about-page", "about", "yearly", "0.5")
NEWS = ContentType(KIND_COLLECTION, "news-articles", "news", "daily", "0.8")
BLOG = ContentType(KIND_COLLECTION, "blog-posts", "blog", "monthly", "0.6")

TEST_CONTENT_TYPES = [NEWS, BLOG, HOME, ABOUT]


def item(slug: Optional[str], updated_at: str, item_id: int = 1) -> dict:
    """A Strapi v4 collection record."""
    attributes = {"updatedAt": updated_at, "locale": "en"}
    if slug is not None:
        attributes["slug"] = slug
    return {"id": item_id, "attributes": attributes}


def page(updated_at: str) -> dict:
    """A published Strapi v4 single-type record."""
    return {"id": 1, "attributes": {"updatedAt": updated_at, "publishedAt": updated_at}}


class FakeCms:
    """
    In-memory CMS with the CmsFetcher interface.

    collections: {(api_slug, language): [records]}
    singles: {(api_slug, language): record | None | "error"}
    failing_listings: (api_slug, language) pairs that return incomplete results
    """

    def __init__(self):
        self.collections: Dict[Tuple[str, str], List[dict]] = {}
        self.singles: Dict[Tuple[str, str], object] = {}
        self.failing_listings = set()
        self.calls: List[tuple] = []

    @property
    def request_count(self) -> int:
        return len(self.calls)

    def fetch_collection_entries(self, api_slug, language, since=None) -> FetchResult:
        self.calls.append(("collection", api_slug, language, since))
        if (api_slug, language) in self.failing_listings:
            return FetchResult(entries=[], complete=False)
        entries = list(self.collections.get((api_slug, language), []))
        if since is not None:
            entries = [
                e for e in entries
                if parse_timestamp(e["attributes"]["updatedAt"]) > since
            ]
        return FetchResult(entries=entries, complete=True)

    def fetch_single_entry(self, api_slug, language) -> SingleResult:
        self.calls.append(("single", api_slug, language))
        value = self.singles.get((api_slug, language))
        if value == "error":
            return SingleResult(SINGLE_ERROR)
        if value is None:
            return SingleResult(SINGLE_NOT_FOUND)
        return SingleResult(SINGLE_FOUND, value)


@pytest.fixture
def cms() -> FakeCms:
    return FakeCms()


@pytest.fixture
def sync_config(tmp_path) -> dict:
    return {
        "api_url": "https://cms.example.com",
        "api_token": "token",
        "site_base_url": BASE,
        "output_dir": str(tmp_path / "sitemaps"),
        "languages": ["en", "fr"],
        "mode": "full",
        "page_size": 100,
        "max_urls_per_file": 45000,
        "public_path": "sitemaps",
        "content_types": TEST_CONTENT_TYPES,
        "change_log_dir": None,
        "single_removal_grace_runs": 1,
        "timeout": 30,
        "max_retries": 3,
        "log_file": None,
    }
