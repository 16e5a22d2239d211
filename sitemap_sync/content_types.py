"""
1.0 Content Types Module
Static catalog of the CMS content types that produce sitemap URLs.

Each ContentType is either:
- single: exactly one record per language (a page), URL = /{lang}/{path}
- collection: many records per language, URL = /{lang}/{path}/{slug}

The catalog can be replaced by a JSON file (SITEMAP_CONTENT_TYPES_FILE):

    [
        {"type": "collection", "apiSlug": "news-articles", "pathPrefix": "news",
         "priority": "0.8", "changefreq": "daily"},
        {"type": "single", "apiSlug": "home-page", "defaultUrlPath": "",
         "priority": "1.0", "changefreq": "daily", "alwaysInclude": true}
    ]
"""

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

KIND_SINGLE = "single"
KIND_COLLECTION = "collection"
VALID_KINDS = (KIND_SINGLE, KIND_COLLECTION)

VALID_CHANGEFREQS = ("always", "hourly", "daily", "weekly", "monthly", "yearly", "never")


@dataclass(frozen=True)
class ContentType:
    """A declared CMS content type and its sitemap hints."""
    kind: str
    api_slug: str
    path: str
    changefreq: str = "monthly"
    priority: str = "0.5"
    grouping_key_base: Optional[str] = None
    always_include: bool = False

    @property
    def is_single(self) -> bool:
        return self.kind == KIND_SINGLE

    @property
    def is_collection(self) -> bool:
        return self.kind == KIND_COLLECTION

    @property
    def grouping_key(self) -> str:
        if self.grouping_key_base:
            return self.grouping_key_base
        if self.is_single:
            return f"single-{self.api_slug}"
        return self.api_slug


# =============================================================================
# 2.0 DEFAULT CATALOG
# =============================================================================

DEFAULT_CONTENT_TYPES: List[ContentType] = [
    # Collections
    ContentType(KIND_COLLECTION, "reports", "reports", "weekly", "0.7"),
    ContentType(KIND_COLLECTION, "news-articles", "news", "daily", "0.8"),
    ContentType(KIND_COLLECTION, "blog-posts", "blog", "monthly", "0.6"),
    # Single types (path "" is the language root)
    ContentType(KIND_SINGLE, "home-page", "", "daily", "1.0", always_include=True),
    ContentType(KIND_SINGLE, "about-page", "about", "yearly", "0.5"),
    ContentType(KIND_SINGLE, "cancellation-policy", "cancellation-policy", "yearly", "0.3"),
    ContentType(KIND_SINGLE, "contact-page", "contact", "yearly", "0.5"),
    ContentType(KIND_SINGLE, "disclaimer", "disclaimer", "yearly", "0.3"),
    ContentType(KIND_SINGLE, "legal", "legal", "yearly", "0.3"),
    ContentType(KIND_SINGLE, "privacy-policy", "privacy-policy", "yearly", "0.3"),
    ContentType(KIND_SINGLE, "services-page", "services", "monthly", "0.7"),
    ContentType(KIND_SINGLE, "t-and-c", "terms-and-conditions", "yearly", "0.3"),
]


# =============================================================================
# 3.0 JSON CATALOG LOADING
# =============================================================================

def content_type_from_dict(entry: Dict[str, Any], index: int = 0) -> ContentType:
    """
    3.1 Build a ContentType from a JSON catalog entry.

    Raises:
        ValueError: if the entry is not a valid content type declaration
    """
    if not isinstance(entry, dict):
        raise ValueError(f"Content type at index {index} is not an object.")

    kind = entry.get("type")
    if kind not in VALID_KINDS:
        raise ValueError(f"Content type at index {index} has unknown type '{kind}'.")

    api_slug = entry.get("apiSlug")
    if not isinstance(api_slug, str) or not api_slug.strip():
        raise ValueError(f"Content type at index {index} is missing 'apiSlug'.")

    if kind == KIND_COLLECTION:
        path = entry.get("pathPrefix")
        if not isinstance(path, str) or not path.strip("/"):
            raise ValueError(f"Collection '{api_slug}' needs a non-empty 'pathPrefix'.")
    else:
        path = entry.get("defaultUrlPath", "")
        if not isinstance(path, str):
            raise ValueError(f"Single type '{api_slug}' has a non-string 'defaultUrlPath'.")

    changefreq = str(entry.get("changefreq", "monthly"))
    if changefreq not in VALID_CHANGEFREQS:
        raise ValueError(f"Content type '{api_slug}' has invalid changefreq '{changefreq}'.")

    priority = str(entry.get("priority", "0.5"))
    try:
        priority_value = float(priority)
    except ValueError:
        raise ValueError(f"Content type '{api_slug}' has non-numeric priority '{priority}'.")
    if not 0.0 <= priority_value <= 1.0:
        raise ValueError(f"Content type '{api_slug}' priority must be between 0.0 and 1.0.")

    return ContentType(
        kind=kind,
        api_slug=api_slug.strip(),
        path=path.strip("/"),
        changefreq=changefreq,
        priority=priority,
        grouping_key_base=entry.get("groupingKey") or None,
        always_include=bool(entry.get("alwaysInclude", False)),
    )


def _segments(path: str) -> List[str]:
    return [s for s in path.split("/") if s]


def _paths_overlap(a: ContentType, b: ContentType) -> bool:
    """True when some URL of a can equal some URL of b in the same language."""
    a_segments, b_segments = _segments(a.path), _segments(b.path)
    if a.is_single and b.is_single:
        return a_segments == b_segments
    if a.is_collection and b.is_collection:
        return a_segments == b_segments
    single, collection = (a_segments, b_segments) if a.is_single else (b_segments, a_segments)
    return len(single) == len(collection) + 1 and single[:len(collection)] == collection


def validate_content_types(content_types: List[ContentType], languages: Optional[List[str]] = None) -> None:
    """
    3.2 Reject catalogs that cannot produce one distinct URL per page.

    Checks duplicate API slugs and grouping keys, path patterns that overlap
    (two types able to build the same URL), and paths whose first segment is
    a configured language code.
    """
    seen_slugs = set()
    seen_keys = set()
    for ct in content_types:
        if ct.api_slug in seen_slugs:
            raise ValueError(f"Duplicate content type apiSlug '{ct.api_slug}'.")
        if ct.grouping_key in seen_keys:
            raise ValueError(f"Duplicate grouping key '{ct.grouping_key}'.")
        if ct.always_include and not ct.is_single:
            raise ValueError(f"Only single types can be always included ('{ct.api_slug}').")
        seen_slugs.add(ct.api_slug)
        seen_keys.add(ct.grouping_key)

    for i, first in enumerate(content_types):
        for second in content_types[i + 1:]:
            if _paths_overlap(first, second):
                raise ValueError(
                    f"Content types '{first.api_slug}' and '{second.api_slug}' can build the same URL "
                    f"('/{first.path}' vs '/{second.path}')."
                )

    for ct in content_types:
        segments = _segments(ct.path)
        if languages and segments and segments[0] in languages:
            raise ValueError(
                f"Content type '{ct.api_slug}' path '/{ct.path}' starts with language code '{segments[0]}'."
            )


def load_content_types(path: Optional[str] = None, languages: Optional[List[str]] = None) -> List[ContentType]:
    """
    3.3 Load the content type catalog.

    Returns the built-in catalog when no path is given. Either catalog is
    validated against the configured languages.

    Raises:
        ValueError: on a missing, unreadable or invalid catalog file
    """
    if not path:
        content_types = list(DEFAULT_CONTENT_TYPES)
        validate_content_types(content_types, languages)
        return content_types

    if not os.path.exists(path):
        raise ValueError(f"Content types file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Error decoding JSON from {path}: {e}")

    if not isinstance(raw, list) or not raw:
        raise ValueError(f"Content types file {path} must contain a non-empty list.")

    content_types = [content_type_from_dict(entry, i) for i, entry in enumerate(raw)]
    validate_content_types(content_types, languages)
    logger.info(f"Loaded {len(content_types)} content types from {path}")
    return content_types
