"""
1.0 URL Builder Module
Canonical URL construction and classification for localized CMS content.

build_url() is the only place that decides URL shape. classify_location() is
its inverse: it maps an existing location back to the content type that
produced it, and is used both when seeding from previously written sitemap
files and when partitioning output, so the two can never disagree.

URL shapes (default language has no prefix):
    single, path ""        -> {base}/          or {base}/{lang}
    single, path "about"   -> {base}/about     or {base}/{lang}/about
    collection "news"      -> {base}/news/{slug} or {base}/{lang}/news/{slug}
"""

import logging
from typing import List, Optional, Sequence, Tuple
from urllib.parse import quote, urlparse

from sitemap_sync.content_types import ContentType, KIND_COLLECTION, KIND_SINGLE

logger = logging.getLogger(__name__)

UNCATEGORIZED_GROUP = "other-pages"


def _language_prefix(language: str, default_language: str) -> str:
    if not language or language == default_language:
        return ""
    return f"/{language}"


def build_url(
    language: str,
    path: Optional[str],
    kind: str,
    slug: Optional[str] = None,
    *,
    site_base_url: str,
    default_language: str,
) -> str:
    """
    2.0 Build the canonical absolute URL for one logical page.

    Args:
        language: Locale code of the page
        path: Path segment (single) or path prefix (collection)
        kind: "single" or "collection"
        slug: Item slug, required for collections
        site_base_url: Site origin without trailing slash
        default_language: Language served without a path prefix

    Returns:
        Absolute URL string

    Raises:
        ValueError: on an unknown kind or a collection without slug
    """
    base = site_base_url.rstrip("/")
    lang_prefix = _language_prefix(language, default_language)
    path = (path or "").strip("/")

    if kind == KIND_SINGLE:
        if not path:
            return f"{base}/" if not lang_prefix else f"{base}{lang_prefix}"
        return f"{base}{lang_prefix}/{path}"

    if kind == KIND_COLLECTION:
        if slug is None or str(slug).strip() == "":
            raise ValueError(f"Collection URL under '/{path}/' requires a slug")
        # One path segment per slug, so "a/b" can never alias a deeper page.
        encoded_slug = quote(str(slug).strip(), safe="")
        return f"{base}{lang_prefix}/{path}/{encoded_slug}"

    raise ValueError(f"Unknown content kind: {kind}")


def build_url_for_type(
    content_type: ContentType,
    language: str,
    slug: Optional[str] = None,
    *,
    site_base_url: str,
    default_language: str,
) -> str:
    """Shortcut for build_url() with a declared content type."""
    return build_url(
        language,
        content_type.path,
        content_type.kind,
        slug,
        site_base_url=site_base_url,
        default_language=default_language,
    )


# =============================================================================
# 3.0 LOCATION CLASSIFICATION
# =============================================================================

def _split_language(
    segments: List[str],
    languages: Sequence[str],
    default_language: str,
) -> Tuple[str, List[str]]:
    """3.1 Strip a non-default language prefix from path segments."""
    if segments and segments[0] in languages and segments[0] != default_language:
        return segments[0], segments[1:]
    return default_language, segments


def _matches(content_type: ContentType, segments: List[str]) -> bool:
    type_segments = [s for s in content_type.path.split("/") if s]
    if content_type.is_single:
        return segments == type_segments
    # collection: prefix segments + exactly one slug segment
    return (
        len(segments) == len(type_segments) + 1
        and segments[:len(type_segments)] == type_segments
        and segments[-1] != ""
    )


def classify_location(
    loc: str,
    content_types: Sequence[ContentType],
    languages: Sequence[str],
    default_language: str,
    site_base_url: Optional[str] = None,
) -> Tuple[Optional[ContentType], str]:
    """
    3.2 Map a location back to its content type and language.

    Returns (content_type, language). content_type is None when no declared
    type matches, or when more than one does; ambiguity is never guessed.
    When site_base_url is given and prefixes loc, only the remainder is matched,
    so a base URL with its own path (https://example.com/site) still classifies.
    """
    base = (site_base_url or "").rstrip("/")
    if base and (loc == base or loc.startswith(base + "/")):
        path = urlparse(loc[len(base):] or "/").path
    else:
        path = urlparse(loc).path
    segments = [s for s in path.split("/") if s]
    language, rest = _split_language(segments, languages, default_language)

    candidates = [ct for ct in content_types if _matches(ct, rest)]
    if len(candidates) == 1:
        return candidates[0], language
    if len(candidates) > 1:
        logger.debug(
            f"Ambiguous location {loc}: matches {[ct.api_slug for ct in candidates]}"
        )
    return None, language


def grouping_key_for(
    loc: str,
    content_types: Sequence[ContentType],
    languages: Sequence[str],
    default_language: str,
    site_base_url: Optional[str] = None,
) -> Tuple[str, str]:
    """3.3 Return (grouping_key, language) for a location, 'other-pages' when uncategorized."""
    content_type, language = classify_location(
        loc, content_types, languages, default_language, site_base_url
    )
    if content_type is None:
        return UNCATEGORIZED_GROUP, language
    return content_type.grouping_key, language
