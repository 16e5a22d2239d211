"""
1.0 CMS Fetcher Module
Fetches localized content records from the Strapi REST API.

Key features:
- Automatic retry on transient failures (429, 500, 502, 503, 504)
- Exponential backoff between retries
- Bearer token auth on a reused session
- Paginated collection listing with optional "updated since" filter
- Failures are logged and reported as empty/incomplete results, never raised
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from sitemap_sync.timestamps import format_timestamp

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100

SINGLE_FOUND = "found"
SINGLE_NOT_FOUND = "not_found"
SINGLE_ERROR = "error"


@dataclass
class FetchResult:
    """Records returned for one collection/language listing."""
    entries: List[Dict[str, Any]] = field(default_factory=list)
    complete: bool = True


@dataclass
class SingleResult:
    """Outcome of fetching one single-type record."""
    status: str
    entry: Optional[Dict[str, Any]] = None

    @property
    def found(self) -> bool:
        return self.status == SINGLE_FOUND


def entry_attributes(entry: Dict[str, Any]) -> Dict[str, Any]:
    """
    Return the field dict of a Strapi record.

    Strapi v4 nests fields under "attributes"; v5 returns them flat.
    """
    if not isinstance(entry, dict):
        return {}
    attributes = entry.get("attributes")
    if isinstance(attributes, dict):
        return attributes
    return entry


class CmsFetcher:
    """
    2.0 CmsFetcher Class
    Reads content records from Strapi with built-in retry logic.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, session: Optional[requests.Session] = None):
        """
        2.1 Initialize the fetcher.

        Args:
            config: Configuration dictionary with keys:
                - api_url: Strapi base URL (required)
                - api_token: Bearer token
                - page_size: Records per page (default: 100)
                - timeout: Request timeout in seconds (default: 30)
                - max_retries: Number of retry attempts (default: 3)
            session: Optional pre-built session (tests)
        """
        config = config or {}

        self.api_url = str(config.get("api_url", "")).rstrip("/")
        self.api_token = config.get("api_token")
        self.page_size = int(config.get("page_size", DEFAULT_PAGE_SIZE))
        self.timeout = config.get("timeout", 30)
        self.max_retries = config.get("max_retries", 3)
        self.request_count = 0

        self.session = session or self._create_session_with_retries()
        if self.api_token:
            self.session.headers.update({"Authorization": f"Bearer {self.api_token}"})

        logger.info(
            f"CmsFetcher initialized: api={self.api_url}, "
            f"page_size={self.page_size}, timeout={self.timeout}s"
        )

    def _create_session_with_retries(self) -> requests.Session:
        """
        2.2 Create a requests Session with automatic retry logic.

        Retries 429/5xx and connection errors with 1s, 2s, 4s backoff.
        """
        session = requests.Session()

        retry_strategy = Retry(
            total=self.max_retries,
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"],
            raise_on_status=False,
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        session.headers.update({"Accept": "application/json"})

        return session

    def _get(self, api_slug: str, params: Dict[str, Any]) -> requests.Response:
        self.request_count += 1
        return self.session.get(f"{self.api_url}/api/{api_slug}", params=params, timeout=self.timeout)

    # =========================================================================
    # 3.0 COLLECTION TYPES
    # =========================================================================

    def fetch_collection_entries(
        self,
        api_slug: str,
        language: str,
        since: Optional[datetime] = None,
    ) -> FetchResult:
        """
        3.1 Fetch every live record of a collection type for one language.

        Args:
            api_slug: Strapi API id of the collection (e.g. "news-articles")
            language: Locale to fetch
            since: When set, only records updated strictly after it

        Returns:
            FetchResult with all accumulated records. complete is False when
            a request failed part way; the pages fetched so far are kept.
        """
        scope = f" since {format_timestamp(since)}" if since else " (full fetch)"
        logger.info(f"Fetching collection {api_slug} for language: {language}{scope}")

        params: Dict[str, Any] = {
            "locale": language,
            "fields[0]": "slug",
            "fields[1]": "updatedAt",
            "fields[2]": "locale",
            "pagination[page]": 1,
            "pagination[pageSize]": self.page_size,
            "sort[0]": "updatedAt:desc",
            "publicationState": "live",
        }
        if since is not None:
            params["filters[updatedAt][$gt]"] = format_timestamp(since)

        result = FetchResult()
        page = 1
        total_pages = 1

        try:
            while page <= total_pages:
                params["pagination[page]"] = page
                response = self._get(api_slug, params)

                if response.status_code != 200:
                    logger.error(
                        f"Failed to fetch {api_slug} ({language}) page {page}: "
                        f"status={response.status_code}"
                    )
                    result.complete = False
                    break

                payload = response.json()
                data = payload.get("data") if isinstance(payload, dict) else None
                if not data:
                    break

                result.entries.extend(data)
                pagination = (payload.get("meta") or {}).get("pagination") or {}
                if page == 1 and pagination.get("pageCount"):
                    total_pages = int(pagination["pageCount"])

                logger.info(
                    f"Fetched page {page}/{total_pages} for {api_slug} ({language}) - {len(data)} items"
                )
                page += 1

        except requests.exceptions.Timeout:
            logger.error(f"Timeout fetching {api_slug} ({language}) after {self.timeout}s")
            result.complete = False
        except requests.exceptions.ConnectionError as e:
            logger.error(f"Connection error fetching {api_slug} ({language}): {e}")
            result.complete = False
        except requests.exceptions.RequestException as e:
            logger.error(f"Request error fetching {api_slug} ({language}): {e}")
            result.complete = False
        except ValueError as e:
            logger.error(f"Invalid JSON for {api_slug} ({language}): {e}")
            result.complete = False

        logger.info(
            f"Finished fetching collection {api_slug} for {language}. "
            f"Total entries: {len(result.entries)}"
            + ("" if result.complete else " (incomplete)")
        )
        return result

    # =========================================================================
    # 4.0 SINGLE TYPES
    # =========================================================================

    def fetch_single_entry(self, api_slug: str, language: str) -> SingleResult:
        """
        4.1 Fetch the current published record of a single type.

        Returns:
            SingleResult with status:
                - found: record exists and has publishedAt
                - not_found: 404, empty payload, or unpublished
                - error: network failure or unexpected HTTP status
        """
        logger.info(f"Fetching single type {api_slug} for language: {language}")

        params = {
            "locale": language,
            "fields[0]": "updatedAt",
            "fields[1]": "locale",
            "fields[2]": "publishedAt",
            "publicationState": "live",
        }

        try:
            response = self._get(api_slug, params)
        except requests.exceptions.Timeout:
            logger.error(f"Timeout fetching single type {api_slug} ({language}) after {self.timeout}s")
            return SingleResult(SINGLE_ERROR)
        except requests.exceptions.RequestException as e:
            logger.error(f"Error fetching single type {api_slug} ({language}): {e}")
            return SingleResult(SINGLE_ERROR)

        if response.status_code == 404:
            logger.info(f"Single type {api_slug} ({language}) not found (404).")
            return SingleResult(SINGLE_NOT_FOUND)

        if response.status_code != 200:
            logger.error(
                f"Error fetching single type {api_slug} ({language}): status={response.status_code}"
            )
            return SingleResult(SINGLE_ERROR)

        try:
            payload = response.json()
        except ValueError as e:
            logger.error(f"Invalid JSON for single type {api_slug} ({language}): {e}")
            return SingleResult(SINGLE_ERROR)

        entry = payload.get("data") if isinstance(payload, dict) else None
        if isinstance(entry, dict) and entry_attributes(entry).get("publishedAt"):
            return SingleResult(SINGLE_FOUND, entry)

        logger.info(f"Single type {api_slug} ({language}) not found or not published.")
        return SingleResult(SINGLE_NOT_FOUND)
