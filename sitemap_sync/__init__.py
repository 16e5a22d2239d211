"""
CMS Sitemap Sync - Source Package

Modules:
- config: Environment configuration loading and validation
- content_types: Declared CMS content types and their sitemap hints
- url_builder: Canonical URL construction and location classification
- cms_fetcher: Strapi fetching with retry logic
- sitemap_codec: XML encoding/decoding for urlsets and sitemap indexes
- reconciler: Full and incremental reconciliation of the URL set
- sitemap_writer: Partitioned sitemap files plus the sitemap index
- state_store: Last successful run state
- change_log: Discovered/modified/removed URL tracking
"""

__version__ = "1.0.0"
