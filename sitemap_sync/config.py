import logging
import os
from typing import Any, Dict, List, Mapping, Optional

from dotenv import load_dotenv

from sitemap_sync.content_types import load_content_types
from sitemap_sync.reconciler import VALID_MODES
from sitemap_sync.sitemap_writer import (
    DEFAULT_MAX_URLS_PER_FILE,
    DEFAULT_PUBLIC_PATH,
    PROTOCOL_MAX_URLS,
)
from sitemap_sync.cms_fetcher import DEFAULT_PAGE_SIZE

logger = logging.getLogger(__name__)

REQUIRED_ENV_VARS = ["STRAPI_API_URL", "STRAPI_API_TOKEN", "SITE_BASE_URL", "SITEMAP_OUTPUT_DIR"]

DEFAULT_LOG_FILE = "sitemap_sync.log"


def parse_languages(value: Optional[str]) -> List[str]:
    """Split a comma-separated language list; the first entry is the default."""
    languages = []
    for lang in (value or "en").split(","):
        lang = lang.strip()
        if lang and lang not in languages:
            languages.append(lang)
    return languages


def _int_setting(env: Mapping[str, str], name: str, default: int) -> Optional[int]:
    raw = env.get(name)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        return int(str(raw).strip())
    except ValueError:
        logger.error(f"{name} must be an integer, got '{raw}'.")
        return None


def load_config(env: Optional[Mapping[str, str]] = None, dotenv_path: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    Loads the configuration from the environment (and a .env file if present).

    Returns None when a required setting is missing or invalid; every problem
    is logged before returning.
    """
    if env is None:
        load_dotenv(dotenv_path=dotenv_path)
        env = os.environ

    missing = [name for name in REQUIRED_ENV_VARS if not str(env.get(name, "")).strip()]
    if missing:
        logger.error(f"Missing required environment variables: {', '.join(missing)}")
        return None

    page_size = _int_setting(env, "STRAPI_PAGE_SIZE", DEFAULT_PAGE_SIZE)
    max_urls = _int_setting(env, "SITEMAP_URL_LIMIT", DEFAULT_MAX_URLS_PER_FILE)
    grace_runs = _int_setting(env, "SITEMAP_SINGLE_REMOVAL_GRACE_RUNS", 1)
    timeout = _int_setting(env, "STRAPI_TIMEOUT", 30)
    max_retries = _int_setting(env, "STRAPI_MAX_RETRIES", 3)
    if None in (page_size, max_urls, grace_runs, timeout, max_retries):
        return None

    languages = parse_languages(env.get("LANGUAGES"))
    content_types_file = str(env.get("SITEMAP_CONTENT_TYPES_FILE", "")).strip() or None
    try:
        content_types = load_content_types(content_types_file, languages)
    except ValueError as e:
        logger.error(f"Invalid content types: {e}")
        return None

    config_data = {
        "api_url": env["STRAPI_API_URL"].strip().rstrip("/"),
        "api_token": env["STRAPI_API_TOKEN"].strip(),
        "site_base_url": env["SITE_BASE_URL"].strip().rstrip("/"),
        "output_dir": env["SITEMAP_OUTPUT_DIR"].strip(),
        "languages": languages,
        "mode": str(env.get("SITEMAP_GENERATION_MODE", "full")).strip().lower() or "full",
        "page_size": page_size,
        "max_urls_per_file": max_urls,
        "public_path": str(env.get("SITEMAP_PUBLIC_PATH", DEFAULT_PUBLIC_PATH)).strip(),
        "content_types": content_types,
        "change_log_dir": str(env.get("SITEMAP_CHANGE_LOG_DIR", "")).strip() or None,
        "single_removal_grace_runs": grace_runs,
        "timeout": timeout,
        "max_retries": max_retries,
        "log_file": str(env.get("SITEMAP_LOG_FILE", DEFAULT_LOG_FILE)).strip() or None,
    }

    if not validate_config(config_data):
        return None
    logger.info("Successfully loaded configuration from environment")
    return config_data


def validate_config(config: Dict[str, Any]) -> bool:
    """Validates the structure and content of the configuration."""
    if not isinstance(config, dict):
        logger.error("Configuration must be a dictionary.")
        return False

    valid = True

    for key in ("api_url", "site_base_url"):
        value = config.get(key, "")
        if not isinstance(value, str) or not value.startswith(("http://", "https://")):
            logger.error(f"'{key}' must be an absolute http(s) URL, got '{value}'.")
            valid = False

    if not config.get("languages"):
        logger.error("'languages' must contain at least one language.")
        valid = False

    if config.get("mode") not in VALID_MODES:
        logger.error(f"'mode' must be one of {VALID_MODES}, got '{config.get('mode')}'.")
        valid = False

    if not isinstance(config.get("page_size"), int) or config["page_size"] < 1:
        logger.error("'page_size' must be a positive integer.")
        valid = False

    max_urls = config.get("max_urls_per_file")
    if not isinstance(max_urls, int) or not 1 <= max_urls <= PROTOCOL_MAX_URLS:
        logger.error(f"'max_urls_per_file' must be between 1 and {PROTOCOL_MAX_URLS}.")
        valid = False

    if not isinstance(config.get("single_removal_grace_runs"), int) or config["single_removal_grace_runs"] < 1:
        logger.error("'single_removal_grace_runs' must be at least 1.")
        valid = False

    if not config.get("content_types"):
        logger.warning("No content types declared. Only an empty sitemap set can be produced.")

    if valid:
        logger.info("Configuration validation successful.")
    return valid
