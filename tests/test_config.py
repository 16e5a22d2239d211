"""
CONFIG TESTS - environment loading, validation and content type catalogs
"""

import json

import pytest

from sitemap_sync.config import load_config, parse_languages, validate_config
from sitemap_sync.content_types import (
    DEFAULT_CONTENT_TYPES,
    KIND_COLLECTION,
    KIND_SINGLE,
    ContentType,
    load_content_types,
    validate_content_types,
)

REQUIRED = {
    "STRAPI_API_URL": "https://cms.example.com/",
    "STRAPI_API_TOKEN": "token",
    "SITE_BASE_URL": "https://www.example.com/",
    "SITEMAP_OUTPUT_DIR": "out",
}


def test_defaults():
    config = load_config(env=dict(REQUIRED))
    assert config["api_url"] == "https://cms.example.com"
    assert config["site_base_url"] == "https://www.example.com"
    assert config["languages"] == ["en"]
    assert config["mode"] == "full"
    assert config["page_size"] == 100
    assert config["max_urls_per_file"] == 45000
    assert config["single_removal_grace_runs"] == 1
    assert config["change_log_dir"] is None
    assert config["content_types"] == DEFAULT_CONTENT_TYPES


@pytest.mark.parametrize("missing", sorted(REQUIRED))
def test_missing_required_setting(missing):
    env = dict(REQUIRED)
    env[missing] = "  "
    assert load_config(env=env) is None


def test_overrides():
    env = dict(REQUIRED, LANGUAGES=" fr, en ,fr,", SITEMAP_GENERATION_MODE="Incremental",
               SITEMAP_URL_LIMIT="1000", STRAPI_PAGE_SIZE="25", SITEMAP_SINGLE_REMOVAL_GRACE_RUNS="2")
    config = load_config(env=env)
    assert config["languages"] == ["fr", "en"]
    assert config["mode"] == "incremental"
    assert config["max_urls_per_file"] == 1000
    assert config["page_size"] == 25
    assert config["single_removal_grace_runs"] == 2


@pytest.mark.parametrize("name,value", [
    ("SITEMAP_GENERATION_MODE", "partial"),
    ("SITEMAP_URL_LIMIT", "60000"),
    ("SITEMAP_URL_LIMIT", "lots"),
    ("STRAPI_PAGE_SIZE", "0"),
    ("SITE_BASE_URL", "www.example.com"),
    ("SITEMAP_SINGLE_REMOVAL_GRACE_RUNS", "0"),
])
def test_invalid_settings(name, value):
    assert load_config(env=dict(REQUIRED, **{name: value})) is None


def test_parse_languages_default():
    assert parse_languages(None) == ["en"]
    assert parse_languages("") == ["en"]


def test_validate_rejects_non_dict():
    assert validate_config([]) is False


# =============================================================================
# CONTENT TYPE CATALOGS
# =============================================================================

def test_default_catalog_has_one_heartbeat_home_page():
    heartbeats = [ct for ct in load_content_types() if ct.always_include]
    assert [ct.api_slug for ct in heartbeats] == ["home-page"]
    assert heartbeats[0].path == ""


def test_catalog_file(tmp_path):
    path = tmp_path / "types.json"
    path.write_text(json.dumps([
        {"type": "collection", "apiSlug": "events", "pathPrefix": "/events/", "priority": "0.4", "changefreq": "weekly"},
        {"type": "single", "apiSlug": "home-page", "defaultUrlPath": "", "alwaysInclude": True},
    ]))
    config = load_config(env=dict(REQUIRED, SITEMAP_CONTENT_TYPES_FILE=str(path)))
    events, home = config["content_types"]
    assert events.path == "events"
    assert events.grouping_key == "events"
    assert home.grouping_key == "single-home-page"
    assert home.always_include


@pytest.mark.parametrize("catalog", [
    [{"type": "gallery", "apiSlug": "x"}],
    [{"type": "collection", "apiSlug": "x"}],
    [{"type": "collection", "apiSlug": "x", "pathPrefix": "x", "priority": "2"}],
    [{"type": "collection", "apiSlug": "x", "pathPrefix": "x", "changefreq": "sometimes"}],
    [{"type": "single", "apiSlug": "a"}, {"type": "single", "apiSlug": "a", "defaultUrlPath": "b"}],
    [{"type": "collection", "apiSlug": "x", "pathPrefix": "x", "alwaysInclude": True}],
    [{"type": "single", "apiSlug": "about-page", "defaultUrlPath": "about"},
     {"type": "single", "apiSlug": "about-us", "defaultUrlPath": "/about/"}],
    [{"type": "collection", "apiSlug": "news-articles", "pathPrefix": "news"},
     {"type": "single", "apiSlug": "featured", "defaultUrlPath": "news/featured"}],
    [{"type": "collection", "apiSlug": "news-articles", "pathPrefix": "news"},
     {"type": "collection", "apiSlug": "press", "pathPrefix": "news"}],
    [],
])
def test_invalid_catalogs(tmp_path, catalog):
    path = tmp_path / "types.json"
    path.write_text(json.dumps(catalog))
    assert load_config(env=dict(REQUIRED, SITEMAP_CONTENT_TYPES_FILE=str(path))) is None


def test_missing_catalog_file(tmp_path):
    assert load_config(env=dict(REQUIRED, SITEMAP_CONTENT_TYPES_FILE=str(tmp_path / "none.json"))) is None


@pytest.mark.parametrize("catalog", [
    [{"type": "single", "apiSlug": "french", "defaultUrlPath": "fr"}],
    [{"type": "collection", "apiSlug": "fr-news", "pathPrefix": "fr/news"}],
])
def test_catalog_path_starting_with_language_rejected(tmp_path, catalog):
    path = tmp_path / "types.json"
    path.write_text(json.dumps(catalog))
    env = dict(REQUIRED, LANGUAGES="en,fr", SITEMAP_CONTENT_TYPES_FILE=str(path))
    assert load_config(env=env) is None
    # the same catalog is fine when "fr" is not a configured language
    assert load_config(env=dict(env, LANGUAGES="en")) is not None


def test_non_overlapping_nested_paths_accepted():
    news = ContentType(KIND_COLLECTION, "news-articles", "news")
    validate_content_types([
        news,
        ContentType(KIND_SINGLE, "news-landing", "news"),
        ContentType(KIND_SINGLE, "news-archive", "news/archive/all"),
        ContentType(KIND_COLLECTION, "news-features", "news/features"),
    ], ["en", "fr"])


def test_single_under_collection_prefix_rejected():
    with pytest.raises(ValueError, match="can build the same URL"):
        validate_content_types([
            ContentType(KIND_COLLECTION, "news-articles", "news"),
            ContentType(KIND_SINGLE, "featured", "news/featured"),
        ])
