"""
1.0 Main Orchestrator Module
Coordinates one sitemap synchronization run.

Key features:
- Full mode: rebuild every sitemap from the CMS
- Incremental mode: reload previous sitemaps, fetch only changed collection
  items, confirm deletions, then rewrite
- Run state tracks the last successful run for the next incremental pass
- Optional monthly change log of discovered/modified/removed URLs
"""

import argparse
import logging
import os
import sys
import time
from typing import Any, Dict, List, Optional

from sitemap_sync.change_log import ChangeLog, detect_changes, summarize
from sitemap_sync.cms_fetcher import CmsFetcher
from sitemap_sync.config import load_config
from sitemap_sync.reconciler import (
    MODE_FULL,
    MODE_INCREMENTAL,
    VALID_MODES,
    Reconciler,
    SyncContext,
)
from sitemap_sync.sitemap_writer import SitemapWriter
from sitemap_sync.state_store import RunState, load_run_state, save_run_state, state_file_path
from sitemap_sync.timestamps import format_timestamp, utc_now

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """1.1 Log to stderr and, when configured, to a file."""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


def should_save_state(mode: str, fetched_something_new: bool, last_run) -> bool:
    """
    2.0 Decide whether the run timestamp advances.

    - full: always
    - incremental: when something was fetched, or there was no prior run
    """
    if mode == MODE_FULL:
        return True
    return fetched_something_new or last_run is None


def run_sync(config: Dict[str, Any], fetcher: Optional[CmsFetcher] = None) -> Dict[str, Any]:
    """
    3.0 Execute one synchronization run.

    Args:
        config: Validated configuration from load_config()
        fetcher: Optional pre-built CmsFetcher (tests)

    Returns:
        Summary dict: mode, urls, requests, files, state_saved, changes
    """
    mode = config["mode"]
    output_dir = config["output_dir"]
    os.makedirs(output_dir, exist_ok=True)

    ctx = SyncContext(
        content_types=config["content_types"],
        languages=config["languages"],
        site_base_url=config["site_base_url"],
        run_started=utc_now(),
    )
    logger.info(f"Run timestamp: {format_timestamp(ctx.run_started)}")

    # 3.1 Load state (incremental only)
    state_path = state_file_path(output_dir)
    prior_state = RunState()
    if mode == MODE_INCREMENTAL:
        prior_state = load_run_state(state_path)
        if prior_state.last_successful_run:
            logger.info(
                f"Incremental mode: Last successful run was at "
                f"{format_timestamp(prior_state.last_successful_run)}"
            )
        else:
            logger.warning(
                "Incremental mode: No last run timestamp. Performing a full fetch; "
                "consider running 'full' mode first."
            )

    # 3.2 Reconcile
    fetcher = fetcher or CmsFetcher(config=config)
    reconciler = Reconciler(
        fetcher=fetcher,
        ctx=ctx,
        single_removal_grace_runs=config.get("single_removal_grace_runs", 1),
    )
    outcome = reconciler.run(
        mode,
        output_dir,
        last_run=prior_state.last_successful_run,
        pending_removals=prior_state.pending_removals,
    )

    # 3.3 Write sitemaps
    writer = SitemapWriter(
        output_dir=output_dir,
        site_base_url=config["site_base_url"],
        max_urls_per_file=config.get("max_urls_per_file", 45000),
        public_path=config.get("public_path", "sitemaps"),
    )
    written = writer.write(outcome.url_set, generated_at=ctx.run_started)

    # 3.4 Change log
    changes = detect_changes(outcome.previous, outcome.url_set, ctx.run_started)
    change_counts = summarize(changes)
    logger.info(
        f"Changes: {change_counts['discovered']} discovered, "
        f"{change_counts['modified']} modified, {change_counts['removed']} removed"
    )
    if config.get("change_log_dir"):
        ChangeLog(config["change_log_dir"]).save(changes, ctx.run_started)

    # 3.5 Run state
    state_saved = False
    if should_save_state(mode, outcome.fetched_something_new, prior_state.last_successful_run):
        state_saved = save_run_state(
            state_path,
            RunState(last_successful_run=ctx.run_started, pending_removals=outcome.pending_removals),
        )
    elif outcome.pending_removals != prior_state.pending_removals:
        # Keep the old timestamp; only the grace-period counters moved
        save_run_state(
            state_path,
            RunState(
                last_successful_run=prior_state.last_successful_run,
                pending_removals=outcome.pending_removals,
            ),
        )
    else:
        logger.info("Incremental: nothing new fetched; last run timestamp unchanged")

    logger.info(f"CMS requests this run: {fetcher.request_count}")

    return {
        "mode": mode,
        "urls": len(outcome.url_set),
        "requests": fetcher.request_count,
        "files": written,
        "state_saved": state_saved,
        "changes": change_counts,
    }


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Generate XML sitemaps from Strapi content (full or incremental)"
    )
    parser.add_argument(
        "--mode", "-m",
        choices=VALID_MODES,
        default=None,
        help="Generation mode (default: SITEMAP_GENERATION_MODE or full)"
    )
    parser.add_argument(
        "--output-dir", "-o",
        default=None,
        help="Override SITEMAP_OUTPUT_DIR"
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (default: INFO)"
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """
    4.0 CLI entry point.

    Returns:
        0 on success (including partial fetch failures), 1 on configuration
        error or an unhandled failure
    """
    args = parse_args(argv)
    setup_logging(args.log_level)

    config = load_config()
    if not config:
        logger.error("Failed to load configuration. Exiting.")
        return 1

    if args.mode:
        config["mode"] = args.mode
    if args.output_dir:
        config["output_dir"] = args.output_dir

    if config.get("log_file"):
        setup_logging(args.log_level, config["log_file"])

    start = time.monotonic()
    logger.info("=" * 60)
    logger.info(f'Starting sitemap generation in "{config["mode"]}" mode...')
    logger.info("=" * 60)

    try:
        summary = run_sync(config)
    except Exception as e:
        logger.error(f"Sitemap generation ({config['mode']}) failed: {type(e).__name__}: {e}")
        logger.exception("Full traceback:")
        return 1

    logger.info("=" * 60)
    logger.info("Run Summary:")
    logger.info(f"  URLs: {summary['urls']}")
    logger.info(f"  Files: {len(summary['files'])}")
    logger.info(f"  CMS requests: {summary['requests']}")
    logger.info(f"  State saved: {summary['state_saved']}")
    logger.info(
        f"Sitemap generation ({config['mode']}) finished in {time.monotonic() - start:.1f}s!"
    )
    logger.info("=" * 60)
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
