"""Command-line interface for the scraper."""

import argparse
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv

from oilscrape.backoff import BackoffPolicy
from oilscrape.config import (
    CATEGORY_URLS,
    DATA_DIR,
    DEFAULT_MAX_PAGES,
    MAX_PAGES_PER_CATEGORY,
    OUTPUT_CSV_PATH,
    get_category_profile,
)
from oilscrape.csv_utils import export_products_to_csv
from oilscrape.errors import DriverInitError, PersistenceError
from oilscrape.logging_config import get_logger, setup_logging
from oilscrape.pipeline import open_session
from oilscrape.shutdown import get_shutdown_handler
from oilscrape.store import CategoryStore
from oilscrape.workflows import collect_stats, crawl_categories, refresh_incomplete, scrape_urls

__all__ = ["main", "parse_args", "show_stats"]

logger = get_logger("cli")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="dōTERRA Taiwan product scraper with category-partitioned JSON storage",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Crawl all categories (max 10 listing pages each)
  oilscrape

  # Crawl single oils from listing page 3
  oilscrape --categories single-oils --start-page 3

  # Continue every category after the last page recorded
  oilscrape --resume --overnight

  # Scrape specific products
  oilscrape --url https://www.doterra.com/TW/zh_TW/p/lavender-oil

  # Re-scrape records missing description, benefits, usage or price
  oilscrape --refresh-incomplete

  # List what would be scraped without extracting anything
  oilscrape --categories wellness --dry-run

  # Show store statistics / export the aggregate view
  oilscrape --stats
  oilscrape --export-csv data/all_products.csv
        """,
    )

    # Category selection and pagination
    parser.add_argument(
        "--categories",
        nargs="+",
        choices=list(CATEGORY_URLS.keys()),
        help="Categories to crawl (default: all)",
    )
    parser.add_argument(
        "--start-page",
        type=int,
        default=0,
        help="Zero-based listing page to start from (default: 0)",
    )
    parser.add_argument(
        "--resume",
        action="store_true",
        help="Start each category after the last page recorded in scrape_state.json",
    )
    parser.add_argument(
        "--max-pages",
        type=int,
        default=DEFAULT_MAX_PAGES,
        help=f"Maximum listing pages per category (default: {DEFAULT_MAX_PAGES}, max: {MAX_PAGES_PER_CATEGORY})",
    )

    # Driver
    parser.add_argument(
        "--driver",
        choices=["playwright", "static"],
        default="playwright",
        help="playwright: headless Chromium (default); static: plain HTTP without scripts",
    )
    parser.add_argument(
        "--headed",
        action="store_true",
        help="Show the browser window",
    )
    parser.add_argument(
        "--overnight",
        action="store_true",
        help="Use long randomized delays between products",
    )

    # Alternative workflows
    parser.add_argument(
        "--url",
        action="append",
        metavar="URL",
        help="Scrape this detail URL (repeatable); --categories gives the partition hint",
    )
    parser.add_argument(
        "--refresh-incomplete",
        action="store_true",
        help="Re-scrape stored records with missing detail fields",
    )

    # Storage
    parser.add_argument(
        "--data-dir",
        default=DATA_DIR,
        help=f"Directory holding the category JSON files (default: {DATA_DIR})",
    )

    # Info and maintenance commands
    parser.add_argument(
        "--stats",
        action="store_true",
        help="Show store statistics and exit",
    )
    parser.add_argument(
        "--list-categories",
        action="store_true",
        help="List available categories and exit",
    )
    parser.add_argument(
        "--export-csv",
        nargs="?",
        const=OUTPUT_CSV_PATH,
        metavar="PATH",
        help=f"Export the aggregate view to CSV and exit (default path: {OUTPUT_CSV_PATH})",
    )
    parser.add_argument(
        "--rebuild-aggregate",
        action="store_true",
        help="Regenerate all-products.json from the partitions and exit",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Discover listing pages only; no extraction and no writes",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Debug output on the console",
    )

    return parser.parse_args(argv)


def show_stats(store: CategoryStore) -> None:
    """Print record counts, coverage and scrape state."""
    stats = collect_stats(store)

    print(f"\n{'='*50}")
    print(f"Data directory: {store.data_dir}")
    print(f"{'='*50}")

    print(f"\nTotal products: {stats['total']} (aggregate: {stats['aggregate']})")
    if stats["aggregate"] != stats["total"]:
        print("  Aggregate is stale; run with --rebuild-aggregate")

    print("\nProducts by category:")
    for partition, count in stats["partitions"].items():
        profile = get_category_profile(partition) or {}
        print(f"  {partition} ({profile.get('display_name', '')}): {count}")

    print("\nField coverage:")
    for attr, (filled, total) in stats["coverage"].items():
        pct = (filled / total * 100) if total else 0.0
        print(f"  {attr}: {filled}/{total} ({pct:.0f}%)")
    print(f"  incomplete records: {stats['incomplete']}")

    print("\nScrape state:")
    if stats["state"]:
        for category, state in stats["state"].items():
            print(f"  {category}: page {state.get('last_page_scraped')}"
                  f" (at {state.get('last_scraped_at', '?')})")
    else:
        print("  No scraping history yet")
    print()


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for CLI."""
    load_dotenv()
    args = parse_args(argv)
    setup_logging(level=logging.DEBUG if args.verbose else logging.INFO)

    # Handle info commands
    if args.list_categories:
        print("Available categories:")
        for key, url in CATEGORY_URLS.items():
            profile = get_category_profile(key) or {}
            print(f"  {key} ({profile.get('display_name', '')}): {url}")
        return

    store = CategoryStore(args.data_dir)

    if args.stats:
        show_stats(store)
        return

    if args.rebuild_aggregate:
        count = store.rebuild_aggregate()
        print(f"Rebuilt {store.aggregate_path} with {count} products")
        return

    if args.export_csv:
        store.rebuild_aggregate()
        count = export_products_to_csv(store.read_aggregate(), args.export_csv)
        print(f"Exported {count} products to {args.export_csv}")
        return

    policy = BackoffPolicy.overnight() if args.overnight else BackoffPolicy()
    max_pages = min(args.max_pages, MAX_PAGES_PER_CATEGORY)
    handler = get_shutdown_handler().install()

    try:
        with open_session(
            store=store,
            driver_kind=args.driver,
            headless=not args.headed,
            policy=policy,
            dry_run=args.dry_run,
        ) as session:
            if args.url:
                hint = args.categories[0] if args.categories else None
                counts = scrape_urls(session, args.url, category=hint)
                print(f"\nURLs: {counts}")
            elif args.refresh_incomplete:
                counts = refresh_incomplete(session, args.categories)
                print(f"\nRefresh: {counts}")
            else:
                summaries = crawl_categories(
                    session,
                    categories=args.categories,
                    start_page=args.start_page,
                    resume=args.resume,
                    max_pages=max_pages,
                )
                for summary in summaries:
                    print(f"  {summary['category']}: {summary['pages']} pages, "
                          f"{summary['links']} links ({summary['status']})")

            stats = session.stats
            print(f"\nRun summary: {stats.summary()}")
            if stats.errors:
                print(f"\n{len(stats.errors)} products failed:")
                for error in stats.errors[:20]:
                    print(f"  {error['url']}: {error['error']}")
    except DriverInitError as e:
        print(f"Cannot start browser: {e}", file=sys.stderr)
        print("Install it with: playwright install chromium", file=sys.stderr)
        sys.exit(1)
    except PersistenceError as e:
        logger.critical(f"Stopping: {e}")
        sys.exit(2)
    finally:
        handler.uninstall()

    if not args.dry_run:
        print(f"\nProducts saved to: {store.data_dir}")
        print("\nTo export to CSV, run:")
        print(f"  oilscrape --export-csv {OUTPUT_CSV_PATH}")


if __name__ == "__main__":
    main()
