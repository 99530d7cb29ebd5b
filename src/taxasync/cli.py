"""TaxaSync command-line interface.

This module provides the command-line interface functionality for TaxaSync.
It includes the argument parser and command dispatching logic.
"""

import argparse
import sys
import time
import logging
from typing import FrozenSet, List, Optional, Tuple

from taxasync import __version__
from taxasync.config import config
from taxasync.constants import SYNC_STATS_FILENAME
from taxasync.errors import ConfigurationError
from taxasync.logging_config import setup_logging
from taxasync.cache_manager import clear_cache, get_cache_stats, set_cache_namespace
from taxasync.catalog import CatalogSource, FileCatalogSource, SharkCatalogSource
from taxasync.exclusion import load_exclusion_list
from taxasync.normalizer import NameNormalizer, load_substitutions
from taxasync.registry import DyntaxaRegistry
from taxasync.pipeline import run_pipeline
from taxasync.stats_collector import SyncStats
from taxasync.output_manager import write_stats, write_sync_outputs
from taxasync.manifest import delete_from_manifest, get_intended_files_for_sync, write_manifest

# -----------------------------------------------------------------------------
# Parser Setup
# -----------------------------------------------------------------------------
def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser with the 'sync' command."""
    parser = argparse.ArgumentParser(
        description="TaxaSync: Reconcile catalog taxon names against Dyntaxa and build a taxonomy table.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    # Global options for cache management and application metadata
    parser.add_argument(
        "--cache-stats",
        action="store_true",
        default=False,
        help="Display statistics about the cache and exit"
    )
    parser.add_argument(
        "--clear-cache",
        action="store_true",
        default=False,
        help="Clear the TaxaSync lookup cache. May be used in isolation."
    )
    parser.add_argument(
        "--show-config",
        action="store_true",
        help="Show current configuration and exit"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
        help="Show version number and exit"
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- 'sync' command ---
    parser_sync = subparsers.add_parser(
        "sync", help="Reconcile catalog names and write the taxonomy table and review reports"
    )
    parser_sync.add_argument(
        "-o", "--output-dir",
        type=str,
        required=True,
        help="Directory to save the taxonomy table and review reports"
    )
    parser_sync.add_argument(
        "-e", "--exclusion-list",
        type=str,
        required=True,
        help="Tab-separated file with a taxon_id column of identifiers to suppress"
    )
    parser_sync.add_argument(
        "--catalog",
        type=str,
        default=None,
        help="File of catalog names to use instead of the SHARK API"
    )
    parser_sync.add_argument(
        "--substitutions",
        type=str,
        default=None,
        help="Tab-separated file of extra pattern/replacement pairs for name normalization"
    )
    parser_sync.add_argument(
        "--dwca",
        type=str,
        default=None,
        help="Local Dyntaxa Darwin Core archive or Taxon.csv to use instead of downloading"
    )
    parser_sync.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
        help="Set logging level"
    )
    parser_sync.add_argument(
        "--log-file",
        type=str,
        help="Optional file to write logs to (in addition to console output)"
    )
    parser_sync.add_argument(
        "--full-rerun",
        action="store_true",
        default=False,
        help="Delete the outputs listed in a previous run's manifest before running"
    )

    dyntaxa_group = parser_sync.add_argument_group("Dyntaxa Settings")
    dyntaxa_group.add_argument(
        "--lookup-workers",
        type=int,
        default=None,
        help="Number of concurrent name lookups (default from TAXASYNC_LOOKUP_WORKERS)"
    )
    dyntaxa_group.add_argument(
        "--batch-timeout",
        type=float,
        default=None,
        help="Seconds to wait for all name lookups before marking the rest unmatched"
    )
    dyntaxa_group.add_argument(
        "--accept-all-candidates",
        action="store_true",
        default=config.accept_all_candidates,
        help="Accept every candidate of an ambiguous name instead of only the best match"
    )

    cache_group = parser_sync.add_argument_group("Cache Management")
    cache_group.add_argument(
        "--refresh-cache",
        action="store_true",
        default=False,
        help="Ignore cached lookups and the cached Darwin Core archive"
    )

    return parser


def print_cache_stats() -> None:
    stats = get_cache_stats()
    print("\nTaxaSync Cache Statistics:")
    for key, value in stats.items():
        print(f"  {key}: {value}")


def load_run_inputs(
    args: argparse.Namespace,
) -> Tuple[CatalogSource, FrozenSet[str], NameNormalizer]:
    """Resolve the catalog source, exclusion list and name normalizer.

    Raises:
        ConfigurationError: If any of the inputs is missing or unreadable
    """
    excluded_ids = load_exclusion_list(args.exclusion_list)

    extra = load_substitutions(args.substitutions) if args.substitutions else None
    normalizer = NameNormalizer(extra)

    if args.catalog:
        catalog: CatalogSource = FileCatalogSource(args.catalog)
    else:
        catalog = SharkCatalogSource()
    return catalog, excluded_ids, normalizer

# -----------------------------------------------------------------------------
# Dispatch Functions
# -----------------------------------------------------------------------------
def run_sync(args: argparse.Namespace) -> int:
    """Run the reconciliation workflow."""
    config.update_from_args(vars(args))
    config.ensure_directories()
    setup_logging(args.log_level, args.log_file)

    cache_namespace = set_cache_namespace(f"v{__version__}")

    start_time = time.time()
    try:
        api_key = config.require_api_key()
        catalog, excluded_ids, normalizer = load_run_inputs(args)
        registry = DyntaxaRegistry(
            api_key,
            dwca_path=args.dwca,
            refresh_cache=args.refresh_cache,
        )
        catalog_names = catalog.list_distinct_names()
    except ConfigurationError as e:
        logging.error(f"Configuration error: {e}")
        return 1

    # Previous outputs survive any configuration failure above
    if args.full_rerun:
        if delete_from_manifest(args.output_dir, "sync"):
            logging.info("Removed outputs of the previous run")
        else:
            logging.info("No previous manifest found; nothing to remove")

    logging.info(f"Starting TaxaSync with {len(catalog_names):,} catalog names")

    write_manifest(
        args.output_dir,
        "sync",
        __version__,
        catalog=args.catalog or config.shark_options_url,
        exclusion_list=args.exclusion_list,
        cache_namespace=str(cache_namespace),
        files=get_intended_files_for_sync(),
    )

    try:
        result = run_pipeline(
            catalog_names,
            registry,
            excluded_ids=excluded_ids,
            normalizer=normalizer,
        )
    except ConfigurationError as e:
        # Credentials rejected by the registry surface here
        logging.error(f"Configuration error: {e}")
        return 1

    generated_files = write_sync_outputs(result, args.output_dir)
    logging.info(f"Generated {len(generated_files)} output files:")
    for file_path in generated_files:
        logging.info(f"  {file_path}")

    stats = SyncStats.from_result(result, catalog_names=len(catalog_names))
    write_stats(stats.to_dict(), f"{args.output_dir}/{SYNC_STATS_FILENAME}")
    print(stats.generate_report())

    elapsed_time = time.time() - start_time
    logging.info(f"Processing completed in {elapsed_time:.2f} seconds")
    return 0

# -----------------------------------------------------------------------------
# Main Entry Point
# -----------------------------------------------------------------------------
def main(args: Optional[List[str]] = None) -> int:
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    try:
        config.validate()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    if parsed_args.show_config:
        print(config.get_config_summary())
        return 0

    if parsed_args.cache_stats:
        print_cache_stats()
        return 0

    if parsed_args.clear_cache:
        count = clear_cache()
        print(f"\nCleared {count} cache entries")
        if parsed_args.command is None:
            return 0

    if parsed_args.command == "sync":
        return run_sync(parsed_args)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
