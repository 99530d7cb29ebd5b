"""Registry matching for TaxaSync.

This module looks up every normalized catalog name in the taxonomic registry
and returns one MatchRecord per name, in input order. A failing lookup only
affects its own name, which is reported as unmatched.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError, as_completed
from typing import Dict, List, Optional, Sequence

from tqdm import tqdm

from taxasync.errors import RegistryError
from taxasync.registry.base import TaxonomicRegistry
from taxasync.types.data_classes import MatchRecord

logger = logging.getLogger(__name__)

TIMEOUT_ERROR = "lookup timed out"


def lookup_name(registry: TaxonomicRegistry, name: str, return_all_candidates: bool = True) -> MatchRecord:
    """Look up a single name, degrading registry failures to an unmatched record."""
    try:
        return registry.lookup(name, return_all_candidates=return_all_candidates)
    except RegistryError as e:
        logger.warning(f"Lookup failed for '{name}': {e}")
        return MatchRecord.unmatched(name, error=str(e))


def match_names(
    names: Sequence[str],
    registry: TaxonomicRegistry,
    return_all_candidates: bool = True,
    workers: int = 1,
    batch_timeout: Optional[float] = None,
    show_progress: bool = True,
) -> List[MatchRecord]:
    """Match a sequence of normalized names against the registry.

    Args:
        names: Normalized names to look up
        registry: Registry providing the lookup capability
        return_all_candidates: Request every plausible candidate per name
        workers: Number of concurrent lookups; 1 runs them sequentially
        batch_timeout: Seconds after which outstanding lookups are abandoned
        show_progress: Whether to show a progress bar

    Returns:
        One MatchRecord per input name, in input order
    """
    if not names:
        return []

    if workers <= 1 and batch_timeout is None:
        iter_names = tqdm(names, desc="Matching names") if show_progress else names
        records = [lookup_name(registry, name, return_all_candidates) for name in iter_names]
    else:
        records = _match_concurrently(names, registry, return_all_candidates,
                                      max(workers, 1), batch_timeout, show_progress)

    matched = sum(1 for r in records if r.is_matched)
    failed = sum(1 for r in records if r.error is not None)
    logger.info(f"Matched {matched:,} of {len(records):,} names ({failed:,} lookup failures)")
    return records


def _match_concurrently(
    names: Sequence[str],
    registry: TaxonomicRegistry,
    return_all_candidates: bool,
    workers: int,
    batch_timeout: Optional[float],
    show_progress: bool,
) -> List[MatchRecord]:
    # Slots are filled by index so completion order never leaks into the output
    results: List[Optional[MatchRecord]] = [None] * len(names)
    progress = tqdm(total=len(names), desc="Matching names", disable=not show_progress)

    executor = ThreadPoolExecutor(max_workers=workers)
    futures: Dict[Future, int] = {
        executor.submit(lookup_name, registry, name, return_all_candidates): index
        for index, name in enumerate(names)
    }
    try:
        for future in as_completed(futures, timeout=batch_timeout):
            results[futures[future]] = future.result()
            progress.update(1)
    except TimeoutError:
        pending = sum(1 for r in results if r is None)
        logger.warning(f"Batch timeout after {batch_timeout}s; {pending:,} lookups abandoned")
    finally:
        progress.close()
        # Queued lookups are dropped; running ones finish in the background
        executor.shutdown(wait=False, cancel_futures=True)

    return [
        record if record is not None else MatchRecord.unmatched(names[index], error=TIMEOUT_ERROR)
        for index, record in enumerate(results)
    ]
