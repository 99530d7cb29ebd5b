"""The TaxaSync reconciliation pipeline.

Runs the stages in order: normalize catalog names, match them against the
registry, arbitrate the matches, assemble the taxonomy table and derive the
review reports. Each stage consumes the previous stage's immutable output.
"""

import logging
from typing import FrozenSet, Iterable, Optional

from taxasync.arbiter import arbitrate
from taxasync.config import Config, config as default_config
from taxasync.hierarchy import assemble_taxonomy_table
from taxasync.matcher import match_names
from taxasync.normalizer import NameNormalizer
from taxasync.registry.base import TaxonomicRegistry
from taxasync.reports import build_review_reports
from taxasync.types.data_classes import SyncResult

logger = logging.getLogger(__name__)


def run_pipeline(
    catalog_names: Iterable[str],
    registry: TaxonomicRegistry,
    excluded_ids: Optional[FrozenSet[str]] = None,
    normalizer: Optional[NameNormalizer] = None,
    settings: Optional[Config] = None,
    show_progress: bool = True,
) -> SyncResult:
    """Reconcile catalog names against a registry.

    Args:
        catalog_names: Raw names from the catalog source
        registry: Registry providing lookup and bulk retrieval
        excluded_ids: Identifiers to suppress
        normalizer: Name normalizer; defaults to the built-in substitutions
        settings: Configuration to use instead of the global one
        show_progress: Whether to show progress bars

    Returns:
        SyncResult holding every intermediate and final artifact
    """
    settings = settings or default_config
    excluded_ids = excluded_ids or frozenset()

    normalizer = normalizer or NameNormalizer()

    names = normalizer.normalize_all(catalog_names)
    logger.info(f"Normalized catalog to {len(names):,} distinct names")

    records = match_names(
        names,
        registry,
        return_all_candidates=settings.return_all_candidates,
        workers=settings.lookup_workers,
        batch_timeout=settings.batch_timeout,
        show_progress=show_progress,
    )

    arbitration = arbitrate(
        records,
        excluded_ids,
        accept_all_candidates=settings.accept_all_candidates,
    )

    assembly = assemble_taxonomy_table(
        arbitration.accepted_ids,
        registry,
        excluded_ids=excluded_ids,
        include_synonyms=settings.include_synonyms,
        include_descendants=settings.include_descendants,
        fill_missing_ancestors=settings.fill_missing_ancestors,
        batch_size=settings.fetch_batch_size,
        max_depth=settings.max_hierarchy_depth,
        show_progress=show_progress,
    )

    reports = build_review_reports(assembly, arbitration)

    return SyncResult(
        names=tuple(names),
        match_records=tuple(records),
        arbitration=arbitration,
        assembly=assembly,
        reports=reports,
    )
