"""Review reports for TaxaSync.

Builds the genus whitelist from the assembled table and flattens the
arbiter's problem duplicates and unmatched names into report rows. Reports
are read-only outputs; nothing here feeds back into table construction.
"""

import logging
from typing import Any, Dict, List, Sequence, Tuple

from taxasync.constants import GENUS_RANK, WHITELIST_RANK_TAG
from taxasync.types.data_classes import (
    ArbitrationResult,
    AssemblyResult,
    MatchRecord,
    ReviewReports,
    TaxonRecord,
)

logger = logging.getLogger(__name__)

DUPLICATE_REPORT_COLUMNS = ["query_name", "best_match", "author", "taxon_id", "valid_name", "rank"]
UNMATCHED_REPORT_COLUMNS = ["query_name", "error"]
WHITELIST_COLUMNS = ["scientific_name", "rank"]


def build_genus_whitelist(records: Sequence[TaxonRecord]) -> List[Tuple[str, str]]:
    """Return the sorted, distinct genus names of the table tagged with ``rank``."""
    genera = {
        r.scientific_name
        for r in records
        if r.taxon_rank == GENUS_RANK and r.scientific_name is not None
    }
    return [(name, WHITELIST_RANK_TAG) for name in sorted(genera)]


def duplicate_report_rows(duplicates: Sequence[MatchRecord]) -> List[Dict[str, Any]]:
    """One report row per problem-duplicate match row."""
    return [
        {column: record.to_dict()[column] for column in DUPLICATE_REPORT_COLUMNS}
        for record in duplicates
    ]


def unmatched_report_rows(unmatched: Sequence[MatchRecord]) -> List[Dict[str, Any]]:
    """One report row per unmatched name, with the lookup error if there was one."""
    return [{"query_name": r.query_name, "error": r.error} for r in unmatched]


def build_review_reports(assembly: AssemblyResult, arbitration: ArbitrationResult) -> ReviewReports:
    """Derive all review reports of a run."""
    whitelist = build_genus_whitelist(assembly.records)
    logger.info(f"Genus whitelist contains {len(whitelist):,} genera")
    return ReviewReports(
        genus_whitelist=tuple(whitelist),
        duplicate_rows=tuple(duplicate_report_rows(arbitration.problem_duplicates)),
        unmatched_rows=tuple(unmatched_report_rows(arbitration.unmatched)),
    )
