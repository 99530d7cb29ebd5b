"""Match arbitration for TaxaSync.

Given the match records of a run, the arbiter computes three independent
views:

- the accepted identifier set, after removing excluded taxa;
- the problem duplicates, names whose matches need human adjudication;
- the unmatched names.

Each step is a pure function over an immutable list of records. Duplicate
detection and unmatched extraction always look at the unfiltered records.
"""

import logging
from collections import Counter, defaultdict
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence

from taxasync.types.data_classes import ArbitrationResult, DuplicateGroup, MatchRecord

logger = logging.getLogger(__name__)


def filter_excluded(records: Sequence[MatchRecord], excluded_ids: FrozenSet[str]) -> List[MatchRecord]:
    """Remove records whose taxon identifier is on the exclusion list."""
    return [r for r in records if r.taxon_id is None or r.taxon_id not in excluded_ids]


def accepted_identifiers(records: Iterable[MatchRecord]) -> FrozenSet[str]:
    """Return the distinct non-null taxon identifiers of the records."""
    return frozenset(r.taxon_id for r in records if r.taxon_id is not None)


def expand_candidates(records: Sequence[MatchRecord]) -> List[MatchRecord]:
    """Split each record into one single-candidate record per candidate.

    Records without candidates are passed through unchanged, so unmatched
    names keep their place.
    """
    expanded: List[MatchRecord] = []
    for record in records:
        if not record.candidates:
            expanded.append(record)
            continue
        for candidate in record.candidates:
            expanded.append(MatchRecord.from_candidates(record.query_name, [candidate]))
    return expanded


def _group_by(records: Sequence[MatchRecord], key) -> Dict[object, List[MatchRecord]]:
    groups: Dict[object, List[MatchRecord]] = defaultdict(list)
    for record in records:
        groups[key(record)].append(record)
    return groups


def find_problem_duplicates(records: Sequence[MatchRecord]) -> List[MatchRecord]:
    """Find match rows that need human adjudication.

    1. Keep rows whose ``best_match`` is shared with at least one other row.
    2. Of those, keep rows whose ``(best_match, taxon_id)`` pair occurs only
       once, dropping repeats of the same identifier under the same name.
    3. Of those, keep rows whose ``valid_name`` is shared with another row:
       distinct names or identifiers converging on one accepted name.

    Rows are returned in their original order.
    """
    by_best_match = _group_by(records, lambda r: r.best_match)
    shared_name = [r for r in records if len(by_best_match[r.best_match]) > 1]

    pair_counts = Counter((r.best_match, r.taxon_id) for r in shared_name)
    distinct_ids = [r for r in shared_name if pair_counts[(r.best_match, r.taxon_id)] == 1]

    by_valid_name = _group_by(distinct_ids, lambda r: r.valid_name)
    return [r for r in distinct_ids if len(by_valid_name[r.valid_name]) > 1]


def group_problem_duplicates(duplicates: Sequence[MatchRecord]) -> List[DuplicateGroup]:
    """Partition problem duplicates into groups sharing one accepted name."""
    groups = _group_by(duplicates, lambda r: r.valid_name)
    return [DuplicateGroup(valid_name=name, records=tuple(rows)) for name, rows in groups.items()]


def find_unmatched(records: Sequence[MatchRecord]) -> List[MatchRecord]:
    """Return the records for which the registry returned no identifier."""
    return [r for r in records if r.taxon_id is None]


def arbitrate(
    records: Sequence[MatchRecord],
    excluded_ids: Optional[FrozenSet[str]] = None,
    accept_all_candidates: bool = False,
) -> ArbitrationResult:
    """Compute the accepted identifiers and the review views of a run.

    Args:
        records: One match record per looked-up name
        excluded_ids: Taxon identifiers to suppress
        accept_all_candidates: Accept every candidate of a name instead of
            only the registry's best match

    Returns:
        ArbitrationResult bundling the filtered records, accepted ids,
        problem duplicates and unmatched records
    """
    excluded_ids = excluded_ids or frozenset()
    records = tuple(records)
    candidate_rows = expand_candidates(records)

    # Step A/B: exclusion filtering and accepted-id extraction
    source_rows = candidate_rows if accept_all_candidates else list(records)
    filtered = filter_excluded(source_rows, excluded_ids)
    excluded = tuple(r for r in source_rows if r.taxon_id is not None and r.taxon_id in excluded_ids)
    accepted = accepted_identifiers(filtered)

    # Step C: duplicates over every candidate so ambiguous names reach review
    duplicates = find_problem_duplicates(candidate_rows)
    for group in group_problem_duplicates(duplicates):
        logger.info(f"Problem duplicate '{group.valid_name}': taxon ids {sorted(group.taxon_ids)}")

    # Step D
    unmatched = find_unmatched(records)

    logger.info(
        f"Accepted {len(accepted):,} identifiers; excluded {len(excluded):,} match rows; "
        f"{len(duplicates):,} problem duplicate rows; {len(unmatched):,} unmatched names"
    )
    return ArbitrationResult(
        filtered_records=tuple(filtered),
        accepted_ids=accepted,
        problem_duplicates=tuple(duplicates),
        unmatched=tuple(unmatched),
        excluded_records=excluded,
    )
