"""Hierarchy assembly for TaxaSync.

This module turns the accepted identifier set into the output taxonomy
table. Records are fetched from the registry with synonym, descendant and
ancestor expansion, cleaned, projected to the fixed column set and checked
for internal consistency. Problems are collected in the result instead of
being raised: identifiers the registry cannot return become retrieval gaps,
and references that do not resolve become structural inconsistencies.
"""

import logging
from dataclasses import replace
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

import polars as pl
from tqdm import tqdm

from taxasync.constants import NBSP, RANK_TO_COLUMN, TAXON_COLUMNS, TAXON_ID_ALIASES
from taxasync.errors import RegistryError
from taxasync.registry.base import TaxonomicRegistry
from taxasync.types.data_classes import (
    AssemblyResult,
    RetrievalGap,
    StructuralInconsistency,
    TaxonRecord,
)

logger = logging.getLogger(__name__)

# Attribute names of the classification columns on TaxonRecord
_CLASSIFICATION_ATTRS = {
    "kingdom": "kingdom",
    "phylum": "phylum",
    "class": "class_",
    "order": "order",
    "family": "family",
    "genus": "genus",
    "species": "species",
}


def replace_nbsp(df: pl.DataFrame) -> pl.DataFrame:
    """Replace every no-break space with an ordinary space in all text columns."""
    text_columns = [name for name, dtype in df.schema.items() if dtype == pl.Utf8]
    if not text_columns:
        return df
    return df.with_columns(
        [pl.col(c).str.replace_all(NBSP, " ", literal=True) for c in text_columns]
    )


def project_columns(df: pl.DataFrame) -> pl.DataFrame:
    """Project a registry table onto the fixed output columns.

    Columns missing from the registry response are added as nulls; extra
    registry columns are discarded. Every column is returned as text.
    """
    if "taxonId" not in df.columns:
        alias = next((c for c in TAXON_ID_ALIASES if c in df.columns), None)
        if alias is not None:
            df = df.rename({alias: "taxonId"})

    exprs = []
    for column in TAXON_COLUMNS:
        if column in df.columns:
            exprs.append(pl.col(column).cast(pl.Utf8))
        else:
            exprs.append(pl.lit(None, dtype=pl.Utf8).alias(column))
    projected = df.select(exprs)
    # Empty strings and nulls are the same thing in the output
    return projected.with_columns(
        [pl.when(pl.col(c) == "").then(None).otherwise(pl.col(c)).alias(c) for c in TAXON_COLUMNS]
    )


def deduplicate_taxa(df: pl.DataFrame) -> pl.DataFrame:
    """Keep the first row for each taxonId and drop rows without one."""
    df = df.filter(pl.col("taxonId").is_not_null())
    before = df.height
    df = df.unique(subset=["taxonId"], keep="first", maintain_order=True)
    if df.height < before:
        logger.debug(f"Dropped {before - df.height:,} duplicate taxon rows")
    return df


def _batches(ids: Sequence[str], batch_size: int) -> Iterable[List[str]]:
    for i in range(0, len(ids), batch_size):
        yield list(ids[i:i + batch_size])


def fetch_taxa(
    accepted_ids: Iterable[str],
    registry: TaxonomicRegistry,
    include_synonyms: bool = True,
    include_descendants: bool = True,
    fill_missing_ancestors: bool = True,
    batch_size: int = 500,
    show_progress: bool = True,
) -> Tuple[pl.DataFrame, List[RetrievalGap]]:
    """Fetch registry records for the accepted identifiers in batches.

    A batch the registry fails to return makes each of its identifiers a
    retrieval gap; other batches are unaffected.

    Returns:
        Tuple of the projected, cleaned, deduplicated table and the gaps of
        failed batches
    """
    ids = sorted(accepted_ids)
    frames: List[pl.DataFrame] = []
    gaps: List[RetrievalGap] = []

    batches = list(_batches(ids, max(batch_size, 1)))
    iter_batches = tqdm(batches, desc="Fetching taxa") if show_progress and len(batches) > 1 else batches
    for batch in iter_batches:
        try:
            frame = registry.fetch_records(
                batch,
                include_synonyms=include_synonyms,
                include_descendants=include_descendants,
                fill_missing_ancestors=fill_missing_ancestors,
            )
        except RegistryError as e:
            logger.error(f"Failed to fetch {len(batch):,} taxa: {e}")
            gaps.extend(RetrievalGap(taxon_id=i, reason=f"registry error: {e}") for i in batch)
            continue
        frames.append(replace_nbsp(project_columns(frame)))

    if frames:
        table = deduplicate_taxa(pl.concat(frames, how="vertical"))
    else:
        table = pl.DataFrame(schema={c: pl.Utf8 for c in TAXON_COLUMNS})
    return table, gaps


def fill_classification(records: Sequence[TaxonRecord], max_depth: int = 64) -> List[TaxonRecord]:
    """Fill null classification columns from each record's ancestry chain.

    The chain starts at the record itself (or, for a synonym without a
    parent, at its accepted taxon) and follows ``parentNameUsageID``. An
    ancestor whose rank maps to a classification column supplies its
    scientific name to that column when the column is empty. Values already
    present are never overwritten.
    """
    by_id: Dict[str, TaxonRecord] = {r.taxon_id: r for r in records}
    filled: List[TaxonRecord] = []

    for record in records:
        missing = {col for col, attr in _CLASSIFICATION_ATTRS.items() if getattr(record, attr) is None}
        if not missing:
            filled.append(record)
            continue

        updates: Dict[str, str] = {}
        if record.is_synonym and record.parent_name_usage_id is None:
            node = by_id.get(record.accepted_name_usage_id)
        else:
            node = record
        visited = set()
        hops = 0
        while node is not None and node.taxon_id not in visited and hops <= max_depth and missing:
            visited.add(node.taxon_id)
            column = RANK_TO_COLUMN.get((node.taxon_rank or "").lower())
            if column in missing and node.scientific_name:
                updates[_CLASSIFICATION_ATTRS[column]] = node.scientific_name
                missing.discard(column)
            node = by_id.get(node.parent_name_usage_id) if node.parent_name_usage_id else None
            hops += 1

        if updates:
            record = replace(record, **updates)
        filled.append(record)

    return filled


def check_structure(records: Sequence[TaxonRecord], max_depth: int = 64) -> List[StructuralInconsistency]:
    """Report references that do not resolve within the table.

    Reports a dangling ``parentNameUsageID`` or ``acceptedNameUsageID``
    once per record, and each parent cycle (or chain longer than
    ``max_depth``) once.
    """
    by_id: Dict[str, TaxonRecord] = {r.taxon_id: r for r in records}
    issues: List[StructuralInconsistency] = []

    for record in records:
        parent = record.parent_name_usage_id
        if parent is not None and parent not in by_id:
            issues.append(StructuralInconsistency(record.taxon_id, "parentNameUsageID", parent))
        accepted = record.accepted_name_usage_id
        if accepted is not None and accepted not in by_id:
            issues.append(StructuralInconsistency(record.taxon_id, "acceptedNameUsageID", accepted))

    # Nodes whose parent chain has already been walked
    walked = set()
    reported_cycles = set()
    for record in records:
        path: List[str] = []
        on_path = set()
        current: Optional[str] = record.taxon_id
        while current is not None and current in by_id and current not in walked:
            if current in on_path:
                cycle = frozenset(path[path.index(current):])
                if cycle not in reported_cycles:
                    reported_cycles.add(cycle)
                    issues.append(StructuralInconsistency(min(cycle), "cycle", current))
                break
            if len(path) > max_depth:
                issues.append(StructuralInconsistency(record.taxon_id, "cycle", current))
                break
            path.append(current)
            on_path.add(current)
            current = by_id[current].parent_name_usage_id
        # Checked either way; descendants stop here instead of re-reporting
        walked.update(path)

    return issues


def assemble_taxonomy_table(
    accepted_ids: Iterable[str],
    registry: TaxonomicRegistry,
    excluded_ids: Optional[FrozenSet[str]] = None,
    include_synonyms: bool = True,
    include_descendants: bool = True,
    fill_missing_ancestors: bool = True,
    batch_size: int = 500,
    max_depth: int = 64,
    show_progress: bool = True,
) -> AssemblyResult:
    """Build the output taxonomy table from the accepted identifiers.

    Args:
        accepted_ids: Identifiers chosen by the arbiter
        registry: Registry providing bulk retrieval
        excluded_ids: Identifiers that must not appear in the table, even
            when pulled in as descendants or ancestors
        include_synonyms: Request synonym records
        include_descendants: Request descendant taxa
        fill_missing_ancestors: Request ancestors needed for complete chains
        batch_size: Number of identifiers per registry request
        max_depth: Limit on parent-chain length
        show_progress: Whether to show a progress bar

    Returns:
        AssemblyResult with the records, retrieval gaps and structural
        inconsistencies
    """
    accepted_ids = frozenset(accepted_ids)
    excluded_ids = excluded_ids or frozenset()

    table, gaps = fetch_taxa(
        accepted_ids,
        registry,
        include_synonyms=include_synonyms,
        include_descendants=include_descendants,
        fill_missing_ancestors=fill_missing_ancestors,
        batch_size=batch_size,
        show_progress=show_progress,
    )

    if excluded_ids:
        before = table.height
        table = table.filter(~pl.col("taxonId").is_in(sorted(excluded_ids)))
        if table.height < before:
            logger.info(f"Removed {before - table.height:,} excluded taxa from the table")

    present = set(table.get_column("taxonId").to_list())
    failed = {g.taxon_id for g in gaps}
    for taxon_id in sorted(accepted_ids - present - failed):
        gaps.append(RetrievalGap(taxon_id=taxon_id, reason="not returned by registry"))
    for gap in gaps:
        logger.warning(f"Retrieval gap for taxon {gap.taxon_id}: {gap.reason}")

    records = [TaxonRecord.from_row(row) for row in table.to_dicts()]
    records = fill_classification(records, max_depth=max_depth)

    issues = check_structure(records, max_depth=max_depth)
    for issue in issues:
        logger.warning(
            f"Structural inconsistency in taxon {issue.taxon_id}: {issue.field} -> {issue.reference}"
        )

    logger.info(
        f"Assembled {len(records):,} taxa from {len(accepted_ids):,} accepted ids "
        f"({len(gaps):,} retrieval gaps, {len(issues):,} structural inconsistencies)"
    )
    return AssemblyResult(
        records=tuple(records),
        retrieval_gaps=tuple(gaps),
        inconsistencies=tuple(issues),
        excluded_ids=excluded_ids,
    )
