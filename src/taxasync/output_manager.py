"""Output generation for TaxaSync.

This module writes the taxonomy table and the review reports of a sync run.
The taxonomy table is UTF-8; the review reports use the configured report
encoding (latin-1 by default) so they open in the tools that consume them.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import polars as pl

from taxasync.config import config
from taxasync.constants import (
    DUPLICATES_FILENAME,
    INCONSISTENCIES_FILENAME,
    RETRIEVAL_GAPS_FILENAME,
    TAXON_COLUMNS,
    TAXON_TABLE_FILENAME,
    UNMATCHED_FILENAME,
    WHITELIST_FILENAME,
)
from taxasync.reports import DUPLICATE_REPORT_COLUMNS, UNMATCHED_REPORT_COLUMNS, WHITELIST_COLUMNS
from taxasync.types.data_classes import (
    RetrievalGap,
    StructuralInconsistency,
    SyncResult,
    TaxonRecord,
)

logger = logging.getLogger(__name__)

GAP_COLUMNS = ["taxon_id", "reason"]
INCONSISTENCY_COLUMNS = ["taxon_id", "field", "reference"]


def compute_output_paths() -> List[str]:
    """Return the output files of a sync run, relative to the output directory."""
    return [
        TAXON_TABLE_FILENAME,
        WHITELIST_FILENAME,
        DUPLICATES_FILENAME,
        UNMATCHED_FILENAME,
        RETRIEVAL_GAPS_FILENAME,
        INCONSISTENCIES_FILENAME,
    ]


def _rows_frame(rows: Sequence[Dict[str, Any]], columns: List[str]) -> pl.DataFrame:
    schema = {c: pl.Utf8 for c in columns}
    if not rows:
        return pl.DataFrame(schema=schema)
    return pl.from_dicts(
        [{c: None if row.get(c) is None else str(row.get(c)) for c in columns} for row in rows],
        schema=schema,
    )


def _write_tsv(df: pl.DataFrame, path: Path, encoding: str = "utf-8") -> None:
    """Write a tab-separated table without quoting, nulls as empty strings."""
    text = df.write_csv(separator="\t", null_value="", quote_style="never")
    path.write_bytes(text.encode(encoding, errors="replace"))


def taxon_table_frame(records: Sequence[TaxonRecord]) -> pl.DataFrame:
    """Return the taxonomy table with the fixed column set."""
    return _rows_frame([r.to_row() for r in records], TAXON_COLUMNS)


def write_taxon_table(records: Sequence[TaxonRecord], path: Union[str, Path]) -> Path:
    path = Path(path)
    _write_tsv(taxon_table_frame(records), path)
    logger.info(f"Wrote {len(records):,} taxa to {path}")
    return path


def write_report(
    rows: Sequence[Dict[str, Any]],
    columns: List[str],
    path: Union[str, Path],
    encoding: Optional[str] = None,
) -> Path:
    """Write report rows as an unquoted TSV in the report encoding.

    Characters that the encoding cannot represent are replaced.
    """
    path = Path(path)
    _write_tsv(_rows_frame(rows, columns), path, encoding or config.report_encoding)
    logger.info(f"Wrote {len(rows):,} rows to {path}")
    return path


def write_gaps(gaps: Sequence[RetrievalGap], path: Union[str, Path]) -> Path:
    rows = [{"taxon_id": g.taxon_id, "reason": g.reason} for g in gaps]
    return write_report(rows, GAP_COLUMNS, path, encoding="utf-8")


def write_inconsistencies(issues: Sequence[StructuralInconsistency], path: Union[str, Path]) -> Path:
    rows = [{"taxon_id": i.taxon_id, "field": i.field, "reference": i.reference} for i in issues]
    return write_report(rows, INCONSISTENCY_COLUMNS, path, encoding="utf-8")


def write_sync_outputs(result: SyncResult, output_dir: Union[str, Path]) -> List[str]:
    """Write every output file of a sync run.

    Args:
        result: The pipeline result
        output_dir: Directory to write to, created if missing

    Returns:
        List of written file paths
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    reports = result.reports

    whitelist_rows = [
        {"scientific_name": name, "rank": rank} for name, rank in reports.genus_whitelist
    ]

    written = [
        write_taxon_table(result.assembly.records, output_dir / TAXON_TABLE_FILENAME),
        write_report(whitelist_rows, WHITELIST_COLUMNS, output_dir / WHITELIST_FILENAME),
        write_report(reports.duplicate_rows, DUPLICATE_REPORT_COLUMNS, output_dir / DUPLICATES_FILENAME),
        write_report(reports.unmatched_rows, UNMATCHED_REPORT_COLUMNS, output_dir / UNMATCHED_FILENAME),
        write_gaps(result.assembly.retrieval_gaps, output_dir / RETRIEVAL_GAPS_FILENAME),
        write_inconsistencies(result.assembly.inconsistencies, output_dir / INCONSISTENCIES_FILENAME),
    ]
    return [str(p) for p in written]


def write_stats(stats: Dict[str, Any], path: Union[str, Path]) -> Path:
    path = Path(path)
    path.write_text(json.dumps(stats, indent=4))
    logger.info(f"Run statistics written to {path}")
    return path
