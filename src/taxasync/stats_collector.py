"""Run statistics for TaxaSync."""

from dataclasses import asdict, dataclass
from typing import Any, Dict

from taxasync.types.data_classes import SyncResult


@dataclass
class SyncStats:
    """Counts describing one reconciliation run."""

    catalog_names: int = 0
    normalized_names: int = 0
    matched_names: int = 0
    unmatched_names: int = 0
    lookup_failures: int = 0
    ambiguous_names: int = 0
    excluded_match_rows: int = 0
    accepted_ids: int = 0
    accepted_ids_in_table: int = 0
    taxa: int = 0
    synonyms: int = 0
    genera: int = 0
    problem_duplicate_rows: int = 0
    retrieval_gaps: int = 0
    structural_inconsistencies: int = 0

    @classmethod
    def from_result(cls, result: SyncResult, catalog_names: int) -> "SyncStats":
        records = result.match_records
        return cls(
            catalog_names=catalog_names,
            normalized_names=len(result.names),
            matched_names=sum(1 for r in records if r.is_matched),
            unmatched_names=len(result.arbitration.unmatched),
            lookup_failures=sum(1 for r in records if r.error is not None),
            ambiguous_names=sum(1 for r in records if len(r.candidates) > 1),
            excluded_match_rows=len(result.arbitration.excluded_records),
            accepted_ids=len(result.arbitration.accepted_ids),
            accepted_ids_in_table=len(result.arbitration.accepted_ids & set(result.assembly.taxon_ids)),
            taxa=len(result.assembly.records),
            synonyms=sum(1 for r in result.assembly.records if r.is_synonym),
            genera=len(result.reports.genus_whitelist),
            problem_duplicate_rows=len(result.arbitration.problem_duplicates),
            retrieval_gaps=len(result.assembly.retrieval_gaps),
            structural_inconsistencies=len(result.assembly.inconsistencies),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def generate_report(self) -> str:
        """Return a human-readable summary of the run."""
        lines = ["", "TaxaSync run summary:"]
        for key, value in self.to_dict().items():
            label = key.replace("_", " ").capitalize()
            lines.append(f"  {label}: {value:,}")
        return "\n".join(lines)
