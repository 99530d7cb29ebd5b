"""Core data classes for TaxaSync.

This module defines the immutable data classes that flow through the
reconciliation pipeline. Each class represents the output of one stage.

Design Principles:
- Immutability: All classes are frozen to prevent modification after creation
- Clear Data Flow: Classes represent transformations of data through the workflow
- Fixed Schema: The output table is a record type, not a dynamically keyed map
"""

from dataclasses import dataclass, field, fields
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from taxasync.constants import TAXON_COLUMNS


@dataclass(frozen=True)
class Candidate:
    """A single candidate returned by the registry for a name lookup."""

    # The name string the registry matched
    name: str

    # Registry identifier of the taxon the name belongs to
    taxon_id: str

    author: Optional[str] = None

    # Currently accepted name of that taxon (differs from ``name`` for synonyms)
    valid_name: Optional[str] = None
    valid_author: Optional[str] = None

    rank: Optional[str] = None
    is_recommended: Optional[bool] = None


@dataclass(frozen=True)
class MatchRecord:
    """Result of looking up one normalized catalog name.

    ``taxon_id`` is None iff ``candidates`` is empty iff ``best_match`` is
    None. Use ``from_candidates`` or ``unmatched`` to build instances.
    """

    query_name: str
    candidates: Tuple[Candidate, ...] = ()
    best_match: Optional[str] = None
    taxon_id: Optional[str] = None
    valid_name: Optional[str] = None
    author: Optional[str] = None
    rank: Optional[str] = None

    # Message of the lookup failure that degraded this record, if any
    error: Optional[str] = None

    def __post_init__(self):
        has_candidates = len(self.candidates) > 0
        if has_candidates != (self.taxon_id is not None) or has_candidates != (self.best_match is not None):
            raise ValueError(
                f"Inconsistent match record for {self.query_name!r}: "
                "taxon_id, best_match and candidates must be all set or all empty"
            )

    @classmethod
    def from_candidates(cls, query_name: str, candidates: List[Candidate]) -> "MatchRecord":
        """Build a record whose best match is the registry's top-ranked candidate."""
        if not candidates:
            return cls.unmatched(query_name)
        best = candidates[0]
        return cls(
            query_name=query_name,
            candidates=tuple(candidates),
            best_match=best.name,
            taxon_id=best.taxon_id,
            valid_name=best.valid_name,
            author=best.author,
            rank=best.rank,
        )

    @classmethod
    def unmatched(cls, query_name: str, error: Optional[str] = None) -> "MatchRecord":
        """Build a record for a name with no match, optionally after a lookup failure."""
        return cls(query_name=query_name, error=error)

    @property
    def is_matched(self) -> bool:
        return self.taxon_id is not None

    def to_dict(self) -> Dict[str, Any]:
        """Flatten the record for tabular reports."""
        return {
            "query_name": self.query_name,
            "best_match": self.best_match,
            "author": self.author,
            "taxon_id": self.taxon_id,
            "valid_name": self.valid_name,
            "rank": self.rank,
            "candidate_count": len(self.candidates),
            "error": self.error,
        }


@dataclass(frozen=True)
class TaxonRecord:
    """One row of the output taxonomy table, keyed by ``taxon_id``."""

    # Identity
    taxon_id: str
    accepted_name_usage_id: Optional[str] = None
    parent_name_usage_id: Optional[str] = None

    # Descriptive
    scientific_name: Optional[str] = None
    taxon_rank: Optional[str] = None
    scientific_name_authorship: Optional[str] = None
    taxonomic_status: Optional[str] = None
    nomenclatural_status: Optional[str] = None
    taxon_remarks: Optional[str] = None

    # Classification
    kingdom: Optional[str] = None
    phylum: Optional[str] = None
    class_: Optional[str] = None  # Using class_ to avoid conflict with Python keyword
    order: Optional[str] = None
    family: Optional[str] = None
    genus: Optional[str] = None
    species: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "TaxonRecord":
        """Build a record from a row keyed by output column names."""
        values = {
            attr: _clean_value(row.get(column))
            for attr, column in zip(_TAXON_ATTRIBUTES, TAXON_COLUMNS)
        }
        if values["taxon_id"] is None:
            raise ValueError(f"Taxon row without taxonId: {row}")
        return cls(**values)

    def to_row(self) -> Dict[str, Optional[str]]:
        """Convert the record to a row keyed by output column names."""
        return {
            column: getattr(self, attr)
            for attr, column in zip(_TAXON_ATTRIBUTES, TAXON_COLUMNS)
        }

    @property
    def is_synonym(self) -> bool:
        return (
            self.accepted_name_usage_id is not None
            and self.accepted_name_usage_id != self.taxon_id
        )


# Attribute order matches TAXON_COLUMNS
_TAXON_ATTRIBUTES = [f.name for f in fields(TaxonRecord)]


def _clean_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value)
    return value if value != "" else None


@dataclass(frozen=True)
class DuplicateGroup:
    """Match rows that resolve to the same accepted name, for human review."""

    valid_name: Optional[str]
    records: Tuple[MatchRecord, ...]

    @property
    def taxon_ids(self) -> FrozenSet[str]:
        return frozenset(r.taxon_id for r in self.records if r.taxon_id is not None)


@dataclass(frozen=True)
class RetrievalGap:
    """An accepted identifier the registry could not return."""

    taxon_id: str
    reason: str


@dataclass(frozen=True)
class StructuralInconsistency:
    """A reference in the assembled table that does not resolve.

    ``field`` is the column holding the dangling reference, or ``"cycle"``
    when following parents loops back or exceeds the depth limit.
    """

    taxon_id: str
    field: str
    reference: Optional[str]


@dataclass(frozen=True)
class ArbitrationResult:
    """Independent views computed by the match arbiter."""

    filtered_records: Tuple[MatchRecord, ...]
    accepted_ids: FrozenSet[str]
    problem_duplicates: Tuple[MatchRecord, ...]
    unmatched: Tuple[MatchRecord, ...]
    excluded_records: Tuple[MatchRecord, ...] = ()


@dataclass(frozen=True)
class AssemblyResult:
    """The assembled taxonomy table and the problems found while building it."""

    records: Tuple[TaxonRecord, ...]
    retrieval_gaps: Tuple[RetrievalGap, ...] = ()
    inconsistencies: Tuple[StructuralInconsistency, ...] = ()
    excluded_ids: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def taxon_ids(self) -> List[str]:
        return [r.taxon_id for r in self.records]


@dataclass(frozen=True)
class ReviewReports:
    """Read-only review artifacts derived from arbitration and assembly."""

    genus_whitelist: Tuple[Tuple[str, str], ...]
    duplicate_rows: Tuple[Dict[str, Any], ...]
    unmatched_rows: Tuple[Dict[str, Any], ...]


@dataclass(frozen=True)
class SyncResult:
    """Everything one pipeline run produced."""

    names: Tuple[str, ...]
    match_records: Tuple[MatchRecord, ...]
    arbitration: ArbitrationResult
    assembly: AssemblyResult
    reports: ReviewReports
