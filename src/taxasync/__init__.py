"""TaxaSync: reconcile a species catalog against a taxonomic registry.

TaxaSync matches the scientific names of an observation catalog (SHARK) to
the Dyntaxa taxonomic registry and builds an internally consistent taxonomy
table, a genus whitelist and review reports for ambiguous and unmatched
names.
"""

__version__ = "0.1.0"

from taxasync.types.data_classes import (
    Candidate,
    MatchRecord,
    TaxonRecord,
    DuplicateGroup,
    RetrievalGap,
    StructuralInconsistency,
)

__all__ = [
    "Candidate",
    "MatchRecord",
    "TaxonRecord",
    "DuplicateGroup",
    "RetrievalGap",
    "StructuralInconsistency",
]
