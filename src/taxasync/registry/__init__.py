"""Taxonomic registry clients.

This package provides the registry interface consumed by the matcher and
the hierarchy assembler, and its Dyntaxa implementation.
"""

from taxasync.registry.base import TaxonomicRegistry
from taxasync.registry.dwca import DwcaTaxonIndex, read_taxon_table
from taxasync.registry.dyntaxa_client import DyntaxaRegistry

__all__ = [
    "TaxonomicRegistry",
    "DwcaTaxonIndex",
    "DyntaxaRegistry",
    "read_taxon_table",
]
