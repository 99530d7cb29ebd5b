"""Base class for taxonomic registries.

A registry is the authoritative external source of taxa. TaxaSync consumes
two capabilities from it: name lookup, which returns ranked candidates for a
name, and bulk retrieval of taxon records by identifier with optional
synonym, descendant and ancestor expansion.
"""

from typing import Iterable

import polars as pl

from taxasync.types.data_classes import MatchRecord


class TaxonomicRegistry:
    """Interface every registry implementation provides.

    Implementations raise ``RegistryError`` when a request fails after
    retrying and ``ConfigurationError`` when the credential is rejected.
    """

    def lookup(self, name: str, return_all_candidates: bool = True) -> MatchRecord:
        """Look up a normalized name.

        Args:
            name: The normalized name to look up
            return_all_candidates: Whether to keep every plausible candidate
                rather than only the top-ranked one

        Returns:
            A MatchRecord whose candidates are ordered by the registry's ranking
        """
        raise NotImplementedError("Subclasses must implement lookup")

    def fetch_records(
        self,
        ids: Iterable[str],
        include_synonyms: bool = True,
        include_descendants: bool = True,
        fill_missing_ancestors: bool = True,
    ) -> pl.DataFrame:
        """Retrieve full taxon records for a set of identifiers.

        Args:
            ids: Registry identifiers to retrieve
            include_synonyms: Also return synonym records of the retrieved taxa
            include_descendants: Also return every descendant taxon
            fill_missing_ancestors: Also return ancestors needed to keep
                parent chains complete

        Returns:
            DataFrame with (at least) the taxon table columns
        """
        raise NotImplementedError("Subclasses must implement fetch_records")
