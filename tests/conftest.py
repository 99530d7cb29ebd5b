import threading
from typing import Dict, Iterable, List, Optional, Set

import polars as pl
import pytest

from taxasync import cache_manager
from taxasync.config import config
from taxasync.errors import RegistryError
from taxasync.registry.base import TaxonomicRegistry
from taxasync.registry.dwca import DwcaTaxonIndex
from taxasync.types.data_classes import Candidate, MatchRecord


def taxon_frame(rows: List[dict]) -> pl.DataFrame:
    """Build a DwC taxon table from partial rows, filling absent columns with nulls."""
    columns = [
        "taxonId", "acceptedNameUsageID", "parentNameUsageID", "scientificName",
        "taxonRank", "scientificNameAuthorship", "taxonomicStatus",
        "kingdom", "phylum", "class", "order", "family", "genus",
    ]
    return pl.DataFrame(
        {c: [row.get(c) for row in rows] for c in columns},
        schema={c: pl.Utf8 for c in columns},
    )


DIATOM_ROWS = [
    {"taxonId": "1", "acceptedNameUsageID": "1", "scientificName": "Chromista",
     "taxonRank": "Kingdom", "taxonomicStatus": "accepted", "kingdom": "Chromista"},
    {"taxonId": "2", "acceptedNameUsageID": "2", "parentNameUsageID": "1",
     "scientificName": "Bacillariophyta", "taxonRank": "Phylum", "taxonomicStatus": "accepted"},
    {"taxonId": "3", "acceptedNameUsageID": "3", "parentNameUsageID": "2",
     "scientificName": "Bacillariophyceae", "taxonRank": "Class", "taxonomicStatus": "accepted"},
    {"taxonId": "4", "acceptedNameUsageID": "4", "parentNameUsageID": "3",
     "scientificName": "Bacillariales", "taxonRank": "Order", "taxonomicStatus": "accepted"},
    {"taxonId": "5", "acceptedNameUsageID": "5", "parentNameUsageID": "4",
     "scientificName": "Bacillariaceae", "taxonRank": "Family", "taxonomicStatus": "accepted"},
    {"taxonId": "101", "acceptedNameUsageID": "101", "parentNameUsageID": "5",
     "scientificName": "Nitzschia", "taxonRank": "Genus",
     "scientificNameAuthorship": "Hassall", "taxonomicStatus": "accepted"},
    {"taxonId": "102", "acceptedNameUsageID": "102", "parentNameUsageID": "101",
     "scientificName": "Nitzschia acicularis", "taxonRank": "Species",
     "scientificNameAuthorship": "(Kützing) W.Smith", "taxonomicStatus": "accepted"},
    {"taxonId": "103", "acceptedNameUsageID": "103", "parentNameUsageID": "101",
     "scientificName": "Nitzschia closterium", "taxonRank": "Species",
     "scientificNameAuthorship": "(Ehrenberg) W.Smith", "taxonomicStatus": "accepted"},
    {"taxonId": "104", "acceptedNameUsageID": "103",
     "scientificName": "Ceratoneis closterium", "taxonRank": "Species",
     "scientificNameAuthorship": "Ehrenberg", "taxonomicStatus": "synonym"},
    {"taxonId": "6", "acceptedNameUsageID": "6", "parentNameUsageID": "3",
     "scientificName": "Thalassiosirales", "taxonRank": "Order", "taxonomicStatus": "accepted"},
    {"taxonId": "7", "acceptedNameUsageID": "7", "parentNameUsageID": "6",
     "scientificName": "Skeletonemataceae", "taxonRank": "Family", "taxonomicStatus": "accepted"},
    {"taxonId": "201", "acceptedNameUsageID": "201", "parentNameUsageID": "7",
     "scientificName": "Skeletonema", "taxonRank": "Genus",
     "scientificNameAuthorship": "Greville", "taxonomicStatus": "accepted"},
    {"taxonId": "202", "acceptedNameUsageID": "202", "parentNameUsageID": "201",
     "scientificName": "Skeletonema marinoi", "taxonRank": "Species",
     "scientificNameAuthorship": "Sarno\u00a0& Zingone", "taxonomicStatus": "accepted"},
]

DIATOM_CANDIDATES: Dict[str, List[Candidate]] = {
    "Nitzschia": [
        Candidate(name="Nitzschia", taxon_id="101", author="Hassall",
                  valid_name="Nitzschia", rank="Genus", is_recommended=True),
    ],
    "Nitzschia acicularis": [
        Candidate(name="Nitzschia acicularis", taxon_id="102", author="(Kützing) W.Smith",
                  valid_name="Nitzschia acicularis", rank="Species", is_recommended=True),
    ],
    "Ceratoneis closterium": [
        Candidate(name="Ceratoneis closterium", taxon_id="104", author="Ehrenberg",
                  valid_name="Nitzschia closterium", rank="Species", is_recommended=False),
    ],
    "Skeletonema marinoi": [
        Candidate(name="Skeletonema marinoi", taxon_id="202", author="Sarno & Zingone",
                  valid_name="Skeletonema marinoi", rank="Species", is_recommended=True),
    ],
}


class FakeRegistry(TaxonomicRegistry):
    """In-memory registry answering lookups from a dict and fetches from a taxon table."""

    def __init__(
        self,
        candidates: Optional[Dict[str, List[Candidate]]] = None,
        taxa: Optional[pl.DataFrame] = None,
        failing_names: Iterable[str] = (),
        blocked_names: Iterable[str] = (),
        fail_fetch: bool = False,
    ):
        self.candidates = candidates or {}
        self.index = DwcaTaxonIndex(taxa, urn_prefix=None) if taxa is not None else None
        self.failing_names: Set[str] = set(failing_names)
        self.blocked_names: Set[str] = set(blocked_names)
        self.release = threading.Event()
        self.fail_fetch = fail_fetch
        self.lookups: List[str] = []
        self.fetch_calls: List[List[str]] = []

    def lookup(self, name: str, return_all_candidates: bool = True) -> MatchRecord:
        self.lookups.append(name)
        if name in self.blocked_names:
            self.release.wait(5)
        if name in self.failing_names:
            raise RegistryError(f"service unavailable for {name}")
        candidates = list(self.candidates.get(name, []))
        if not return_all_candidates:
            candidates = candidates[:1]
        return MatchRecord.from_candidates(name, candidates)

    def fetch_records(self, ids, include_synonyms=True, include_descendants=True,
                      fill_missing_ancestors=True) -> pl.DataFrame:
        ids = list(ids)
        self.fetch_calls.append(ids)
        if self.fail_fetch:
            raise RegistryError("bulk endpoint unavailable")
        return self.index.select(
            ids,
            include_synonyms=include_synonyms,
            include_descendants=include_descendants,
            fill_missing_ancestors=fill_missing_ancestors,
        )


@pytest.fixture(autouse=True)
def isolated_cache(tmp_path_factory):
    """Point the cache at a temporary directory for every test."""
    cache_root = tmp_path_factory.mktemp("cache")
    original_base = config.cache_base_dir
    original_dir = config.cache_dir
    config.cache_base_dir = str(cache_root)
    config.cache_dir = str(cache_root)
    try:
        yield cache_root
    finally:
        cache_manager._close_cache()
        config.cache_base_dir = original_base
        config.cache_dir = original_dir


@pytest.fixture
def diatom_taxa() -> pl.DataFrame:
    return taxon_frame(DIATOM_ROWS)


@pytest.fixture
def diatom_registry(diatom_taxa) -> FakeRegistry:
    return FakeRegistry(candidates=DIATOM_CANDIDATES, taxa=diatom_taxa)
