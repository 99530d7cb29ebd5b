"""Dyntaxa client for TaxaSync.

This module talks to the Artdatabanken API that serves Dyntaxa, the Swedish
taxonomic database. Name lookups go to the taxon-name search endpoint and are
cached on disk; bulk record retrieval is answered from the Dyntaxa Darwin
Core archive, downloaded once into the cache directory.
"""

import logging
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import polars as pl
import requests

from taxasync.cache_manager import compute_request_checksum, load_cache, make_cache_key, save_cache
from taxasync.config import config
from taxasync.errors import ConfigurationError, RegistryError
from taxasync.registry.base import TaxonomicRegistry
from taxasync.registry.dwca import DwcaTaxonIndex, download_dwca
from taxasync.types.data_classes import Candidate, MatchRecord

logger = logging.getLogger(__name__)

DWCA_FILENAME = "dyntaxa_dwca.zip"

# Bump when the cached candidate representation changes
LOOKUP_CACHE_VERSION = 1


def _rank_label(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        return value.get("value") or value.get("name")
    if value is None:
        return None
    return str(value)


def parse_lookup_response(query_name: str, payload: Any) -> List[Candidate]:
    """Turn a taxon-name search response into ranked candidates.

    Only names equal to the query (ignoring case) count as candidates; the
    search endpoint also returns names that merely start with the query.
    Recommended names are ranked ahead of the others, otherwise the
    registry's order is kept.

    Raises:
        RegistryError: If the payload does not have the expected structure
    """
    if isinstance(payload, dict):
        items = payload.get("data", [])
        if not isinstance(items, list):
            raise RegistryError(f"Unexpected lookup response for {query_name!r}: data is {type(items).__name__}")
    elif isinstance(payload, list):
        items = payload
    else:
        raise RegistryError(f"Unexpected lookup response for {query_name!r}: {type(payload).__name__}")

    wanted = query_name.casefold()
    candidates: List[Candidate] = []
    seen = set()
    for item in items:
        if not isinstance(item, dict):
            continue
        name = item.get("name")
        info = item.get("taxonInformation") or {}
        if not isinstance(info, dict):
            raise RegistryError(f"Unexpected taxonInformation for {query_name!r}: {type(info).__name__}")
        taxon_id = info.get("taxonId", item.get("taxonId"))
        if not name or taxon_id is None or name.casefold() != wanted:
            continue

        candidate = Candidate(
            name=name,
            taxon_id=str(taxon_id),
            author=item.get("author") or None,
            valid_name=info.get("recommendedScientificName") or None,
            valid_author=info.get("recommendedScientificNameAuthor") or None,
            rank=_rank_label(info.get("taxonCategory")),
            is_recommended=item.get("isRecommended"),
        )
        identity = (candidate.name, candidate.taxon_id, candidate.author)
        if identity in seen:
            continue
        seen.add(identity)
        candidates.append(candidate)

    # sorted() is stable, so ties keep the registry's order
    return sorted(candidates, key=lambda c: c.is_recommended is not True)


class DyntaxaRegistry(TaxonomicRegistry):
    """Registry backed by the Dyntaxa API and its Darwin Core archive."""

    def __init__(
        self,
        api_key: str,
        lookup_url: Optional[str] = None,
        dwca_url: Optional[str] = None,
        dwca_path: Optional[Union[str, Path]] = None,
        use_cache: bool = True,
        refresh_cache: bool = False,
    ):
        """Initialize the Dyntaxa client.

        Args:
            api_key: Artdatabanken subscription key
            lookup_url: Override for the taxon-name search endpoint
            dwca_url: Override for the Darwin Core archive download endpoint
            dwca_path: Local archive or taxon file to use instead of downloading
            use_cache: Whether to read and write the lookup cache
            refresh_cache: Ignore cached lookups and the cached archive
        """
        if not api_key:
            raise ConfigurationError("A Dyntaxa API key is required")
        self.api_key = api_key
        self.lookup_url = lookup_url or config.lookup_url
        self.dwca_url = dwca_url or config.dwca_url
        self.dwca_path = Path(dwca_path) if dwca_path else None
        self.use_cache = use_cache
        self.refresh_cache = refresh_cache
        self._index: Optional[DwcaTaxonIndex] = None
        self._lookup_checksum = compute_request_checksum(
            self.lookup_url,
            {
                "culture": config.lookup_culture,
                "page_size": config.lookup_page_size,
                "version": LOOKUP_CACHE_VERSION,
            },
        )

    @property
    def headers(self) -> Dict[str, str]:
        return {"Ocp-Apim-Subscription-Key": self.api_key}

    def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> requests.Response:
        """GET with the retry budget applied to transient failures.

        Raises:
            ConfigurationError: If the credential is rejected
            RegistryError: If the request still fails after all retries
        """
        last_error = None
        attempts = config.max_retries + 1
        for attempt in range(attempts):
            if attempt:
                time.sleep(config.retry_backoff * 2 ** (attempt - 1))
            try:
                response = requests.get(url, params=params, headers=self.headers,
                                        timeout=config.request_timeout)
            except (requests.ConnectionError, requests.Timeout) as e:
                last_error = str(e)
                logger.debug(f"Attempt {attempt + 1}/{attempts} for {url} failed: {e}")
                continue
            except requests.RequestException as e:
                raise RegistryError(f"Registry request to {url} failed: {e}")

            if response.status_code in (401, 403):
                raise ConfigurationError(
                    f"Registry rejected the API key (HTTP {response.status_code})"
                )
            if response.status_code == 429 or response.status_code >= 500:
                last_error = f"HTTP {response.status_code}"
                logger.debug(f"Attempt {attempt + 1}/{attempts} for {url} returned {last_error}")
                continue
            if response.status_code >= 400:
                raise RegistryError(f"Registry returned HTTP {response.status_code} for {url}",
                                    status_code=response.status_code)
            return response

        raise RegistryError(f"Registry request failed after {attempts} attempts: {last_error}")

    def _search(self, name: str) -> List[Candidate]:
        params = {
            "searchString": name,
            "searchFields": "Both",
            "isRecommended": "NotSet",
            "isOkForObservationSystems": "NotSet",
            "culture": config.lookup_culture,
            "page": 1,
            "pageSize": config.lookup_page_size,
        }
        response = self._get(self.lookup_url, params=params)
        try:
            payload = response.json()
        except ValueError as e:
            raise RegistryError(f"Invalid JSON in lookup response for {name!r}: {e}")
        return parse_lookup_response(name, payload)

    def lookup(self, name: str, return_all_candidates: bool = True) -> MatchRecord:
        cache_key = make_cache_key("lookup", name)
        candidates = None
        if self.use_cache and not self.refresh_cache:
            candidates = load_cache(cache_key, self._lookup_checksum)

        if candidates is None:
            candidates = self._search(name)
            if self.use_cache:
                save_cache(cache_key, candidates, self._lookup_checksum, metadata={"name": name})

        if not return_all_candidates:
            candidates = candidates[:1]
        return MatchRecord.from_candidates(name, list(candidates))

    def _archive_path(self) -> Path:
        if self.dwca_path is not None:
            return self.dwca_path

        path = Path(config.cache_base_dir) / DWCA_FILENAME
        stale = False
        if path.exists() and config.cache_max_age is not None:
            stale = time.time() - path.stat().st_mtime > config.cache_max_age
        if self.refresh_cache or stale or not path.exists():
            download_dwca(self.dwca_url, path, api_key=self.api_key, timeout=config.download_timeout)
        else:
            logger.info(f"Using cached Darwin Core archive {path}")
        return path

    @property
    def taxon_index(self) -> DwcaTaxonIndex:
        """The Darwin Core index, loaded on first use."""
        if self._index is None:
            self._index = DwcaTaxonIndex.from_path(self._archive_path(),
                                                   max_depth=config.max_hierarchy_depth)
        return self._index

    def fetch_records(
        self,
        ids: Iterable[str],
        include_synonyms: bool = True,
        include_descendants: bool = True,
        fill_missing_ancestors: bool = True,
    ) -> pl.DataFrame:
        return self.taxon_index.select(
            ids,
            include_synonyms=include_synonyms,
            include_descendants=include_descendants,
            fill_missing_ancestors=fill_missing_ancestors,
        )
