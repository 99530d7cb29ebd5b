"""Catalog sources for TaxaSync.

A catalog source returns the distinct scientific names currently in use by
the organization. The production source is the SHARK API; a file-based
source reads names from a local table.
"""

import logging
from pathlib import Path
from typing import Optional, Set, Union

import polars as pl
import requests

from taxasync.config import config
from taxasync.errors import ConfigurationError

logger = logging.getLogger(__name__)


class CatalogSource:
    """Base class for catalog sources."""

    def list_distinct_names(self) -> Set[str]:
        """Return the distinct scientific names of the catalog."""
        raise NotImplementedError("Subclasses must implement list_distinct_names")


class SharkCatalogSource(CatalogSource):
    """Names from the ``taxa`` list of the SHARK API options endpoint."""

    def __init__(self, options_url: Optional[str] = None, timeout: Optional[float] = None):
        self.options_url = options_url or config.shark_options_url
        self.timeout = timeout or config.request_timeout

    def list_distinct_names(self) -> Set[str]:
        logger.info(f"Fetching catalog names from {self.options_url}")
        try:
            response = requests.get(self.options_url, timeout=self.timeout)
            response.raise_for_status()
            options = response.json()
        except (requests.RequestException, ValueError) as e:
            raise ConfigurationError(f"Cannot read catalog from {self.options_url}: {e}")

        taxa = options.get("taxa") if isinstance(options, dict) else None
        if not isinstance(taxa, list):
            raise ConfigurationError(f"Catalog response from {self.options_url} has no 'taxa' list")

        names = {str(name) for name in taxa if name is not None}
        logger.info(f"Catalog lists {len(names):,} distinct names")
        return names


class FileCatalogSource(CatalogSource):
    """Names from a local file.

    ``.txt`` files hold one name per line. Other files are read as
    delimited tables (tab-separated unless the extension is ``.csv``) with a
    ``scientific_name`` column.
    """

    def __init__(self, path: Union[str, Path], column: str = "scientific_name"):
        self.path = Path(path)
        self.column = column

    def list_distinct_names(self) -> Set[str]:
        if not self.path.exists():
            raise ConfigurationError(f"Catalog file not found: {self.path}")

        if self.path.suffix.lower() == ".txt":
            lines = self.path.read_text(encoding="utf-8").splitlines()
            names = {line for line in lines if line.strip()}
        else:
            separator = "," if self.path.suffix.lower() == ".csv" else "\t"
            try:
                df = pl.read_csv(self.path, separator=separator, infer_schema_length=0)
            except pl.exceptions.PolarsError as e:
                raise ConfigurationError(f"Cannot read catalog file {self.path}: {e}")
            if self.column not in df.columns:
                raise ConfigurationError(f"Catalog file {self.path} has no '{self.column}' column")
            names = {n for n in df.get_column(self.column).to_list() if n is not None}

        logger.info(f"Catalog file {self.path} lists {len(names):,} distinct names")
        return names
