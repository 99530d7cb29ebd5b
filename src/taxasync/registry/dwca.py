"""Darwin Core taxon tables.

Dyntaxa publishes its full taxonomy as a Darwin Core archive. This module
downloads and reads the archive's taxon file and indexes it so identifier
sets can be expanded with synonyms, descendants and missing ancestors.
"""

import io
import logging
import zipfile
from collections import defaultdict
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Union

import polars as pl
import requests

from taxasync.constants import DYNTAXA_TAXON_URN_PREFIX, TAXON_ID_ALIASES
from taxasync.errors import ConfigurationError, RegistryError

logger = logging.getLogger(__name__)

REFERENCE_COLUMNS = ("taxonId", "parentNameUsageID", "acceptedNameUsageID")


def download_dwca(url: str, dest: Path, api_key: Optional[str] = None, timeout: float = 600.0) -> Path:
    """Download a Darwin Core archive to ``dest``.

    A partial file is removed when the download fails.

    Raises:
        ConfigurationError: If the registry rejects the credential
        RegistryError: If the download fails
    """
    dest.parent.mkdir(parents=True, exist_ok=True)
    headers = {"Ocp-Apim-Subscription-Key": api_key} if api_key else {}
    tmp_path = dest.with_suffix(dest.suffix + ".part")

    logger.info(f"Downloading Darwin Core archive into cache -> {dest}")
    try:
        with requests.get(url, headers=headers, stream=True, timeout=timeout) as resp:
            if resp.status_code in (401, 403):
                raise ConfigurationError(
                    f"Registry rejected the API key while downloading {url} (HTTP {resp.status_code})"
                )
            resp.raise_for_status()
            with open(tmp_path, "wb") as f:
                for chunk in resp.iter_content(chunk_size=1024 * 1024):
                    if chunk:
                        f.write(chunk)
    except requests.RequestException as e:
        if tmp_path.exists():
            tmp_path.unlink()
        raise RegistryError(f"Failed to download Darwin Core archive from {url}: {e}")

    tmp_path.replace(dest)
    logger.info(f"Download complete ({dest.stat().st_size / (1024 * 1024):.1f} MB)")
    return dest


def _read_taxon_bytes(data: bytes, source: str) -> pl.DataFrame:
    first_line = data.split(b"\n", 1)[0]
    separator = "\t" if b"\t" in first_line else ","
    try:
        return pl.read_csv(
            io.BytesIO(data),
            separator=separator,
            quote_char=None if separator == "\t" else '"',
            infer_schema_length=0,
            encoding="utf8-lossy",
        )
    except pl.exceptions.PolarsError as e:
        raise RegistryError(f"Cannot parse taxon table {source}: {e}")


def read_taxon_table(path: Union[str, Path]) -> pl.DataFrame:
    """Read the taxon file from a Darwin Core archive or a bare taxon file.

    Args:
        path: A ``.zip`` archive containing ``Taxon.csv``, or the taxon file itself

    Returns:
        DataFrame with every column read as text
    """
    path = Path(path)
    if not path.exists():
        raise RegistryError(f"Taxon table not found: {path}")

    if zipfile.is_zipfile(path):
        try:
            with zipfile.ZipFile(path, "r") as z:
                # Archive layouts vary; match the member name case-insensitively
                member = next(
                    (f for f in z.namelist() if Path(f).name.lower() in ("taxon.csv", "taxon.tsv", "taxon.txt")),
                    None,
                )
                if member is None:
                    raise RegistryError(f"No taxon file found in archive {path}")
                logger.info(f"Reading {member} from {path}")
                data = z.read(member)
        except zipfile.BadZipFile:
            raise RegistryError(f"{path} is not a valid ZIP file")
        return _read_taxon_bytes(data, f"{path}:{member}")

    logger.info(f"Reading taxon table {path}")
    return _read_taxon_bytes(path.read_bytes(), str(path))


def prepare_taxon_frame(taxa: pl.DataFrame, urn_prefix: Optional[str] = DYNTAXA_TAXON_URN_PREFIX) -> pl.DataFrame:
    """Normalize a raw DwC taxon table for indexing.

    Renames the identifier column to ``taxonId``, casts every column to
    text, turns empty strings into nulls and strips the taxon URN prefix from
    identifier columns so they match the identifiers used by name lookup.
    """
    if "taxonId" not in taxa.columns:
        alias = next((c for c in TAXON_ID_ALIASES if c in taxa.columns), None)
        if alias is None:
            raise RegistryError("Taxon table has no taxonId column")
        taxa = taxa.rename({alias: "taxonId"})

    exprs = []
    for col in taxa.columns:
        expr = pl.col(col).cast(pl.Utf8)
        if urn_prefix and col in REFERENCE_COLUMNS:
            expr = expr.str.replace(urn_prefix, "", literal=True)
        exprs.append(pl.when(expr == "").then(None).otherwise(expr).alias(col))
    taxa = taxa.with_columns(exprs)

    for col in REFERENCE_COLUMNS:
        if col not in taxa.columns:
            taxa = taxa.with_columns(pl.lit(None, dtype=pl.Utf8).alias(col))
    return taxa.filter(pl.col("taxonId").is_not_null())


class DwcaTaxonIndex:
    """In-memory index over a Darwin Core taxon table."""

    def __init__(self, taxa: pl.DataFrame, urn_prefix: Optional[str] = DYNTAXA_TAXON_URN_PREFIX,
                 max_depth: int = 64):
        self.taxa = prepare_taxon_frame(taxa, urn_prefix)
        self.max_depth = max_depth

        self._ids: Set[str] = set()
        self._parent: Dict[str, str] = {}
        self._accepted: Dict[str, str] = {}
        self._children: Dict[str, List[str]] = defaultdict(list)
        self._synonyms: Dict[str, List[str]] = defaultdict(list)

        for taxon_id, parent_id, accepted_id in self.taxa.select(list(REFERENCE_COLUMNS)).iter_rows():
            self._ids.add(taxon_id)
            if parent_id is not None:
                self._parent[taxon_id] = parent_id
                self._children[parent_id].append(taxon_id)
            if accepted_id is not None and accepted_id != taxon_id:
                self._accepted[taxon_id] = accepted_id
                self._synonyms[accepted_id].append(taxon_id)

        logger.info(f"Indexed {len(self._ids):,} taxa ({len(self._accepted):,} synonyms)")

    @classmethod
    def from_path(cls, path: Union[str, Path], **kwargs) -> "DwcaTaxonIndex":
        return cls(read_taxon_table(path), **kwargs)

    def __contains__(self, taxon_id: str) -> bool:
        return taxon_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def _add_descendants(self, selected: Set[str], roots: Iterable[str]) -> None:
        stack = list(roots)
        while stack:
            node = stack.pop()
            for child in self._children.get(node, ()):
                if child not in selected:
                    selected.add(child)
                    stack.append(child)

    def _add_ancestors(self, selected: Set[str], taxon_id: str) -> None:
        current = self._parent.get(taxon_id)
        hops = 0
        while current is not None and current in self._ids and current not in selected:
            if hops >= self.max_depth:
                logger.warning(f"Parent chain of {taxon_id} exceeds {self.max_depth} levels")
                break
            selected.add(current)
            current = self._parent.get(current)
            hops += 1

    def select(
        self,
        ids: Iterable[str],
        include_synonyms: bool = True,
        include_descendants: bool = True,
        fill_missing_ancestors: bool = True,
    ) -> pl.DataFrame:
        """Select taxa by identifier and expand the selection.

        Returns:
            Matching rows in the order of the underlying table
        """
        requested = [str(i) for i in ids]
        selected = {i for i in requested if i in self._ids}
        missing = len(set(requested)) - len(selected)
        if missing:
            logger.debug(f"{missing} requested identifier(s) not present in the taxon table")

        if include_descendants:
            self._add_descendants(selected, list(selected))

        if include_synonyms:
            for taxon_id in list(selected):
                selected.update(self._synonyms.get(taxon_id, ()))

        if fill_missing_ancestors:
            # Synonyms point at their accepted taxon, which must be present too
            for taxon_id in list(selected):
                accepted = self._accepted.get(taxon_id)
                if accepted is not None and accepted in self._ids:
                    selected.add(accepted)
            for taxon_id in list(selected):
                self._add_ancestors(selected, taxon_id)

        return self.taxa.filter(pl.col("taxonId").is_in(sorted(selected)))
