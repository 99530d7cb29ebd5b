"""Exclusion list loading.

The exclusion list is a tab-separated file maintained by curators, with at
least a ``taxon_id`` column. Identifiers listed there are removed from the
accepted set and from the assembled table regardless of match quality.
"""

import logging
from pathlib import Path
from typing import FrozenSet, Union

import polars as pl

from taxasync.errors import ConfigurationError

logger = logging.getLogger(__name__)


def load_exclusion_list(path: Union[str, Path]) -> FrozenSet[str]:
    """Load the set of excluded taxon identifiers.

    Args:
        path: Path of the tab-separated exclusion list

    Returns:
        Frozen set of identifiers as strings

    Raises:
        ConfigurationError: If the file is missing, unreadable or has no
            ``taxon_id`` column
    """
    try:
        df = pl.read_csv(
            path,
            separator="\t",
            quote_char=None,
            infer_schema_length=0,
            truncate_ragged_lines=True,
            encoding="utf8-lossy",
        )
    except (OSError, pl.exceptions.PolarsError) as e:
        raise ConfigurationError(f"Cannot read exclusion list {path}: {e}")

    if "taxon_id" not in df.columns:
        raise ConfigurationError(f"Exclusion list {path} has no 'taxon_id' column")

    ids = frozenset(
        value.strip()
        for value in df.get_column("taxon_id").to_list()
        if value is not None and value.strip()
    )
    logger.info(f"Loaded {len(ids):,} excluded taxon ids from {path}")
    return ids
