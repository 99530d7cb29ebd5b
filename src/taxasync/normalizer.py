"""Name normalization for TaxaSync.

Catalog names are cleaned before they are sent to the registry: odd space
characters become ordinary spaces, whitespace is collapsed and trimmed, and
a fixed table of known problematic tokens is substituted. Normalization never
rejects a name; names the registry cannot match end up in the unmatched
report.
"""

import logging
import re
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import polars as pl

from taxasync.constants import NAME_SUBSTITUTIONS, NONSTANDARD_SPACES, ZERO_WIDTH_CHARACTERS
from taxasync.errors import ConfigurationError

logger = logging.getLogger(__name__)

_MULTIPLE_SPACES = re.compile(r" {2,}")
_SPACE_TRANSLATION = str.maketrans(
    {**{ch: " " for ch in NONSTANDARD_SPACES}, **{ch: None for ch in ZERO_WIDTH_CHARACTERS}}
)


def normalize_name(raw: str, substitutions: Sequence[Tuple[str, str]] = NAME_SUBSTITUTIONS) -> str:
    """Return the canonical form of a raw catalog name.

    Args:
        raw: Name as found in the catalog
        substitutions: Ordered (token, replacement) pairs applied after
            whitespace cleanup

    Returns:
        The cleaned name; may be empty if the input held only whitespace
    """
    name = raw.translate(_SPACE_TRANSLATION)
    for token, replacement in substitutions:
        if token in name:
            name = name.replace(token, replacement)
    name = _MULTIPLE_SPACES.sub(" ", name)
    return name.strip()


def normalize_names(
    names: Iterable[Optional[str]],
    substitutions: Sequence[Tuple[str, str]] = NAME_SUBSTITUTIONS,
) -> List[str]:
    """Normalize a collection of names and collapse the resulting duplicates.

    Args:
        names: Raw catalog names; None entries are skipped
        substitutions: Token substitution table passed to ``normalize_name``

    Returns:
        Sorted list of distinct, non-empty normalized names
    """
    seen = set()
    empty = 0
    for raw in names:
        if raw is None:
            empty += 1
            continue
        name = normalize_name(raw, substitutions)
        if not name:
            empty += 1
            continue
        seen.add(name)

    if empty:
        logger.info(f"Skipped {empty} empty catalog name(s)")
    return sorted(seen)


def load_substitutions(path: Union[str, Path]) -> List[Tuple[str, str]]:
    """Load extra token substitutions from a tab-separated file.

    The file must have ``pattern`` and ``replacement`` columns. Patterns are
    literal strings, not regular expressions.

    Raises:
        ConfigurationError: If the file cannot be read or lacks the columns
    """
    try:
        df = pl.read_csv(
            path,
            separator="\t",
            infer_schema_length=0,
            quote_char=None,
        )
    except (OSError, pl.exceptions.PolarsError) as e:
        raise ConfigurationError(f"Cannot read substitution table {path}: {e}")

    missing = {"pattern", "replacement"} - set(df.columns)
    if missing:
        raise ConfigurationError(f"Substitution table {path} is missing columns: {sorted(missing)}")

    pairs = [
        (row["pattern"], row["replacement"] or "")
        for row in df.select("pattern", "replacement").to_dicts()
        if row["pattern"]
    ]
    logger.info(f"Loaded {len(pairs)} name substitutions from {path}")
    return pairs


class NameNormalizer:
    """Normalizer combining the fixed substitution table with user additions."""

    def __init__(self, extra_substitutions: Optional[Sequence[Tuple[str, str]]] = None):
        self.substitutions: List[Tuple[str, str]] = list(NAME_SUBSTITUTIONS)
        if extra_substitutions:
            self.substitutions.extend(extra_substitutions)

    def normalize(self, raw: str) -> str:
        return normalize_name(raw, self.substitutions)

    def normalize_all(self, names: Iterable[Optional[str]]) -> List[str]:
        return normalize_names(names, self.substitutions)
