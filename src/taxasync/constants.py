"""Constants shared across TaxaSync."""

from typing import List, Tuple

# Fixed column set of the output taxonomy table, in output order
TAXON_COLUMNS: List[str] = [
    "taxonId",
    "acceptedNameUsageID",
    "parentNameUsageID",
    "scientificName",
    "taxonRank",
    "scientificNameAuthorship",
    "taxonomicStatus",
    "nomenclaturalStatus",
    "taxonRemarks",
    "kingdom",
    "phylum",
    "class",
    "order",
    "family",
    "genus",
    "species",
]

# Registry rank labels that fill each classification column
RANK_TO_COLUMN = {
    "kingdom": "kingdom",
    "phylum": "phylum",
    "division": "phylum",
    "class": "class",
    "order": "order",
    "family": "family",
    "genus": "genus",
    "species": "species",
}

# DwC exports differ in the capitalization of the identifier column
TAXON_ID_ALIASES = ("taxonID", "taxonid", "TaxonId")

GENUS_RANK = "Genus"
WHITELIST_RANK_TAG = "genus"

NBSP = "\u00a0"

# Space-like characters replaced by an ordinary space before lookup
NONSTANDARD_SPACES = (
    "\u00a0",  # no-break space
    "\u2000", "\u2001", "\u2002", "\u2003", "\u2004", "\u2005",
    "\u2006", "\u2007", "\u2008", "\u2009", "\u200a",
    "\u202f",  # narrow no-break space
    "\u205f",
    "\u3000",
    "\t",
)

# Characters removed outright
ZERO_WIDTH_CHARACTERS = ("\u200b", "\u200c", "\u200d", "\ufeff")

# Known problematic tokens in catalog names: UTF-8 read as latin-1 and
# typographic punctuation
NAME_SUBSTITUTIONS: List[Tuple[str, str]] = [
    ("Ã¤", "ä"),
    ("Ã¶", "ö"),
    ("Ã¥", "å"),
    ("Ã«", "ë"),
    ("Ã©", "é"),
    ("Ã¼", "ü"),
    ("Ã\u0084", "Ä"),
    ("Ã\u0096", "Ö"),
    ("Ã\u0085", "Å"),
    ("‘", "'"),
    ("’", "'"),
    ("“", '"'),
    ("”", '"'),
]

# Dyntaxa writes full LSIDs in its Darwin Core archive; lookups use bare ids
DYNTAXA_TAXON_URN_PREFIX = "urn:lsid:dyntaxa.se:Taxon:"

# Output artifact names
TAXON_TABLE_FILENAME = "Taxon.csv"
WHITELIST_FILENAME = "dyntaxa_whitelist.txt"
DUPLICATES_FILENAME = "problem_duplicates.txt"
UNMATCHED_FILENAME = "no_match.txt"
RETRIEVAL_GAPS_FILENAME = "retrieval_gaps.txt"
INCONSISTENCIES_FILENAME = "structural_inconsistencies.txt"
SYNC_STATS_FILENAME = "sync_stats.json"
