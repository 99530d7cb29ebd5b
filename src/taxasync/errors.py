"""Exception types raised by TaxaSync.

Per-name and per-identifier problems are not exceptions at the pipeline
level: the matcher turns a ``RegistryError`` into an unmatched record and the
assembler turns it into a retrieval gap. Only ``ConfigurationError`` stops a
run.
"""


class TaxaSyncError(Exception):
    """Base class for TaxaSync errors."""


class ConfigurationError(TaxaSyncError):
    """A run cannot start: missing credential, unreadable input, rejected key."""


class RegistryError(TaxaSyncError):
    """The taxonomic registry could not answer a request after retrying."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code
