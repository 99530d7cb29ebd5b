"""Configuration for TaxaSync.

This module provides a single configuration object shared by all modules.
Defaults are read from environment variables and may be overridden from
command-line arguments.
"""

import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from taxasync.errors import ConfigurationError


def _env_number(name: str, convert: Callable[[str], Any], default: Any, errors: List[str]) -> Any:
    """Read a numeric environment variable, recording a bad value in ``errors``."""
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    try:
        return convert(value)
    except ValueError:
        kind = "an integer" if convert is int else "a number"
        errors.append(f"Environment variable {name} must be {kind}, got {value!r}")
        return default


class Config:
    """Runtime settings for a TaxaSync run."""

    def __init__(self):
        # Problems found while reading the environment; reported by validate()
        self._env_errors: List[str] = []

        # Registry credential, sent as the Ocp-Apim-Subscription-Key header
        self.api_key: Optional[str] = os.environ.get("DYNTAXA_APIKEY") or None

        # Endpoints
        self.lookup_url = "https://api.artdatabanken.se/taxonservice/v1/taxa/names"
        self.dwca_url = "https://api.artdatabanken.se/taxonlistservice/v1/DarwinCore/download"
        self.shark_options_url = "https://shark.smhi.se/api/options"
        self.lookup_culture = "sv_SE"
        self.lookup_page_size = 100

        # HTTP behaviour
        self.request_timeout = 60.0
        self.download_timeout = 600.0
        self.max_retries = 3
        self.retry_backoff = 1.0

        # Matching
        self.lookup_workers = _env_number("TAXASYNC_LOOKUP_WORKERS", int, 4, self._env_errors)
        self.batch_timeout = _env_number("TAXASYNC_BATCH_TIMEOUT", float, None, self._env_errors)
        self.return_all_candidates = True
        self.accept_all_candidates = False

        # Hierarchy assembly
        self.include_synonyms = True
        self.include_descendants = True
        self.fill_missing_ancestors = True
        self.fetch_batch_size = 500
        self.max_hierarchy_depth = 64

        # Output
        self.report_encoding = "latin-1"

        # Cache
        self.cache_base_dir = os.environ.get(
            "TAXASYNC_CACHE_DIR", str(Path.home() / ".cache" / "taxasync")
        )
        self.cache_dir = self.cache_base_dir
        self.cache_max_age = _env_number("TAXASYNC_CACHE_MAX_AGE", int, 7 * 24 * 3600, self._env_errors)

    def update_from_args(self, args: Dict[str, Any]) -> None:
        """Update configuration from parsed command-line arguments.

        Only keys that name an existing setting and carry a non-None value
        are applied.

        Args:
            args: Dictionary of argument names to values (e.g. ``vars(namespace)``)
        """
        for key, value in args.items():
            if value is None:
                continue
            if hasattr(self, key) and not callable(getattr(self, key)):
                setattr(self, key, value)

    def validate(self) -> None:
        """Fail if any setting read from the environment was invalid.

        Raises:
            ConfigurationError: Listing every invalid environment variable
        """
        if self._env_errors:
            raise ConfigurationError("; ".join(self._env_errors))

    def ensure_directories(self) -> None:
        """Create the cache directories if they do not exist."""
        Path(self.cache_base_dir).mkdir(parents=True, exist_ok=True)
        Path(self.cache_dir).mkdir(parents=True, exist_ok=True)

    def require_api_key(self) -> str:
        """Return the registry credential or fail the run.

        Raises:
            ConfigurationError: If no credential is configured
        """
        if not self.api_key:
            raise ConfigurationError(
                "No Dyntaxa API key configured. Set the DYNTAXA_APIKEY environment variable."
            )
        return self.api_key

    def get_config_summary(self) -> str:
        """Return a human-readable summary of the current configuration."""
        lines = ["TaxaSync configuration:"]
        for key, value in sorted(vars(self).items()):
            if key.startswith("_"):
                continue
            if key == "api_key":
                value = "<set>" if value else "<not set>"
            lines.append(f"  {key}: {value}")
        return "\n".join(lines)


config = Config()
