"""Data types for TaxaSync."""
