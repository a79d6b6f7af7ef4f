"""Offline IBAN validation (ISO 13616 structure, ISO 7064 MOD 97-10 checksum)."""

__version__ = "0.3.0"
