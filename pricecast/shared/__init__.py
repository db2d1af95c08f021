"""Shared infrastructure helpers (logging)."""

from pricecast.shared.logging import configure_logging

__all__ = ["configure_logging"]
