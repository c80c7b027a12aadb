"""Utility functions."""

from oos_engine.utils.time import ensure_utc, utc_now

__all__ = ["utc_now", "ensure_utc"]
