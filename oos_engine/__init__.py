"""Out-of-Service compliance rule engine."""

__version__ = "0.1.0"
