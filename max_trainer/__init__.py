"""Training wrapper for Model Asset Exchange models."""

__version__ = "0.1.0"
