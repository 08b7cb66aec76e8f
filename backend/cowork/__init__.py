"""Coworking booking and subscription ledger engine."""

__version__ = "0.1.0"
