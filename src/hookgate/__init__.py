"""Hookgate - trust-boundary verification for third-party integration traffic."""

__version__ = "0.1.0"
