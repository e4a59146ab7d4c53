"""Whitelist discovery for remote proxy repositories."""

__version__ = "0.1.0"
