"""Heimdell CLI: log in, switch environments and protect stored credentials."""

__version__ = "0.1.0"
