"""Heimdell server API client."""

from __future__ import annotations

from heimdell.api.client import HeimdellClient, LoginResult

__all__ = ["HeimdellClient", "LoginResult"]
