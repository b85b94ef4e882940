"""Shared HTTP client utilities (e.g. timeouts)."""

from __future__ import annotations

import base64

import httpx


def timeouts_for(seconds: float) -> httpx.Timeout:
    """Build httpx.Timeout with bounded connect/pool for fail-fast on unreachable upstreams."""
    total = float(seconds)
    connect = min(5.0, total)
    return httpx.Timeout(connect=connect, read=total, write=total, pool=connect)


def basic_auth_header(username: str, password: str) -> str:
    token = base64.b64encode(f"{username}:{password}".encode()).decode("ascii")
    return f"Basic {token}"
