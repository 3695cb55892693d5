"""Factory for outbound HTTP clients (Google APIs, WhatsApp gateway, forwarding webhooks)"""

import httpx

DEFAULT_TIMEOUT_SECONDS = 30.0


def client(timeout: float = DEFAULT_TIMEOUT_SECONDS) -> httpx.AsyncClient:
    """Create a new AsyncClient; callers use it as an async context manager"""
    return httpx.AsyncClient(timeout=timeout)
