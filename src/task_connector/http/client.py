"""HTTP client for the task server with auth header and timeouts."""

from __future__ import annotations

import httpx

from task_connector import __version__

AUTH_HEADER = "X-Digistorm-Key"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_USER_AGENT = f"task-connector/{__version__}"


def build_http_client(
    *,
    api_key: str,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    user_agent: str = DEFAULT_USER_AGENT,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    """Build the client shared by the fetcher and the reporter.

    The credential is attached to every request. No transport-level retries:
    the poll schedule is the only retry mechanism.
    """

    return httpx.Client(
        timeout=httpx.Timeout(timeout_seconds, connect=min(10.0, timeout_seconds)),
        headers={"User-Agent": user_agent, AUTH_HEADER: api_key},
        transport=transport,
        follow_redirects=True,
    )
