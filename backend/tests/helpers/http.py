"""HTTP helper utilities for tests."""

from __future__ import annotations


def json_headers(
    auth_token: str | None = None,
    *,
    anti_forgery: str | None = None,
) -> dict[str, str]:
    """Return standard JSON headers.

    Parameters
    ----------
    auth_token:
        Optional bearer access token to include.
    anti_forgery:
        Optional anti-forgery token echoed in ``X-CSRF-Token``.

    Returns
    -------
    dict[str, str]
        HTTP headers dictionary.
    """

    headers = {"Content-Type": "application/json", "Accept": "application/json"}
    if auth_token:
        headers["Authorization"] = f"Bearer {auth_token}"
    if anti_forgery:
        headers["X-CSRF-Token"] = anti_forgery
    return headers
