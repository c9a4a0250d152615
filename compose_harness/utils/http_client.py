"""Global HTTP client used by the health checks."""

import requests

_session = None


def get_session() -> requests.Session:
    """Get a session object shared by all HTTP polling, so connections are reused."""
    global _session  # noqa: PLW0603

    if _session is None:
        _session = requests.Session()
    return _session
