import datetime
import itertools
import logging
import random
import re
import string
import time
import typing as tp

LOGGER = logging.getLogger(__name__)

_SANITIZE_RE = re.compile("[^a-z0-9_-]+")


def get_rand_str(length: int = 8) -> str:
    """Return random string."""
    if length < 1:
        return ""
    return "".join(random.choice(string.ascii_lowercase) for i in range(length))


def prepend_flag(flag: str, contents: tp.Iterable) -> list[str]:
    """Prepend flag to every item of the sequence.

    Args:
        flag: A flag to prepend to every item of the `contents`.
        contents: A list (iterable) of content to be prepended.

    Returns:
        list[str]: A list of flag followed by content, see below.

    >>> prepend_flag("-f", ["a.yml", "b.yml"])
    ['-f', 'a.yml', '-f', 'b.yml']
    """
    return list(itertools.chain.from_iterable([flag, str(x)] for x in contents))


def sanitize_name(s: str) -> str:
    """Sanitize a name so it can be used as a compose project name.

    >>> sanitize_name("My Project@1")
    'my_project_1'
    """
    return _SANITIZE_RE.sub("_", s.strip().lower()).strip("_-")


def format_duration(secs: float | None) -> str:
    """Return human readable duration, or a "not completed" marker for `None`.

    >>> format_duration(65.5)
    '0:01:05.500000'
    >>> format_duration(None)
    'not completed'
    """
    if secs is None:
        return "not completed"
    return str(datetime.timedelta(seconds=secs))


def get_timestamp() -> str:
    """Return current UTC time in ISO format."""
    return datetime.datetime.now(tz=datetime.UTC).isoformat()


def timed(func: tp.Callable[[], tp.Any]) -> float:
    """Call `func` and return how long the call took, in seconds."""
    start = time.monotonic()
    func()
    return time.monotonic() - start
