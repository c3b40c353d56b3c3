"""Depot path helpers.

Depot paths look like ``//<depot>/<branch>/<rest>``. Reconciliation joins
records from different branches on ``<rest>`` (the relative path), and the
version-control server reports paths with the special characters
``@ # * %`` percent-encoded.
"""

import re

__all__ = [
    "rel_path",
    "join_depot",
    "is_under",
    "decode_special_chars",
    "encode_special_chars",
]

_REL_PATH_PATTERN = re.compile(r"^//[^/]*/[^/]*/(.*)$")

# Order matters: '%' is encoded first and decoded last
_SPECIAL_CHARS: tuple[tuple[str, str], ...] = (
    ("%", "%25"),
    ("@", "%40"),
    ("#", "%23"),
    ("*", "%2A"),
)


def rel_path(depot_path: str) -> str | None:
    """Strip the ``//<depot>/<branch>/`` prefix from a depot path.

    Args:
        depot_path: Fully-qualified depot path.

    Returns:
        The path relative to its branch root, or None if the path does not
        have the ``//depot/branch/rest`` shape.

    Examples:
        >>> rel_path("//mw/Bmain/matlab/toolbox/a.m")
        'matlab/toolbox/a.m'
        >>> rel_path("matlab/a.m") is None
        True

    """
    match = _REL_PATH_PATTERN.match(depot_path)
    if match is None or not match.group(1):
        return None
    return match.group(1)


def join_depot(stream: str, relative: str) -> str:
    """Join a branch root and a relative path into a depot path."""
    return f"{stream.rstrip('/')}/{relative}"


def is_under(relative: str, prefix: str) -> bool:
    """Check whether a relative path lies under a subtree prefix.

    An empty prefix excludes nothing.
    """
    return bool(prefix) and relative.startswith(prefix)


def decode_special_chars(path: str) -> str:
    """Decode percent-encoded special characters in a depot path.

    Examples:
        >>> decode_special_chars("src/a%40b%23c%2A%25.txt")
        'src/a@b#c*%.txt'

    """
    for char, encoded in reversed(_SPECIAL_CHARS):
        path = path.replace(encoded, char)
        if encoded != encoded.lower():
            path = path.replace(encoded.lower(), char)
    return path


def encode_special_chars(path: str) -> str:
    """Percent-encode special characters so a local name can be used as a file spec."""
    for char, encoded in _SPECIAL_CHARS:
        path = path.replace(char, encoded)
    return path
