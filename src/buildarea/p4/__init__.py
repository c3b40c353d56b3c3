"""Version-control client access and depot path helpers."""

from buildarea.p4.client import P4Client, P4Result, VersionControlClient, records_only
from buildarea.p4.paths import decode_special_chars, encode_special_chars, join_depot, rel_path

__all__ = [
    "P4Client",
    "P4Result",
    "VersionControlClient",
    "records_only",
    "decode_special_chars",
    "encode_special_chars",
    "join_depot",
    "rel_path",
]
