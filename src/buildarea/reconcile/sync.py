"""Chunked sync runner.

The sync command is run over a list of file specs a fixed number at a
time, because the server protocol has practical limits on argument
volume and a single file list can reach hundreds of thousands of paths.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterator, Sequence

from buildarea.core.config import get_config
from buildarea.p4.client import P4Result, VersionControlClient

logger = logging.getLogger(__name__)

__all__ = ["chunked", "run_sync"]


def chunked(items: Sequence[str], size: int) -> Iterator[Sequence[str]]:
    """Yield consecutive slices of at most ``size`` items."""
    if size < 1:
        raise ValueError(f"chunk size must be positive, got {size}")
    for start in range(0, len(items), size):
        yield items[start : start + size]


def run_sync(
    client: VersionControlClient,
    flags: Sequence[str],
    paths: Sequence[str],
    chunk_size: int | None = None,
) -> P4Result:
    """Run sync with ``flags`` over ``paths`` in chunks.

    Args:
        client: Version-control client.
        flags: Sync flags, e.g. ``["-k"]`` or ``["-k", "-L"]``.
        paths: File specs. An empty list issues no command.
        chunk_size: Paths per invocation; defaults to the configured
            ``sync_chunk_size``.

    Returns:
        Concatenated results of every invocation (records and messages).

    Raises:
        VersionControlError: If any invocation fails. Earlier chunks stay
            applied; every sync issued by the engine is idempotent.

    """
    size = chunk_size if chunk_size is not None else get_config().sync_chunk_size
    flag_text = " ".join(flags)
    result: P4Result = []

    for chunk in chunked(paths, size):
        shown = f"[{len(chunk)} files]" if len(chunk) > 1 else chunk[0]
        logger.info("Running: sync %s %s", flag_text, shown)
        result.extend(client.run_sync(*flags, *chunk))

    for message in result:
        if isinstance(message, str) and message:
            logger.info("sync: %s", message)

    actions = Counter(str(item.get("action", "")) for item in result if isinstance(item, dict))
    logger.info("Sync returned %d files", sum(actions.values()))
    if actions:
        logger.info("\t%s", " ".join(f"{action} {count}" for action, count in sorted(actions.items())))
    return result
