"""Version-control client used by the reconciliation engine.

The engine only needs three queries: a two-branch comparison (diff2), a
per-file status query (fstat) and the ledger mutation/fetch command
(sync). They are described by the VersionControlClient protocol so tests
and callers can substitute their own implementation.

P4Client is the production implementation. It runs the command-line
client in ``-G`` mode, where every output record is a marshalled Python
dict, and converts the records into plain ``dict[str, Any]`` values.

Result lists mix two kinds of items, as the server does:
- ``dict``: a data record (e.g., one file of a sync)
- ``str``: an informational or warning message (e.g., "file(s) up-to-date.")
"""

from __future__ import annotations

import contextlib
import io
import logging
import marshal
import os
import subprocess
import tempfile
from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from buildarea.core.config import P4Settings
from buildarea.core.exceptions import VersionControlError

logger = logging.getLogger(__name__)

__all__ = [
    "P4Result",
    "VersionControlClient",
    "P4Client",
    "records_only",
    "ARGS_FILE_THRESHOLD",
]

P4Result = list[dict[str, Any] | str]

# Above this many characters of arguments, pass them through a file (-x)
# instead of the command line to stay below ARG_MAX.
ARGS_FILE_THRESHOLD = 100_000

# Server severities: 0 empty, 1 info, 2 warning, 3 failed, 4 fatal
_SEVERITY_FAILED = 3


@runtime_checkable
class VersionControlClient(Protocol):
    """Protocol for the version-control operations the engine consumes."""

    def run_diff2(self, *args: str) -> P4Result:
        """Compare two branches (or file specs) at given change levels."""
        ...

    def run_fstat(self, *args: str) -> P4Result:
        """Query per-file status, including the head action."""
        ...

    def run_sync(self, *args: str) -> P4Result:
        """Update the workspace ledger and, unless -k is given, its content."""
        ...


def records_only(result: P4Result) -> list[dict[str, Any]]:
    """Drop message strings from a result list."""
    return [item for item in result if isinstance(item, dict)]


def _decode(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="surrogateescape")
    return value


def _parse_marshal_stream(data: bytes) -> list[dict[str, Any]]:
    """Parse concatenated marshalled dicts produced by ``p4 -G``."""
    records: list[dict[str, Any]] = []
    stream = io.BytesIO(data)
    while True:
        try:
            raw = marshal.load(stream)
        except EOFError:
            break
        except (ValueError, TypeError) as e:
            raise VersionControlError(f"Unreadable client output: {e}") from e
        if not isinstance(raw, dict):
            raise VersionControlError(f"Unexpected {type(raw).__name__} in client output, expected a record")
        records.append({_decode(k): _decode(v) for k, v in raw.items()})
    return records


class P4Client:
    """Run version-control commands through the ``p4`` command-line client.

    Args:
        settings: Connection settings; empty values defer to the client's
            own environment.
        cwd: Working directory for commands (the workspace root, so that
            relative file arguments resolve against it).

    Example:
        >>> client = P4Client(P4Settings(client="ws.1234"), cwd=Path("/build"))
        >>> client.run_sync("-n", "@1200")  # doctest: +SKIP

    """

    def __init__(self, settings: P4Settings | None = None, cwd: str | os.PathLike[str] | None = None) -> None:
        self.settings = settings or P4Settings()
        self.cwd = cwd

    def __repr__(self) -> str:
        return f"P4Client(client={self.settings.client!r}, port={self.settings.port!r})"

    def run_diff2(self, *args: str) -> P4Result:
        return self.run("diff2", *args)

    def run_fstat(self, *args: str) -> P4Result:
        return self.run("fstat", *args)

    def run_sync(self, *args: str) -> P4Result:
        return self.run("sync", *args)

    def _global_options(self) -> list[str]:
        options = ["-G"]
        if self.settings.port:
            options += ["-p", self.settings.port]
        if self.settings.user:
            options += ["-u", self.settings.user]
        if self.settings.client:
            options += ["-c", self.settings.client]
        return options

    def run(self, command: str, *args: str) -> P4Result:
        """Run one command and return its records and messages.

        Trailing file arguments are moved into an argument file when the
        command line would get too long; flags stay on the command line.

        Raises:
            VersionControlError: If the client cannot be started, times out,
                or the server reports a failure.

        """
        flags, files = _split_flags(args)
        argv = [self.settings.executable, *self._global_options()]
        args_file: str | None = None

        if sum(len(f) + 1 for f in files) > ARGS_FILE_THRESHOLD:
            args_file = _write_args_file(files)
            argv += ["-x", args_file, command, *flags]
        else:
            argv += [command, *flags, *files]

        label = f"{command} {' '.join(flags)}".strip()
        logger.debug("Running %s (%d file args)", label, len(files))
        try:
            completed = subprocess.run(
                argv,
                cwd=self.cwd,
                capture_output=True,
                timeout=self.settings.timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise VersionControlError(
                f"Client executable not found: {self.settings.executable}",
                command=label,
            ) from e
        except subprocess.TimeoutExpired as e:
            raise VersionControlError(
                f"'{label}' timed out after {self.settings.timeout}s",
                command=label,
            ) from e
        finally:
            if args_file is not None:
                with contextlib.suppress(OSError):
                    os.unlink(args_file)

        stderr = completed.stderr.decode("utf-8", errors="replace").strip()
        records = _parse_marshal_stream(completed.stdout)
        result = _interpret(records, label)

        if completed.returncode != 0 and not records:
            raise VersionControlError(
                f"'{label}' exited with status {completed.returncode}: {stderr}",
                command=label,
                stderr=stderr,
            )
        return result


def _split_flags(args: Sequence[str]) -> tuple[list[str], list[str]]:
    """Split leading option flags (and their values) from file arguments."""
    # Options taking a value among those used by the engine
    valued = {"-F", "-S", "-P", "-b", "-m"}
    flags: list[str] = []
    index = 0
    while index < len(args) and args[index].startswith("-"):
        flags.append(args[index])
        if args[index] in valued and index + 1 < len(args):
            flags.append(args[index + 1])
            index += 1
        index += 1
    return flags, list(args[index:])


def _write_args_file(files: Sequence[str]) -> str:
    fd, path = tempfile.mkstemp(suffix=".txt", prefix="buildarea_args_")
    try:
        os.write(fd, ("\n".join(files) + "\n").encode("utf-8"))
    finally:
        os.close(fd)
    return path


def _interpret(records: list[dict[str, Any]], label: str) -> P4Result:
    """Turn raw ``-G`` records into data records and message strings."""
    result: P4Result = []
    for record in records:
        code = record.get("code")
        if code == "stat":
            record = {k: v for k, v in record.items() if k != "code"}
            result.append(record)
        elif code == "error":
            message = str(record.get("data", "")).strip()
            severity = int(record.get("severity", _SEVERITY_FAILED))
            if severity >= _SEVERITY_FAILED:
                raise VersionControlError(f"'{label}' failed: {message}", command=label, stderr=message)
            result.append(message)
        elif code in ("info", "text"):
            result.append(str(record.get("data", "")).strip())
        else:
            logger.debug("Record with unexpected code %r from %s", code, label)
            result.append({k: v for k, v in record.items() if k != "code"})
    return result
