"""Record source contracts.

Concrete readers (delimited text, spreadsheets, JSON documents) live
outside chunksync. Anything that can lazily produce a finite sequence
of records and release its backing resource afterwards is a source.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from chunksync.contracts.errors import SourceUnavailableError


@runtime_checkable
class RecordSource(Protocol):
    """Producer of a lazy, finite sequence of records."""

    def records(self) -> Iterator[Any]: ...

    def release(self) -> None:
        """Delete or close the backing resource. Called once, after the last chunk is scheduled."""
        ...


class IterableSource:
    """Source over an in-memory iterable. Nothing to release."""

    def __init__(self, records: Iterable[Any]) -> None:
        self._records = records

    def records(self) -> Iterator[Any]:
        return iter(self._records)

    def release(self) -> None:
        pass


class FileSource:
    """Source backed by a temporary file, deleted on release.

    Args:
        path: File to read (e.g. an uploaded or downloaded export)
        reader: Turns an open text file into records
        encoding: Text encoding of the file
    """

    def __init__(
        self,
        path: Path,
        reader: Callable[[Any], Iterable[Any]],
        *,
        encoding: str = "utf-8",
    ) -> None:
        self.path = path
        self._reader = reader
        self._encoding = encoding

    def records(self) -> Iterator[Any]:
        if not self.path.is_file():
            raise SourceUnavailableError(f"Source file does not exist: {self.path}")
        try:
            handle = self.path.open(encoding=self._encoding)
        except OSError as e:
            raise SourceUnavailableError(f"Cannot read source file {self.path}: {e}") from e
        with handle:
            yield from self._reader(handle)

    def release(self) -> None:
        self.path.unlink(missing_ok=True)
