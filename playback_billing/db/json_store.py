"""
JSON Collection Storage - one pretty-printed JSON array per collection.

Each collection owns a lock that callers hold for the whole
load-modify-write cycle. Writes go to a temporary file in the same directory
and are moved into place with os.replace, so readers never observe a
half-written document.

Scaling boundary: every operation loads and rewrites the whole document, so
collections must stay small enough to fit comfortably in memory.
"""

import json
import os
import tempfile
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path, PurePath
from typing import Any

from playback_billing.exceptions import ConcurrencyError, InvalidValueError, StorageIOError
from playback_billing.observability import get_logger, metrics

logger = get_logger(__name__)

DEFAULT_LOCK_TIMEOUT_SECONDS = 10.0


def validate_data_directory(path: str | Path) -> Path:
    """
    Canonicalize the data directory and make sure it exists.

    Paths containing a parent-traversal segment are rejected outright.
    """
    if not str(path).strip():
        raise InvalidValueError("data_dir", "data directory path cannot be empty")
    if ".." in PurePath(path).parts:
        raise InvalidValueError("data_dir", "data directory path must not contain '..'")

    directory = Path(path).expanduser().resolve()
    if not directory.exists():
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageIOError(directory, f"cannot create data directory: {exc}") from exc
        logger.info("data_directory_created", directory=str(directory))
    elif not directory.is_dir():
        raise StorageIOError(directory, "data directory path is not a directory")
    return directory


class JsonCollection:
    """A JSON array of objects persisted in a single file."""

    def __init__(
        self,
        directory: Path,
        file_name: str,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT_SECONDS,
    ) -> None:
        self.path = directory / file_name
        self.name = self.path.stem
        self._lock = threading.Lock()
        self._lock_timeout = lock_timeout
        self._document_corrupt = False

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Hold the collection lock, waiting at most the configured timeout."""
        if not self._lock.acquire(timeout=self._lock_timeout):
            logger.error("collection_lock_timeout", collection=self.name)
            raise ConcurrencyError(self.name)
        try:
            yield
        finally:
            self._lock.release()

    def read_items(self) -> list[dict[str, Any]]:
        """
        Load every object in the collection. Caller must hold the lock.

        A missing file is an empty collection. A document that is not a JSON
        array, or is nested too deeply to decode, is logged and treated as empty; it is moved aside on the next
        write instead of being overwritten.
        """
        self._document_corrupt = False
        if not self.path.exists():
            return []

        try:
            with open(self.path, encoding="utf-8") as f:
                document = json.load(f)
        except (ValueError, RecursionError) as exc:
            logger.error("collection_unparsable", collection=self.name, error=str(exc))
            self._document_corrupt = True
            return []
        except OSError as exc:
            raise StorageIOError(self.path, f"read failed: {exc}") from exc

        if not isinstance(document, list):
            logger.error(
                "collection_unparsable",
                collection=self.name,
                error=f"expected a JSON array, got {type(document).__name__}",
            )
            self._document_corrupt = True
            return []

        items = []
        for index, item in enumerate(document):
            if isinstance(item, dict):
                items.append(item)
            else:
                logger.warning("corrupt_entry_skipped", collection=self.name, index=index)
                metrics.corrupt_entries_skipped_total.labels(collection=self.name).inc()
        return items

    def write_items(self, items: list[dict[str, Any]]) -> None:
        """Atomically replace the collection document. Caller must hold the lock."""
        if self._document_corrupt:
            self._move_corrupt_document_aside()

        try:
            fd, temp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
        except OSError as exc:
            metrics.storage_write_failures_total.labels(collection=self.name).inc()
            raise StorageIOError(self.path, f"cannot create temporary file: {exc}") from exc

        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(items, f, indent=2, ensure_ascii=False)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.path)
        except BaseException as exc:
            try:
                temp_path.unlink(missing_ok=True)
            except OSError:
                logger.warning("temp_file_cleanup_failed", path=str(temp_path))
            if isinstance(exc, OSError):
                metrics.storage_write_failures_total.labels(collection=self.name).inc()
                logger.error("collection_write_failed", collection=self.name, error=str(exc))
                raise StorageIOError(self.path, f"write failed: {exc}") from exc
            raise

    def _move_corrupt_document_aside(self) -> None:
        stamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%S%fZ")
        backup = self.path.with_name(f"{self.path.name}.corrupt-{stamp}")
        try:
            self.path.replace(backup)
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise StorageIOError(self.path, f"cannot preserve corrupt document: {exc}") from exc
        else:
            logger.warning("corrupt_collection_preserved", collection=self.name, backup=str(backup))
        self._document_corrupt = False
