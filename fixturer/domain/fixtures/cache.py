import logging
import os
import threading
from typing import Dict, Iterable, List, Optional

from fixturer.domain.fixtures.columns import TableBatch

logger = logging.getLogger(__name__)


class ImportCache:
    """
    Parsed fixture batches, kept for the lifetime of the cache object.

    A directory is parsed at most once: after ``mark_parsed`` every later
    ``try_reuse`` for the same path returns the stored batches verbatim.
    Nothing is evicted or expired and files are never re-checked, so edits made
    on disk after the first import are not picked up until a new cache is used.

    ``store`` is called from parse worker threads; every read-modify-write goes
    through one lock.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._pending: Dict[str, Dict[str, TableBatch]] = {}
        self._parsed_dirs: Dict[str, List[str]] = {}
        self._batches: Dict[str, Dict[str, TableBatch]] = {}
        self._loaded_tables: List[str] = []

    @staticmethod
    def _key(directory: str) -> str:
        return os.path.abspath(directory)

    def try_reuse(self, directory: str) -> Optional[Dict[str, TableBatch]]:
        """Batches for ``directory`` if it was fully parsed before, else ``None``."""
        key = self._key(directory)
        with self._lock:
            if key not in self._parsed_dirs:
                return None
            return dict(self._batches[key])

    def store(self, directory: str, table_name: str, batch: TableBatch) -> None:
        key = self._key(directory)
        with self._lock:
            self._pending.setdefault(key, {})[table_name] = batch

    def mark_parsed(self, directory: str, tables: Iterable[str]) -> Dict[str, TableBatch]:
        """
        Record ``directory`` as fully parsed with ``tables``.

        Only batches for the listed tables are kept; anything else stored for
        the directory is dropped.
        """
        key = self._key(directory)
        tables = list(tables)
        with self._lock:
            pending = self._pending.pop(key, {})
            missing = [table_name for table_name in tables if table_name not in pending]
            if missing:
                raise RuntimeError(f"No parsed batch stored for tables: {', '.join(missing)}")
            batches = {table_name: pending[table_name] for table_name in tables}
            self._parsed_dirs[key] = tables
            self._batches[key] = batches
            for table_name in tables:
                if table_name not in self._loaded_tables:
                    self._loaded_tables.append(table_name)
            return dict(batches)

    def discard_pending(self, directory: str) -> None:
        with self._lock:
            self._pending.pop(self._key(directory), None)

    def is_parsed(self, directory: str) -> bool:
        with self._lock:
            return self._key(directory) in self._parsed_dirs

    @property
    def loaded_tables(self) -> List[str]:
        """Every table recorded by any parsed directory, in first-recorded order."""
        with self._lock:
            return list(self._loaded_tables)
