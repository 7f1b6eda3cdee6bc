"""
Test database preparation.

``Fixturer`` recreates the test database, loads its schema, imports YAML
fixtures and snapshots table contents to CSV. Each public operation opens the
database handle lazily and closes it before returning.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from fixturer.core.config import Settings, settings as default_settings
from fixturer.core.errors import ConfigError
from fixturer.db.schema import load_schema_file
from fixturer.db.session import DatabaseHandle
from fixturer.db.snapshots import export_tables, import_tables, snapshot_dir
from fixturer.domain.fixtures.cache import ImportCache
from fixturer.domain.fixtures.loader import load_batches
from fixturer.domain.fixtures.orchestrator import FixtureImporter

logger = logging.getLogger(__name__)


@dataclass
class ImportSummary:
    tables: List[str] = field(default_factory=list)
    rows_inserted: int = 0
    rows_failed: int = 0
    from_cache: bool = False
    skipped_files: List[str] = field(default_factory=list)


class Fixturer:
    """
    Prepares a repeatable database state for a test suite.

    Args:
        settings: Connection, path and behaviour settings; defaults to the
            process-wide ``fixturer.core.config.settings``.
        cache: Parsed fixture cache. Pass the same cache to several
            ``Fixturer`` instances to share parsed directories between them;
            each instance gets its own cache otherwise.
    """

    def __init__(self, settings: Optional[Settings] = None, cache: Optional[ImportCache] = None):
        self.settings = settings or default_settings
        self.cache = cache if cache is not None else ImportCache()
        # Resolved once; later changes to the settings object are ignored.
        self.recreate_enabled = bool(self.settings.recreate_database)
        self.strict = bool(self.settings.strict_fixtures)
        self.parallelism = self._validate_parallelism(self.settings.parallelism)
        self._db: Optional[DatabaseHandle] = None

    @staticmethod
    def _validate_parallelism(count) -> int:
        if isinstance(count, bool) or not isinstance(count, int) or count < 1:
            raise ConfigError(f"Parallelism must be an integer >= 1, got {count!r}")
        return count

    def set_parallelism(self, count: int) -> "Fixturer":
        """Set the connection pool size used by subsequent operations."""
        self.parallelism = self._validate_parallelism(count)
        return self

    def _ensure_db_connected(self):
        if self._db is None:
            self._db = DatabaseHandle(self.settings, pool_size=self.parallelism)
        return self._db.ensure_connected()

    def _ensure_db_disconnected(self) -> None:
        if self._db is None:
            return
        self._db.ensure_disconnected()
        self._db = None

    def recreate_database_with_schema_and_fixtures(self) -> ImportSummary:
        """
        Recreate the database and load the schema (when recreation is
        enabled), then import fixtures.

        Stops at the first failure; steps that already completed are not
        undone.
        """
        if self.recreate_enabled:
            self.recreate_database()
            self.load_schema()
        return self.import_fixtures()

    def recreate_database(self) -> None:
        """Drop the target database if it exists and create it empty."""
        # The target database may not exist, so the pooled handle is not used.
        handle = DatabaseHandle(self.settings, pool_size=self.parallelism)
        handle.dialect.recreate_database(handle.server_url, self.settings.database_name)

    def load_schema(self) -> int:
        """Execute the schema file; returns the number of statements run."""
        engine = self._ensure_db_connected()
        try:
            return load_schema_file(engine, self._db.dialect, self.settings.schema_path)
        finally:
            self._ensure_db_disconnected()

    def import_fixtures(self) -> ImportSummary:
        """
        Import every fixture file from ``settings.fixtures_path``.

        Fixture directories are parsed once per cache; repeated imports reuse
        the parsed rows without touching the files again.
        """
        importer = FixtureImporter(self.cache, extension=self.settings.fixture_extension, strict=self.strict)
        parsed = importer.collect(self.settings.fixtures_path)

        engine = self._ensure_db_connected()
        try:
            result = load_batches(
                engine,
                self._db.dialect,
                parsed.batches,
                self.cache.loaded_tables,
                strict=self.strict,
            )
        finally:
            self._ensure_db_disconnected()

        return ImportSummary(
            tables=result.tables,
            rows_inserted=result.rows_inserted,
            rows_failed=result.rows_failed,
            from_cache=parsed.from_cache,
            skipped_files=parsed.skipped_files,
        )

    def export_csv_snapshot(self, suffix: str, tables: Optional[List[str]] = None) -> str:
        """
        Export tables to ``<csv_dump_root>/<suffix>/<table>.csv``.

        Returns:
            The snapshot directory.
        """
        directory = snapshot_dir(self.settings.csv_dump_root, suffix)
        engine = self._ensure_db_connected()
        try:
            export_tables(engine, self._db.dialect, directory, tables)
        finally:
            self._ensure_db_disconnected()
        return directory

    def import_csv_snapshot(self, suffix: str) -> List[str]:
        """Reload every table found in the snapshot for ``suffix``."""
        directory = snapshot_dir(self.settings.csv_dump_root, suffix)
        engine = self._ensure_db_connected()
        try:
            return import_tables(engine, self._db.dialect, directory)
        finally:
            self._ensure_db_disconnected()
