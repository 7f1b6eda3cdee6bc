"""
Concurrent fixture parsing.

One task per fixture file is submitted to a thread pool sized to the file
count. Each task reads its file, parses it, aligns its columns and publishes
the resulting batch into the shared ``ImportCache``. The directory is only
marked as parsed after every submitted task has completed, so a table can
never be cleared by the loader without its batch being available.
"""
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from fixturer.core.errors import FixtureParseError
from fixturer.domain.fixtures.cache import ImportCache
from fixturer.domain.fixtures.columns import TableBatch, build_table_batch
from fixturer.domain.fixtures.discovery import (
    DEFAULT_FIXTURE_EXTENSION,
    FixtureFile,
    discover_fixture_files,
)
from fixturer.domain.fixtures.parser import parse_fixture

logger = logging.getLogger(__name__)


@dataclass
class ParsedFixtures:
    directory: str
    batches: Dict[str, TableBatch]
    from_cache: bool = False
    skipped_files: List[str] = field(default_factory=list)

    @property
    def tables(self) -> List[str]:
        return sorted(self.batches)

    @property
    def row_count(self) -> int:
        return sum(batch.row_count for batch in self.batches.values())


class FixtureImporter:
    """Parses a fixture directory into table batches, at most once per cache."""

    def __init__(
        self,
        cache: ImportCache,
        extension: str = DEFAULT_FIXTURE_EXTENSION,
        strict: bool = False,
    ):
        self.cache = cache
        self.extension = extension
        self.strict = strict

    def collect(self, directory: str) -> ParsedFixtures:
        """
        Return the table batches for ``directory``.

        A directory already parsed through this importer's cache is served
        from the cache without listing or reading any file.

        Raises:
            OSError: The directory cannot be listed, or (strict mode) a
                fixture file cannot be read.
            FixtureParseError: Strict mode only, a fixture file is malformed.
        """
        cached = self.cache.try_reuse(directory)
        if cached is not None:
            logger.info("Reusing %d parsed fixture tables for %s", len(cached), directory)
            return ParsedFixtures(directory=directory, batches=cached, from_cache=True)

        files = discover_fixture_files(directory, self.extension)
        logger.info("Import YML fixtures: %d files in %s", len(files), directory)

        tables: List[str] = []
        skipped: List[str] = []
        if files:
            try:
                tables, skipped = self._parse_all(directory, files)
            except Exception:
                self.cache.discard_pending(directory)
                raise

        batches = self.cache.mark_parsed(directory, tables)
        return ParsedFixtures(directory=directory, batches=batches, skipped_files=sorted(skipped))

    def _parse_all(self, directory: str, files: List[FixtureFile]) -> Tuple[List[str], List[str]]:
        tables: List[str] = []
        skipped: List[str] = []

        with ThreadPoolExecutor(max_workers=len(files), thread_name_prefix="fixture-parse") as executor:
            future_to_file = {
                executor.submit(self._parse_file, directory, fixture): fixture
                for fixture in files
            }
            for future in as_completed(future_to_file):
                fixture = future_to_file[future]
                parsed_cleanly = future.result()
                tables.append(fixture.table_name)
                if not parsed_cleanly:
                    skipped.append(fixture.file_name)

        if len(tables) != len(files):
            raise RuntimeError(
                f"Only {len(tables)} of {len(files)} fixture parse tasks completed for {directory}"
            )
        return tables, skipped

    def _parse_file(self, directory: str, fixture: FixtureFile) -> bool:
        """Parse one file and publish its batch. Returns False if it was skipped."""
        records = []
        parsed_cleanly = True
        try:
            records = parse_fixture(fixture.read(), fixture.path)
        except OSError as exc:
            if self.strict:
                raise
            logger.error("Can't read fixture %r: %s", fixture.file_name, exc)
            parsed_cleanly = False
        except FixtureParseError as exc:
            if self.strict:
                raise
            logger.warning("%s", exc.message)
            parsed_cleanly = False

        batch = build_table_batch(fixture.table_name, records)
        self.cache.store(directory, fixture.table_name, batch)
        logger.debug(
            "Parsed %s: %d rows, columns %s",
            fixture.file_name,
            batch.row_count,
            list(batch.columns),
        )
        return parsed_cleanly
