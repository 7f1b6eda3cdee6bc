import logging
import os
from dataclasses import dataclass
from typing import List

logger = logging.getLogger(__name__)

DEFAULT_FIXTURE_EXTENSION = ".yml"


@dataclass(frozen=True)
class FixtureFile:
    """One fixture file; the file name minus its extension is the table name."""

    path: str
    table_name: str

    @property
    def file_name(self) -> str:
        return os.path.basename(self.path)

    def read(self) -> bytes:
        with open(self.path, "rb") as handle:
            return handle.read()


def table_name_for(file_name: str, extension: str = DEFAULT_FIXTURE_EXTENSION) -> str:
    if file_name.endswith(extension):
        return file_name[: -len(extension)]
    return file_name


def discover_fixture_files(directory: str, extension: str = DEFAULT_FIXTURE_EXTENSION) -> List[FixtureFile]:
    """
    List fixture files directly under ``directory``.

    Sub-directories and files without ``extension`` are skipped.

    Raises:
        OSError: The directory does not exist or cannot be listed.
    """
    files = []
    with os.scandir(directory) as entries:
        for entry in entries:
            if entry.is_dir() or not entry.name.endswith(extension) or entry.name == extension:
                continue
            files.append(FixtureFile(path=entry.path, table_name=table_name_for(entry.name, extension)))

    files.sort(key=lambda fixture: fixture.path)
    logger.debug("Discovered %d fixture files in %s", len(files), directory)
    return files
