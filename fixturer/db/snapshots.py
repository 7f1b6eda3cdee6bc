"""
Flat-file snapshots of table contents.

A snapshot is a directory holding one ``<table>.csv`` per table, written and
read by the database engine's native bulk path. The directory is recreated
with open permissions before each export because the database server process
(not this one) writes the files.
"""
import logging
import os
import shutil
from typing import Dict, List, Optional, Sequence

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from fixturer.db.dialects import Dialect, foreign_keys_disabled

logger = logging.getLogger(__name__)

CSV_EXTENSION = ".csv"


def snapshot_dir(root: str, suffix: str) -> str:
    """Directory holding the snapshot for one test suite."""
    if not suffix or os.sep in suffix or suffix in (".", ".."):
        raise ValueError(f"Invalid snapshot suffix: {suffix!r}")
    return os.path.join(os.path.abspath(root), suffix)


def csv_path(directory: str, table_name: str) -> str:
    return os.path.join(directory, table_name + CSV_EXTENSION)


def snapshot_tables(directory: str) -> List[str]:
    """Table names for every ``<table>.csv`` file directly under ``directory``."""
    return sorted(
        entry.name[: -len(CSV_EXTENSION)]
        for entry in os.scandir(directory)
        if entry.is_file() and entry.name.endswith(CSV_EXTENSION)
    )


def _prepare_directory(directory: str) -> None:
    shutil.rmtree(directory, ignore_errors=True)
    os.makedirs(directory)
    # makedirs applies the umask; chmod makes the directory writable for the
    # database server user.
    os.chmod(directory, 0o777)


def export_tables(
    engine: Engine,
    dialect: Dialect,
    directory: str,
    tables: Optional[Sequence[str]] = None,
) -> Dict[str, str]:
    """
    Export tables to ``<directory>/<table>.csv``.

    Args:
        engine: Engine connected to the target database
        dialect: Dialect strategy for the engine
        directory: Snapshot directory; removed and recreated first
        tables: Tables to export, defaults to every table in the database

    Returns:
        Mapping of table name to written file path
    """
    if tables is None:
        tables = sorted(inspect(engine).get_table_names())

    _prepare_directory(directory)
    logger.info("Export %d tables to %s", len(tables), directory)

    exported = {}
    with engine.connect() as conn:
        for table_name in tables:
            path = csv_path(directory, table_name)
            dialect.export_table(conn, table_name, path)
            exported[table_name] = path
            logger.debug("Exported %s to %s", table_name, path)
        conn.commit()

    return exported


def import_tables(engine: Engine, dialect: Dialect, directory: str) -> List[str]:
    """
    Replace the contents of every table that has a snapshot file.

    All tables are cleared and reloaded inside one transaction with
    foreign-key checks disabled.

    Raises:
        OSError: The snapshot directory cannot be listed.
    """
    tables = snapshot_tables(directory)
    logger.info("Import %d tables from %s", len(tables), directory)

    with engine.connect() as conn:
        with foreign_keys_disabled(conn, dialect):
            with conn.begin():
                dialect.clear_tables(conn, tables)
                for table_name in tables:
                    dialect.import_table(conn, table_name, csv_path(directory, table_name))
                    logger.debug("Imported %s", table_name)

    return tables
