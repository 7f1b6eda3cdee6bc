"""
Transactional fixture loading.

All tables previously loaded through the cache are cleared and every parsed
row is inserted inside one transaction, with foreign-key checks disabled for
its duration. Rows are inserted one parameterized statement at a time, in
sequence, on a single connection.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Mapping, Sequence

from sqlalchemy import column, table
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql.dml import Insert

from fixturer.db.dialects import Dialect, foreign_keys_disabled, split_table_name
from fixturer.domain.fixtures.columns import TableBatch

logger = logging.getLogger(__name__)


@dataclass
class LoadResult:
    tables: List[str] = field(default_factory=list)
    tables_cleared: List[str] = field(default_factory=list)
    rows_inserted: int = 0
    rows_failed: int = 0


def build_insert_statement(batch: TableBatch, index: int) -> Insert:
    """
    INSERT for row ``index`` of ``batch``.

    Columns the row did not supply are left out of the statement so the
    schema default applies.
    """
    values = batch.row_values(index)
    schema, table_name = split_table_name(batch.table_name)
    target = table(table_name, *[column(name) for name in values], schema=schema)
    statement = target.insert()
    if values:
        statement = statement.values(values)
    return statement


def _insert_row(conn: Connection, dialect: Dialect, batch: TableBatch, index: int, strict: bool) -> bool:
    try:
        statement = build_insert_statement(batch, index)
        if dialect.row_savepoints and not strict:
            # A failed statement aborts the whole PostgreSQL transaction
            # unless it ran inside its own savepoint.
            with conn.begin_nested():
                conn.execute(statement)
        else:
            conn.execute(statement)
    except SQLAlchemyError as exc:
        if strict:
            raise
        logger.error("Can't insert row %d into %s: %s", index + 1, batch.table_name, exc)
        return False
    return True


def load_batches(
    engine: Engine,
    dialect: Dialect,
    batches: Mapping[str, TableBatch],
    tables_to_clear: Sequence[str],
    strict: bool = False,
) -> LoadResult:
    """
    Replace table contents with the given batches in one transaction.

    Args:
        engine: Engine connected to the target database
        dialect: Dialect strategy for the engine
        batches: Table name -> parsed batch
        tables_to_clear: Every table loaded so far; cleared before inserting
        strict: Raise on the first failing row instead of logging it

    Returns:
        LoadResult with inserted and failed row counts

    Raises:
        sqlalchemy.exc.SQLAlchemyError: Clearing a table or committing failed,
            or (strict mode) a row failed. The transaction is rolled back.
    """
    result = LoadResult(tables=sorted(batches), tables_cleared=list(tables_to_clear))

    with engine.connect() as conn:
        with foreign_keys_disabled(conn, dialect):
            with conn.begin():
                dialect.clear_tables(conn, result.tables_cleared)
                for table_name in result.tables:
                    batch = batches[table_name]
                    inserted = 0
                    for index in range(batch.row_count):
                        if _insert_row(conn, dialect, batch, index, strict):
                            inserted += 1
                        else:
                            result.rows_failed += 1
                    result.rows_inserted += inserted
                    logger.debug("Inserted %d/%d rows into %s", inserted, batch.row_count, table_name)

    logger.info(
        "Loaded %d fixture rows into %d tables (%d rows failed)",
        result.rows_inserted,
        len(result.tables),
        result.rows_failed,
    )
    return result
