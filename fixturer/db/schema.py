"""
Schema file loading.

The schema file is plain SQL; statements are separated by ``;`` and run in
file order inside a single transaction with foreign-key checks disabled, so
tables may be declared before the tables they reference.
"""
import logging
from typing import List

from sqlalchemy.engine import Engine

from fixturer.db.dialects import Dialect, foreign_keys_disabled

logger = logging.getLogger(__name__)

STATEMENT_SEPARATOR = ";"


def split_statements(sql: str) -> List[str]:
    """Split a schema file into trimmed, non-empty statements."""
    statements = []
    for chunk in sql.split(STATEMENT_SEPARATOR):
        statement = chunk.strip()
        if statement:
            statements.append(statement)
    return statements


def load_schema_file(engine: Engine, dialect: Dialect, schema_path: str) -> int:
    """
    Execute every statement from ``schema_path``.

    Returns:
        Number of statements executed.

    Raises:
        OSError: The schema file cannot be read.
        sqlalchemy.exc.SQLAlchemyError: A statement failed; nothing is committed.
    """
    logger.info("Load database schema from %s", schema_path)
    with open(schema_path, encoding="utf-8") as handle:
        statements = split_statements(handle.read())

    with engine.connect() as conn:
        with foreign_keys_disabled(conn, dialect):
            with conn.begin():
                for statement in statements:
                    # exec_driver_sql keeps ':' in DDL (defaults, comments) from
                    # being read as bind parameters.
                    conn.exec_driver_sql(statement)

    logger.info("Executed %d schema statements", len(statements))
    return len(statements)
