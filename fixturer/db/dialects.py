"""
Engine-specific SQL used while preparing a test database.

Everything that differs between PostgreSQL, MySQL and SQLite lives here:
foreign-key toggling, table clearing, database recreation and the native
row-delimited CSV export/import path. Callers only see the ``Dialect``
interface returned by ``get_dialect``.
"""
import csv
import logging
import os
from contextlib import contextmanager
from typing import Optional, Sequence, Tuple

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.engine.url import URL
from sqlalchemy.exc import SQLAlchemyError

from fixturer.core.errors import ConfigError

logger = logging.getLogger(__name__)

# Marker written for NULL by the SQLite CSV path, matching MySQL's OUTFILE output.
CSV_NULL = "\\N"


def _sql_literal(value: str) -> str:
    """Render a string as a single-quoted SQL literal."""
    return "'" + value.replace("'", "''") + "'"


def split_table_name(table_name: str) -> Tuple[Optional[str], str]:
    """Split ``schema.table`` into its parts; plain names have no schema."""
    if "." in table_name:
        schema, name = table_name.split(".", 1)
        return schema, name
    return None, table_name


def _escape_csv_value(value):
    if value is None:
        return CSV_NULL
    if isinstance(value, str):
        return value.replace("\\", "\\\\")
    return value


def _unescape_csv_value(value: str):
    if value == CSV_NULL:
        return None
    return value.replace("\\\\", "\\")


class Dialect:
    """Base class for engine-specific database preparation statements."""

    name = "generic"
    # Whether a failed statement aborts the surrounding transaction, so
    # lenient row inserts have to be wrapped in a SAVEPOINT.
    row_savepoints = False

    def quote(self, conn: Connection, identifier: str) -> str:
        return conn.dialect.identifier_preparer.quote(identifier)

    def quote_table(self, conn: Connection, table_name: str) -> str:
        """Quote a table name, keeping a ``schema.`` prefix as a separate identifier."""
        preparer = conn.dialect.identifier_preparer
        schema, name = split_table_name(table_name)
        if schema is None:
            return preparer.quote(name)
        return f"{preparer.quote_schema(schema)}.{preparer.quote(name)}"

    def configure_engine(self, engine: Engine) -> Engine:
        return engine

    def disable_foreign_keys(self, conn: Connection) -> None:
        raise NotImplementedError

    def enable_foreign_keys(self, conn: Connection) -> None:
        raise NotImplementedError

    def clear_tables(self, conn: Connection, tables: Sequence[str]) -> None:
        # DELETE stays inside the caller's transaction; MySQL TRUNCATE commits.
        for table_name in tables:
            conn.execute(text(f"DELETE FROM {self.quote_table(conn, table_name)}"))

    def recreate_database(self, server_url: URL, database_name: str) -> None:
        raise NotImplementedError

    def export_table(self, conn: Connection, table_name: str, path: str) -> None:
        raise NotImplementedError

    def import_table(self, conn: Connection, table_name: str, path: str) -> None:
        raise NotImplementedError

    def _drop_and_create(self, server_url: URL, database_name: str) -> None:
        # The target database may not exist yet, so this engine is never
        # scoped to it; DROP/CREATE DATABASE cannot run inside a transaction.
        engine = create_engine(server_url, isolation_level="AUTOCOMMIT")
        try:
            with engine.connect() as conn:
                quoted = self.quote(conn, database_name)
                logger.info("Drop database %s", database_name)
                conn.execute(text(f"DROP DATABASE IF EXISTS {quoted}"))
                logger.info("Create database %s", database_name)
                conn.execute(text(f"CREATE DATABASE {quoted}"))
        finally:
            engine.dispose()


class PostgresDialect(Dialect):
    name = "postgresql"
    row_savepoints = True

    def disable_foreign_keys(self, conn: Connection) -> None:
        # Requires a superuser (or a role allowed to set it), which test
        # databases normally run as.
        conn.execute(text("SET session_replication_role = replica"))
        conn.commit()

    def enable_foreign_keys(self, conn: Connection) -> None:
        conn.execute(text("SET session_replication_role = DEFAULT"))
        conn.commit()

    def recreate_database(self, server_url: URL, database_name: str) -> None:
        self._drop_and_create(server_url.set(database=server_url.database or "postgres"), database_name)

    def export_table(self, conn: Connection, table_name: str, path: str) -> None:
        conn.exec_driver_sql(
            f"COPY {self.quote_table(conn, table_name)} TO {_sql_literal(path)} WITH (FORMAT csv)"
        )

    def import_table(self, conn: Connection, table_name: str, path: str) -> None:
        conn.exec_driver_sql(
            f"COPY {self.quote_table(conn, table_name)} FROM {_sql_literal(path)} WITH (FORMAT csv)"
        )


class MySQLDialect(Dialect):
    name = "mysql"

    _CSV_OPTIONS = "FIELDS TERMINATED BY ',' OPTIONALLY ENCLOSED BY '\"' LINES TERMINATED BY '\\n'"

    def disable_foreign_keys(self, conn: Connection) -> None:
        conn.execute(text("SET FOREIGN_KEY_CHECKS=0"))
        conn.commit()

    def enable_foreign_keys(self, conn: Connection) -> None:
        conn.execute(text("SET FOREIGN_KEY_CHECKS=1"))
        conn.commit()

    def recreate_database(self, server_url: URL, database_name: str) -> None:
        self._drop_and_create(server_url._replace(database=None), database_name)

    def export_table(self, conn: Connection, table_name: str, path: str) -> None:
        conn.exec_driver_sql(
            f"SELECT * FROM {self.quote_table(conn, table_name)} "
            f"INTO OUTFILE {_sql_literal(path)} {self._CSV_OPTIONS}"
        )

    def import_table(self, conn: Connection, table_name: str, path: str) -> None:
        conn.exec_driver_sql(
            f"LOAD DATA INFILE {_sql_literal(path)} "
            f"INTO TABLE {self.quote_table(conn, table_name)} {self._CSV_OPTIONS}"
        )


class SQLiteDialect(Dialect):
    name = "sqlite"

    def configure_engine(self, engine: Engine) -> Engine:
        """
        Let SQLAlchemy emit BEGIN itself so DDL runs inside the transaction.

        The sqlite3 driver otherwise commits implicitly before every
        CREATE/DROP, which would leave a partial schema behind on failure.
        """

        @event.listens_for(engine, "connect")
        def _disable_driver_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _emit_begin(conn):
            conn.exec_driver_sql("BEGIN")

        return engine

    def _pragma(self, conn: Connection, statement: str) -> None:
        # PRAGMA foreign_keys is a no-op inside a transaction, so it bypasses
        # the Connection (which would autobegin) and runs on the driver.
        conn.connection.driver_connection.execute(statement)

    def disable_foreign_keys(self, conn: Connection) -> None:
        self._pragma(conn, "PRAGMA foreign_keys=OFF")

    def enable_foreign_keys(self, conn: Connection) -> None:
        self._pragma(conn, "PRAGMA foreign_keys=ON")

    def recreate_database(self, server_url: URL, database_name: str) -> None:
        if database_name in ("", ":memory:"):
            return
        if os.path.exists(database_name):
            logger.info("Drop database %s", database_name)
            os.remove(database_name)
        parent = os.path.dirname(os.path.abspath(database_name))
        os.makedirs(parent, exist_ok=True)
        logger.info("Create database %s", database_name)
        engine = create_engine(server_url.set(database=database_name))
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        finally:
            engine.dispose()

    def export_table(self, conn: Connection, table_name: str, path: str) -> None:
        """
        Write rows through the ``csv`` module, ``\\N`` for NULL.

        Backslashes in text values are doubled so a literal ``\\N`` survives a
        round trip. Values are written as text; BLOB columns are not supported.
        """
        result = conn.execute(text(f"SELECT * FROM {self.quote_table(conn, table_name)}"))
        with open(path, "w", newline="", encoding="utf-8") as handle:
            writer = csv.writer(handle, lineterminator="\n")
            for row in result:
                writer.writerow([_escape_csv_value(value) for value in row])

    def import_table(self, conn: Connection, table_name: str, path: str) -> None:
        with open(path, newline="", encoding="utf-8") as handle:
            rows = [
                tuple(_unescape_csv_value(value) for value in row)
                for row in csv.reader(handle)
                if row
            ]
        if not rows:
            return
        placeholders = ", ".join("?" for _ in rows[0])
        conn.exec_driver_sql(
            f"INSERT INTO {self.quote_table(conn, table_name)} VALUES ({placeholders})",
            rows,
        )


_DIALECTS = {
    "postgresql": PostgresDialect,
    "mysql": MySQLDialect,
    "mariadb": MySQLDialect,
    "sqlite": SQLiteDialect,
}


def get_dialect(url: URL) -> Dialect:
    backend = url.get_backend_name()
    try:
        return _DIALECTS[backend]()
    except KeyError:
        raise ConfigError(f"Unsupported database backend: {backend!r}") from None


@contextmanager
def foreign_keys_disabled(conn: Connection, dialect: Dialect):
    """
    Disable foreign-key checks on ``conn`` for the duration of the block.

    Re-enabling always runs on the way out, including when the block raised;
    a failure to re-enable is logged so it cannot mask the original error.
    """
    dialect.disable_foreign_keys(conn)
    try:
        yield conn
    finally:
        try:
            if conn.in_transaction():
                conn.rollback()
            dialect.enable_foreign_keys(conn)
        except SQLAlchemyError as exc:
            logger.error("Unable to re-enable foreign key checks: %s", exc)
