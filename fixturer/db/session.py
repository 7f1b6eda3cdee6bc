import logging
import socket
from contextlib import closing
from typing import Optional
from urllib.parse import parse_qsl

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import URL, make_url
from sqlalchemy.exc import SQLAlchemyError

from fixturer.core.config import Settings
from fixturer.db.dialects import Dialect, get_dialect

logger = logging.getLogger(__name__)


def _report_connection_failure(url: URL, exc: Exception) -> None:
    """Log high-signal diagnostics when the test database cannot be reached."""
    logger.error("Could not connect to database: %s", exc)

    masked_url = url.set(password="***") if url.password else url
    logger.error(
        "Connection settings: dialect=%s driver=%s host=%s port=%s database=%s username=%s",
        masked_url.get_backend_name(),
        masked_url.get_driver_name() or "default",
        masked_url.host or "localhost",
        masked_url.port or "(default)",
        masked_url.database,
        masked_url.username,
    )

    if url.get_backend_name() == "sqlite" or not url.host:
        return

    host = url.host
    port = url.port or {"postgresql": 5432, "mysql": 3306}.get(url.get_backend_name(), 0)
    try:
        with closing(socket.create_connection((host, port), timeout=2)):
            logger.error("Socket check: able to reach %s:%s, check credentials and database name", host, port)
    except OSError as socket_err:
        logger.error("Socket check: unable to reach %s:%s (%s)", host, port, socket_err)


def build_database_url(settings: Settings) -> URL:
    """Server URL + target database + extra connection parameters."""
    url = make_url(settings.database_url).set(database=settings.database_name)
    if settings.database_params:
        url = url.update_query_pairs(parse_qsl(settings.database_params))
    return url


def build_server_url(settings: Settings) -> URL:
    """Server URL that is not scoped to the target database."""
    url = make_url(settings.database_url)
    if settings.database_params:
        url = url.update_query_pairs(parse_qsl(settings.database_params))
    return url


class DatabaseHandle:
    """
    Lazily established connection pool owned by one ``Fixturer``.

    Public fixture operations bracket their work with ``ensure_connected`` and
    ``ensure_disconnected``; the engine is disposed between operations so a
    recreated database is never served from a stale pool.
    """

    def __init__(self, settings: Settings, pool_size: int):
        self.url = build_database_url(settings)
        self.server_url = build_server_url(settings)
        self.dialect: Dialect = get_dialect(self.url)
        self.pool_size = pool_size
        self._engine: Optional[Engine] = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Database handle is not connected")
        return self._engine

    @property
    def connected(self) -> bool:
        return self._engine is not None

    def _create_engine(self) -> Engine:
        if self.dialect.name == "sqlite":
            engine = create_engine(self.url, pool_size=self.pool_size)
        else:
            engine = create_engine(
                self.url,
                pool_size=self.pool_size,
                max_overflow=0,
                pool_pre_ping=True,
            )
        return self.dialect.configure_engine(engine)

    def ensure_connected(self) -> Engine:
        if self._engine is not None:
            return self._engine

        engine = self._create_engine()
        try:
            # Test connection eagerly so failures surface immediately.
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            engine.dispose()
            _report_connection_failure(self.url, exc)
            raise

        self._engine = engine
        return engine

    def ensure_disconnected(self) -> None:
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None
