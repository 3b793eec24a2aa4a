"""Database execution for query and exec tasks."""

from __future__ import annotations

import logging
import math
import re
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Connection, CursorResult, Engine, make_url
from sqlalchemy.exc import ArgumentError, NoSuchModuleError, SQLAlchemyError

from task_connector.agent.context import IterationContext
from task_connector.agent.errors import (
    DatabaseConnectionError,
    ExecutionError,
    TaskCancelledError,
    TaskTimeoutError,
)
from task_connector.agent.models import DBTaskConfig, ExecStatus, ResultRow
from task_connector.agent.row_mapper import RowMapper

logger = logging.getLogger(__name__)

DEFAULT_POOL_SIZE = 100

# user[:password]@][net[(addr)]]/dbname[?param=value&...]
_CLASSIC_DSN = re.compile(
    r"^(?:(?P<user>[^:@/]*)(?::(?P<password>.*))?@)?"
    r"(?:(?P<net>[A-Za-z0-9_]+)(?:\((?P<addr>[^)]*)\))?)?"
    r"/(?P<database>[^?]*)"
    r"(?:\?(?P<query>.*))?$",
)

EngineFactory = Callable[..., Engine]

# Classic DSN options that no Python DBAPI driver accepts as a connect keyword.
_UNSUPPORTED_DSN_PARAMS = frozenset(
    {
        "allowAllFiles",
        "allowCleartextPasswords",
        "allowNativePasswords",
        "allowOldPasswords",
        "checkConnLiveness",
        "clientFoundRows",
        "columnsWithAlias",
        "interpolateParams",
        "loc",
        "maxAllowedPacket",
        "multiStatements",
        "parseTime",
        "readTimeout",
        "rejectReadOnly",
        "timeout",
        "writeTimeout",
    },
)

_WATCH_SLICE_SECONDS = 0.1


def build_database_url(driver: str, dsn: str) -> URL:
    """Resolve a task DSN into a SQLAlchemy URL.

    URL-form DSNs (``scheme://...``) are used verbatim. Classic
    ``user:pass@tcp(host:port)/db`` DSNs are bound to ``driver``.
    """

    if "://" in dsn:
        try:
            return make_url(dsn)
        except ArgumentError as error:
            raise DatabaseConnectionError(f"Invalid database DSN: {error}") from error

    match = _CLASSIC_DSN.match(dsn.strip())
    if match is None:
        raise DatabaseConnectionError("Invalid database DSN: unrecognised format")

    query: dict[str, str] = {}
    if match.group("query"):
        for part in match.group("query").split("&"):
            if not part:
                continue
            key, _, value = part.partition("=")
            if key in _UNSUPPORTED_DSN_PARAMS:
                logger.debug("Dropping unsupported DSN parameter %s", key)
                continue
            query[key] = value

    host: str | None = "localhost"
    port: int | None = None
    addr = match.group("addr") or ""
    if match.group("net") == "unix":
        host = None
        if addr:
            query["unix_socket"] = addr
    elif addr:
        host, _, raw_port = addr.rpartition(":") if ":" in addr else (addr, "", "")
        host = host or "localhost"
        if raw_port:
            try:
                port = int(raw_port)
            except ValueError as error:
                raise DatabaseConnectionError(
                    f"Invalid database DSN: bad port {raw_port!r}",
                ) from error

    return URL.create(
        drivername=driver,
        username=match.group("user") or None,
        password=match.group("password"),
        host=host,
        port=port,
        database=match.group("database") or None,
        query=query,
    )


class SQLExecutor:
    """Run one task statement on a connection scoped to that task."""

    def __init__(
        self,
        *,
        engine_factory: EngineFactory = create_engine,
        pool_size: int = DEFAULT_POOL_SIZE,
    ) -> None:
        self.engine_factory = engine_factory
        self.pool_size = pool_size

    def query(
        self,
        config: DBTaskConfig,
        payload: str,
        context: IterationContext,
    ) -> list[ResultRow]:
        """Execute a row-returning statement and map every row."""

        rows: list[ResultRow] = []
        with self._transaction(config, context) as connection:
            result = _run_statement(connection, payload)
            context.check()
            if not result.returns_rows:
                result.close()
                return rows
            try:
                column_names = list(result.keys())
            except SQLAlchemyError as error:
                result.close()
                raise ExecutionError(f"Cannot read result columns: {_describe(error)}") from error

            mapper = RowMapper(column_names)
            try:
                for raw_row in result:
                    context.check()
                    mapper.update(raw_row)
                    rows.append(mapper.get())
            except SQLAlchemyError as error:
                raise ExecutionError(f"Cannot read result rows: {_describe(error)}") from error
            finally:
                result.close()
        logger.info("Query returned %d rows", len(rows))
        return rows

    def execute(
        self,
        config: DBTaskConfig,
        payload: str,
        context: IterationContext,
    ) -> ExecStatus:
        """Execute a statement that is not expected to return rows."""

        with self._transaction(config, context) as connection:
            result = _run_statement(connection, payload)
            rows_affected = result.rowcount
            result.close()
            context.check()
        logger.info("Statement affected %d rows", rows_affected)
        return ExecStatus(rows_affected=rows_affected)

    @contextmanager
    def _transaction(
        self,
        config: DBTaskConfig,
        context: IterationContext,
    ) -> Iterator[Connection]:
        context.check()
        url = build_database_url(config.driver, config.dsn)
        logger.info("Initialising database connection to %s", url.render_as_string())
        engine = self._create_engine(url, context)
        try:
            try:
                connection = engine.connect()
            except (SQLAlchemyError, TypeError) as error:
                # DBAPI drivers reject unknown connect keywords with TypeError.
                raise DatabaseConnectionError(
                    f"Cannot connect to database: {_describe(error)}",
                ) from error
            with connection:
                transaction = connection.begin()
                watchdog = _StatementWatchdog(context, connection)
                try:
                    with watchdog:
                        yield connection
                except ExecutionError as error:
                    transaction.rollback()
                    if watchdog.error is not None and not isinstance(
                        error,
                        TaskTimeoutError | TaskCancelledError,
                    ):
                        raise watchdog.error from error
                    raise
                except BaseException:
                    transaction.rollback()
                    raise
                try:
                    transaction.commit()
                except SQLAlchemyError as error:
                    raise ExecutionError(f"Commit failed: {_describe(error)}") from error
        finally:
            engine.dispose()

    def _create_engine(self, url: URL, context: IterationContext) -> Engine:
        options: dict[str, Any] = {"pool_size": self.pool_size}
        connect_args = _driver_timeouts(url, context.timeout_seconds)
        if connect_args:
            options["connect_args"] = connect_args
        try:
            return self.engine_factory(url, **options)
        except (ArgumentError, NoSuchModuleError, ImportError) as error:
            raise DatabaseConnectionError(f"Cannot open database: {error}") from error


class _StatementWatchdog:
    """Interrupt the running statement once the iteration is cancelled or expires.

    The statement blocks the calling thread inside the driver, so the watch runs
    on a helper thread. Drivers exposing ``interrupt()`` (sqlite3) or
    ``cancel()`` (psycopg) are stopped directly; the MySQL drivers rely on the
    read/write timeouts from ``_driver_timeouts``.
    """

    def __init__(self, context: IterationContext, connection: Connection) -> None:
        self.context = context
        self.connection = connection
        self.error: ExecutionError | None = None
        self._done = threading.Event()
        self._dbapi_connection: Any = None
        self._thread: threading.Thread | None = None

    def __enter__(self) -> _StatementWatchdog:
        self._dbapi_connection = self.connection.connection.dbapi_connection
        self._thread = threading.Thread(
            target=self._watch,
            name="statement-watchdog",
            daemon=True,
        )
        self._thread.start()
        return self

    def __exit__(self, *_: object) -> None:
        self._done.set()
        if self._thread is not None:
            self._thread.join()

    def _watch(self) -> None:
        while not self._done.wait(_WATCH_SLICE_SECONDS):
            error = self.context.interruption()
            if error is not None:
                self.error = error
                self._interrupt()
                return

    def _interrupt(self) -> None:
        for name in ("interrupt", "cancel"):
            method = getattr(self._dbapi_connection, name, None)
            if callable(method):
                logger.warning("Interrupting running statement: %s", self.error)
                try:
                    method()
                except Exception:
                    logger.exception("Driver failed to interrupt the running statement")
                return
        logger.warning(
            "Driver cannot interrupt a running statement; waiting for its own timeout",
        )


def _driver_timeouts(url: URL, timeout_seconds: float | None) -> dict[str, Any]:
    """Driver-level socket or lock timeouts bounding one statement."""

    if timeout_seconds is None:
        return {}
    driver = url.get_driver_name()
    if driver in {"pymysql", "mysqldb"}:
        seconds = max(1, math.ceil(timeout_seconds))
        return {"read_timeout": seconds, "write_timeout": seconds}
    if driver == "pysqlite":
        return {"timeout": timeout_seconds}
    return {}


def _run_statement(connection: Connection, payload: str) -> CursorResult[Any]:
    try:
        # No bind parameters: pyformat drivers must not treat "%" as a placeholder.
        return connection.exec_driver_sql(payload, execution_options={"no_parameters": True})
    except SQLAlchemyError as error:
        raise ExecutionError(f"Statement failed: {_describe(error)}") from error


def _describe(error: BaseException) -> str:
    original = getattr(error, "orig", None)
    return str(original) if original is not None else str(error)
