"""
SQL Server Session Manager

This module provides a connection manager for SQL Server, centralizing
connection handling, cursor cleanup and the always-rolled-back transaction
scope used when probing the engine with known-plaintext statements.
"""

import functools
import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Generator, List, Optional, Sequence

import pyodbc

from .config_manager import SqlServerConfig
from .exceptions import (
    SqlServerConnectionError,
    SqlServerQueryError,
    wrap_sql_exception,
)

logger = logging.getLogger(__name__)


def retry_connection(
    max_retries: int = 3, initial_delay: float = 1.0, backoff: float = 2.0
) -> Any:
    """
    Decorator to retry connection establishment on transient driver errors.

    ``max_retries`` counts attempts after the first one. When the decorated
    method's instance has a ``config.connect_retries`` attribute, that value
    takes precedence.
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(func)
        def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
            retries = getattr(getattr(self, "config", None), "connect_retries", max_retries)
            delay = initial_delay
            last_exception: Optional[Exception] = None

            for attempt in range(retries + 1):
                try:
                    return func(self, *args, **kwargs)
                except pyodbc.OperationalError as e:
                    last_exception = e
                    if attempt == retries:
                        break
                    logger.warning(
                        f"SQL Server connection error ({type(e).__name__}): {e}. "
                        f"Retrying {attempt + 1}/{retries} after {delay}s..."
                    )
                    time.sleep(delay)
                    delay *= backoff

            raise SqlServerConnectionError(
                f"Max retries ({retries}) exceeded connecting to SQL Server",
                server=getattr(self, "server", None),
                cause=last_exception,
            ) from last_exception

        return wrapper

    return decorator


class SqlServerSessionManager:
    """
    Manages a single SQL Server connection with automatic cleanup
    and enhanced error handling.
    """

    def __init__(
        self, server: str, config: SqlServerConfig, database: str = "master"
    ) -> None:
        """
        Initialize the session manager.

        Args:
            server: Instance name (``host``, ``host\\instance`` or ``host,port``)
            config: Connection settings
            database: Initial database context
        """
        self.server = server
        self.config = config
        self.database = database
        self._connection: Optional[pyodbc.Connection] = None

    @property
    def is_connected(self) -> bool:
        """Check if a connection is open."""
        return self._connection is not None

    @retry_connection()
    def _open(self) -> pyodbc.Connection:
        return pyodbc.connect(
            self.config.build_connection_string(self.server, self.database),
            timeout=self.config.connect_timeout,
            autocommit=True,
        )

    def connect(self) -> None:
        """
        Open the connection to SQL Server.

        Raises:
            SqlServerConnectionError: If the connection fails
        """
        if self.is_connected:
            return

        logger.debug(
            f"Connecting to SQL Server {self.config.get_connection_string(self.server)}"
        )
        try:
            self._connection = self._open()
        except SqlServerConnectionError:
            raise
        except pyodbc.Error as e:
            raise SqlServerConnectionError(
                "Failed to connect to SQL Server", server=self.server, cause=e
            ) from e

        logger.info(f"✅ Connected to SQL Server {self.server}")

    def disconnect(self) -> None:
        """Close the SQL Server connection."""
        if self._connection is not None:
            try:
                self._connection.close()
                logger.info(f"🔌 SQL Server connection to {self.server} closed")
            except pyodbc.Error as e:
                logger.warning(f"Error closing SQL Server connection: {e}")
            finally:
                self._connection = None

    def __enter__(self) -> "SqlServerSessionManager":
        self.connect()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.disconnect()

    def _require_connection(self) -> pyodbc.Connection:
        if self._connection is None:
            raise SqlServerConnectionError(
                "Not connected to SQL Server", server=self.server
            )
        return self._connection

    @contextmanager
    def cursor(self) -> Generator[pyodbc.Cursor, None, None]:
        """
        Context manager for cursors with automatic cleanup.

        Example:
            ```python
            with session_manager.cursor() as cursor:
                cursor.execute("SELECT 1")
            ```
        """
        cursor = self._require_connection().cursor()
        try:
            yield cursor
        finally:
            try:
                cursor.close()
            except pyodbc.Error as e:
                logger.warning(f"Error closing cursor: {e}")

    def use_database(self, database: str) -> None:
        """Switch the connection's database context."""
        self.execute(f"USE [{database.replace(']', ']]')}];")
        self.database = database

    def execute(self, query: str, parameters: Sequence[Any] = ()) -> None:
        """Execute a statement that returns no rows."""
        try:
            with self.cursor() as cursor:
                cursor.execute(query, *parameters)
        except pyodbc.Error as e:
            raise SqlServerQueryError(
                f"Statement execution failed: {e}",
                query=query,
                parameters=tuple(parameters),
                cause=e,
            ) from e

    def fetch_all(self, query: str, parameters: Sequence[Any] = ()) -> List[Any]:
        """
        Execute a query and return every row.

        Raises:
            SqlServerQueryError: If query execution fails
        """
        try:
            with self.cursor() as cursor:
                cursor.execute(query, *parameters)
                return list(cursor.fetchall())
        except pyodbc.Error as e:
            raise SqlServerQueryError(
                f"Query execution failed: {e}",
                query=query,
                parameters=tuple(parameters),
                cause=e,
            ) from e

    def fetch_scalar(self, query: str, parameters: Sequence[Any] = ()) -> Any:
        """Execute a query and return the first column of the first row, or None."""
        rows = self.fetch_all(query, parameters)
        if not rows:
            return None
        return rows[0][0]

    @contextmanager
    def rollback_transaction(self) -> Generator[pyodbc.Cursor, None, None]:
        """
        Run statements inside a transaction that is always rolled back.

        Autocommit is switched off for the duration of the block and the
        transaction is rolled back on every exit path, so nothing executed
        inside is ever persisted.

        Driver errors raised by the block or by the rollback itself surface
        as ``SqlServerError``. When both fail, the block's error wins and the
        rollback failure is logged.
        """
        context = {"server": self.server, "operation": "rollback_transaction"}
        connection = self._require_connection()
        previous_autocommit = True
        cursor = None
        completed = False
        try:
            previous_autocommit = connection.autocommit
            connection.autocommit = False
            cursor = connection.cursor()
            yield cursor
            completed = True
        except pyodbc.Error as e:
            raise wrap_sql_exception(e, context=context) from e
        finally:
            rollback_error = self._end_transaction(connection, cursor, previous_autocommit)
            if rollback_error is not None and completed:
                raise wrap_sql_exception(rollback_error, context=context) from rollback_error

    def _end_transaction(
        self,
        connection: pyodbc.Connection,
        cursor: Optional[pyodbc.Cursor],
        previous_autocommit: bool,
    ) -> Optional[pyodbc.Error]:
        """Close the cursor, roll back and restore autocommit; return a rollback failure."""
        if cursor is not None:
            try:
                cursor.close()
            except pyodbc.Error as e:
                logger.warning(f"Error closing cursor: {e}")

        rollback_error: Optional[pyodbc.Error] = None
        try:
            connection.rollback()
            logger.debug(f"Probe transaction on {self.server} rolled back")
        except pyodbc.Error as e:
            rollback_error = e
            logger.warning(f"Rollback failed on {self.server}: {e}")
        finally:
            try:
                connection.autocommit = previous_autocommit
            except pyodbc.Error as e:
                logger.warning(f"Could not restore autocommit on {self.server}: {e}")
        return rollback_error
