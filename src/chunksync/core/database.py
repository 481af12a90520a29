# src/chunksync/core/database.py
"""ChunkSyncDB: the one SQLAlchemy engine behind chunks and shared state.

SQLite is the development and single-host backend; any other SQLAlchemy
URL works in production. Schema changes are not migrated: a stale local
SQLite file is rejected on open instead of being silently extended.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Self

from sqlalchemy import Connection, create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from chunksync.contracts.errors import SchemaCompatibilityError
from chunksync.core.config import DatabaseSettings
from chunksync.core.schema import metadata

_MEMORY_URL = "sqlite:///:memory:"

# Applied to every new SQLite connection, in order.
_SQLITE_PRAGMAS: tuple[tuple[str, str], ...] = (
    ("journal_mode", "WAL"),
    ("foreign_keys", "ON"),
    ("busy_timeout", "5000"),
)


def _install_sqlite_pragmas(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection: object, _record: object) -> None:
        cursor = dbapi_connection.cursor()  # type: ignore[attr-defined]
        for name, value in _SQLITE_PRAGMAS:
            cursor.execute(f"PRAGMA {name}={value}")
        cursor.close()


def _missing_columns(engine: Engine) -> list[str]:
    """'table.column' for every column of an existing table that the code expects but the DB lacks."""
    inspector = inspect(engine)
    present = set(inspector.get_table_names())
    missing: list[str] = []
    for table in metadata.sorted_tables:
        if table.name not in present:
            continue
        have = {column["name"] for column in inspector.get_columns(table.name)}
        missing.extend(f"{table.name}.{column.name}" for column in table.columns if column.name not in have)
    return missing


class ChunkSyncDB:
    """Owns the engine; hands out transactional connections."""

    def __init__(self, url: str, *, echo: bool = False, create_tables: bool = True) -> None:
        """Open (and by default initialize) the database at `url`.

        Args:
            url: SQLAlchemy URL, e.g. "sqlite:///./state/chunksync.db"
            echo: Log every SQL statement
            create_tables: Create tables that do not exist yet

        Raises:
            SchemaCompatibilityError: If an existing SQLite file lacks columns
        """
        self.url = url
        self._engine: Engine | None = create_engine(url, echo=echo)
        if url.startswith("sqlite"):
            _install_sqlite_pragmas(self._engine)
            self._check_schema()
        if create_tables:
            metadata.create_all(self.engine)

    @classmethod
    def from_settings(cls, settings: DatabaseSettings, *, create_tables: bool = True) -> Self:
        return cls(settings.url, echo=settings.echo, create_tables=create_tables)

    @classmethod
    def in_memory(cls) -> Self:
        """Fresh in-memory SQLite database.

        StaticPool keeps a single connection, so every store built on this
        instance sees the same data.
        """
        engine = create_engine(
            _MEMORY_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        _install_sqlite_pragmas(engine)
        metadata.create_all(engine)
        db = cls.__new__(cls)
        db.url = _MEMORY_URL
        db._engine = engine
        return db

    def _check_schema(self) -> None:
        missing = _missing_columns(self.engine)
        if missing:
            raise SchemaCompatibilityError(
                f"Database {self.url} was created by an incompatible chunksync version "
                f"(missing columns: {', '.join(missing)}). Remove the file to have it recreated."
            )

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("ChunkSyncDB is closed or was never initialized")
        return self._engine

    @contextmanager
    def connection(self) -> Iterator[Connection]:
        """One transaction: committed when the block exits, rolled back if it raises."""
        with self.engine.begin() as conn:
            yield conn

    def close(self) -> None:
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
