"""
Batch Writer Module
Buffers candidate records and flushes them as set-based upserts.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from loguru import logger
from sqlalchemy import Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from .database import products_table, variants_table
from .errors import MalformedBatchRecordError, StorageWriteFailedError


DEFAULT_CHUNK_SIZE = 1000

_INSERT_FACTORIES = {
    'sqlite': sqlite.insert,
    'postgresql': postgresql.insert,
}


@dataclass
class FlushResult:
    inserted: int = 0
    updated: int = 0

    @property
    def affected(self) -> int:
        return self.inserted + self.updated


class BatchWriter:
    """
    Accumulate rows for one table and write them with INSERT .. ON CONFLICT.

    Rows that hit an existing natural key have ``update_columns`` overwritten;
    ``id`` and ``created_at`` of the stored row are kept.
    """

    def __init__(
        self,
        connection: Connection,
        table: Table,
        conflict_columns: Sequence[str],
        update_columns: Sequence[str],
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        label: str = '',
    ):
        """
        Initialize batch writer.

        Args:
            connection: Connection with an open transaction
            table: Target table
            conflict_columns: Natural key columns used as conflict target
            update_columns: Columns overwritten when the key already exists
            chunk_size: Rows per statement
            label: Name used in log messages and errors
        """
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")

        dialect = connection.dialect.name
        if dialect not in _INSERT_FACTORIES:
            raise ValueError(f"Unsupported database dialect for upsert: {dialect}")

        self.connection = connection
        self.table = table
        self.conflict_columns = tuple(conflict_columns)
        self.update_columns = tuple(update_columns)
        self.chunk_size = chunk_size
        self.label = label or table.name
        self._insert = _INSERT_FACTORIES[dialect]
        self._columns = frozenset(column.name for column in table.columns)
        self._buffer: List[Dict[str, Any]] = []
        self._buffered_keys = set()
        self.total = FlushResult()
        self.rows_written = 0

    def __len__(self) -> int:
        return len(self._buffer)

    def enqueue(self, record: Any) -> None:
        """
        Add a record to the buffer.

        A record whose natural key is already buffered forces a flush first,
        so one statement never touches the same row twice.
        """
        row = self._project(record)
        key = self._key(row)
        if key in self._buffered_keys:
            self.flush()
        self._buffer.append(row)
        self._buffered_keys.add(key)

    def flush_if_full(self) -> FlushResult:
        if len(self._buffer) >= self.chunk_size:
            return self.flush()
        return FlushResult()

    def flush_remaining(self) -> FlushResult:
        return self.flush()

    def flush(self) -> FlushResult:
        """Write the buffer in one statement and clear it."""
        if not self._buffer:
            return FlushResult()

        batch = self._buffer
        self._buffer = []
        self._buffered_keys = set()

        stmt = self._insert(self.table).values(batch)
        stmt = stmt.on_conflict_do_update(
            index_elements=list(self.conflict_columns),
            set_={column: stmt.excluded[column] for column in self.update_columns},
        ).returning(self.table.c.id)

        try:
            returned_ids = self.connection.execute(stmt).scalars().all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to execute batch upsert for {self.label}: {e}")
            raise StorageWriteFailedError(
                f"Batch upsert of {len(batch)} {self.label} row(s) failed: {e}",
            ) from e

        result = self._outcome(batch, returned_ids)
        self.total.inserted += result.inserted
        self.total.updated += result.updated
        self.rows_written += len(batch)

        if result.affected == 0:
            logger.warning(f"No rows affected for {self.label} upsert of {len(batch)} row(s)")
        else:
            logger.info(
                f"Upserted {len(batch)} {self.label} row(s): "
                f"{result.inserted} inserted, {result.updated} updated"
            )
        return result

    def _project(self, record: Any) -> Dict[str, Any]:
        if hasattr(record, 'to_row'):
            row = record.to_row()
        elif isinstance(record, Mapping):
            row = dict(record)
        else:
            raise MalformedBatchRecordError(
                f"Cannot project {type(record).__name__} onto {self.table.name}",
            )

        if not isinstance(row, Mapping) or set(row) != self._columns:
            keys = sorted(row) if isinstance(row, Mapping) else row
            logger.error(f"Invalid data format in batch insert for {self.label}: {keys}")
            raise MalformedBatchRecordError(
                f"Invalid data format in batch insert for {self.label}: "
                f"expected columns {sorted(self._columns)}, got {keys}",
            )
        return dict(row)

    def _key(self, row: Mapping[str, Any]) -> Tuple[Any, ...]:
        return tuple(row[column] for column in self.conflict_columns)

    def _outcome(self, batch: List[Dict[str, Any]], returned_ids: List[Any]) -> FlushResult:
        # A stored id that is not one of ours means the row already existed
        candidate_ids = {row['id'] for row in batch}
        result = FlushResult()
        for returned_id in returned_ids:
            if returned_id in candidate_ids:
                result.inserted += 1
            else:
                result.updated += 1
        logger.debug(
            f"{self.label} flush outcome: {result.inserted} inserted, "
            f"{result.updated} updated, {len(batch) - result.affected} no-op"
        )
        return result


def product_writer(connection: Connection, chunk_size: int = DEFAULT_CHUNK_SIZE) -> BatchWriter:
    return BatchWriter(
        connection,
        products_table,
        conflict_columns=('handle',),
        update_columns=('name', 'brand', 'updated_at'),
        chunk_size=chunk_size,
        label='product',
    )


def variant_writer(connection: Connection, chunk_size: int = DEFAULT_CHUNK_SIZE) -> BatchWriter:
    return BatchWriter(
        connection,
        variants_table,
        conflict_columns=('product_id', 'sku'),
        update_columns=('quantity', 'price', 'status', 'updated_at'),
        chunk_size=chunk_size,
        label='variant',
    )
