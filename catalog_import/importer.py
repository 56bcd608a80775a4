"""
Import Engine Module
Coordinates a catalog import: header check, row validation, product upserts,
product id resolution and variant upserts inside one transaction.
"""

import csv
import json
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

from loguru import logger
from sqlalchemy import select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from tqdm import tqdm

from .batch_writer import DEFAULT_CHUNK_SIZE, BatchWriter, product_writer, variant_writer
from .csv_handler import CSVHandler, Source
from .database import products_table
from .errors import (
    CatalogImportError,
    InvalidHeaderError,
    MalformedBatchRecordError,
    NoProductsResolvedError,
    SourceUnreadableError,
    StorageWriteFailedError,
)
from .records import VariantCandidate, build_product, build_variant, resolve_variant
from .validator import EXPECTED_COLUMN_COUNT, RowRejection, validate_row


DEFAULT_SPOOL_MAX_SIZE = 8 * 1024 * 1024
DEFAULT_MAX_REPORTED_REJECTIONS = 1000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ImportStats:
    """Counters for one import run."""

    corrupted_rows: int = 0
    products_imported: int = 0
    variants_imported: int = 0
    rows_read: int = 0
    rejections: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'corrupted_rows': self.corrupted_rows,
            'products_imported': self.products_imported,
            'variants_imported': self.variants_imported,
            'rows_read': self.rows_read,
            'rejections': list(self.rejections),
        }


class VariantSpool:
    """
    Variants waiting for their product's persisted id.

    Kept as JSON lines in a spooled temporary file, so large catalogs move
    to disk instead of growing in memory.
    """

    def __init__(self, max_size: int = DEFAULT_SPOOL_MAX_SIZE):
        self._file = tempfile.SpooledTemporaryFile(
            max_size=max_size, mode='w+', encoding='utf-8', newline='\n'
        )
        self.count = 0

    def append(self, variant: VariantCandidate) -> None:
        self._file.write(json.dumps(variant.to_spool()))
        self._file.write('\n')
        self.count += 1

    def __iter__(self) -> Iterator[VariantCandidate]:
        self._file.flush()
        self._file.seek(0)
        for line in self._file:
            if line.strip():
                yield VariantCandidate.from_spool(json.loads(line))

    def close(self) -> None:
        self._file.close()


@dataclass
class _ImportRun:
    """State owned by a single call to ProductImporter.import_products."""

    now: datetime
    stats: ImportStats
    spool: VariantSpool
    candidate_ids: Dict[str, str] = field(default_factory=dict)
    header: List[str] = field(default_factory=list)


class ProductImporter:
    """Import a products/variants catalog CSV into the database."""

    def __init__(
        self,
        engine: Engine,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        spool_max_size: int = DEFAULT_SPOOL_MAX_SIZE,
        max_reported_rejections: int = DEFAULT_MAX_REPORTED_REJECTIONS,
        show_progress: bool = False,
        clock: Optional[Callable[[], datetime]] = None,
        csv_handler: Optional[CSVHandler] = None,
    ):
        """
        Initialize the importer.

        Args:
            engine: SQLAlchemy engine bound to the catalog database
            chunk_size: Rows per upsert statement
            spool_max_size: Bytes of pending variants kept in memory
            max_reported_rejections: Cap on rejection details kept in the stats
            show_progress: Show a tqdm progress bar while reading rows
            clock: Callable returning the run timestamp
            csv_handler: Handler used to open sources
        """
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self.engine = engine
        self.chunk_size = chunk_size
        self.spool_max_size = spool_max_size
        self.max_reported_rejections = max_reported_rejections
        self.show_progress = show_progress
        self.clock = clock or _utcnow
        self.csv_handler = csv_handler or CSVHandler()

    def import_products(self, source: Source) -> ImportStats:
        """
        Import products and variants from a catalog CSV.

        Args:
            source: Path to the CSV file, or an open binary/text stream

        Returns:
            ImportStats for the committed run

        Raises:
            CatalogImportError: the run failed and every write was rolled back
        """
        run = _ImportRun(
            now=self.clock(),
            stats=ImportStats(),
            spool=VariantSpool(self.spool_max_size),
        )
        phase = 'open'
        try:
            with self.csv_handler.open_rows(source) as records:
                phase = 'header'
                run.header = self._read_header(records)

                phase = 'products'
                with self.engine.begin() as conn:
                    products = product_writer(conn, self.chunk_size)
                    self._process_rows(run, records, products)
                    products.flush_remaining()
                    run.stats.products_imported = products.rows_written

                    phase = 'resolve'
                    persisted_ids = self._resolve_product_ids(conn, run.candidate_ids)

                    phase = 'variants'
                    variants = variant_writer(conn, self.chunk_size)
                    self._process_variants(run, variants, persisted_ids)
                    run.stats.variants_imported = variants.rows_written
        except CatalogImportError as e:
            if e.phase is None:
                e.phase = phase
            logger.error(f"Import failed during {phase}: {e}")
            raise
        except SQLAlchemyError as e:
            logger.error(f"Import failed during {phase}: {e}")
            raise StorageWriteFailedError(f"Database error: {e}", phase=phase) from e
        finally:
            run.spool.close()

        self._log_summary(run.stats)
        return run.stats

    def _read_header(self, records: Iterator[List[str]]) -> List[str]:
        try:
            header = next(records, None)
        except (UnicodeDecodeError, csv.Error) as e:
            raise SourceUnreadableError(f"Could not read header row: {e}", phase='header') from e

        count = len(header) if header else 0
        if count != EXPECTED_COLUMN_COUNT:
            raise InvalidHeaderError(
                f"Invalid header row: Expected {EXPECTED_COLUMN_COUNT} columns, got {count}",
                phase='header',
            )
        return header

    def _process_rows(self, run: _ImportRun, records: Iterable[List[str]], products: BatchWriter) -> None:
        """
        Validate each data row, buffer new products and spool variants.

        Blank records are skipped outright: they are not counted in
        rows_read and are not reported as corrupted.
        """
        rows = tqdm(records, desc="Importing rows", unit="row", disable=not self.show_progress)
        row_number = 1
        try:
            for raw_row in rows:
                row_number += 1
                if not raw_row:
                    continue
                run.stats.rows_read += 1

                result = validate_row(raw_row, run.header)
                if isinstance(result, RowRejection):
                    self._reject(run, row_number, result)
                    continue

                if result.handle not in run.candidate_ids:
                    product = build_product(result.handle, result.title, result.vendor, run.now)
                    run.candidate_ids[result.handle] = product.id
                    products.enqueue(product)

                run.spool.append(build_variant(
                    result.handle,
                    result.sku,
                    result.quantity,
                    result.price,
                    result.barcode,
                    run.now,
                    run.candidate_ids,
                ))

                products.flush_if_full()
        except (UnicodeDecodeError, csv.Error) as e:
            raise SourceUnreadableError(f"Could not read row {row_number}: {e}", phase='rows') from e
        finally:
            rows.close()

    def _reject(self, run: _ImportRun, row_number: int, rejection: RowRejection) -> None:
        run.stats.corrupted_rows += 1
        logger.warning(f"Row {row_number} rejected ({rejection.reason.value}): {rejection.detail}")
        if len(run.stats.rejections) < self.max_reported_rejections:
            run.stats.rejections.append({
                'row_number': row_number,
                'reason': rejection.reason.value,
                'detail': rejection.detail,
            })

    def _resolve_product_ids(self, conn: Connection, candidate_ids: Dict[str, str]) -> Dict[str, str]:
        """
        Read back the stored id of every handle touched in this run.

        Existing products keep their original id, so the candidate ids
        generated during the row pass cannot be trusted.
        """
        if not candidate_ids:
            logger.warning("No products to insert. Cannot proceed with variant insertion.")
            raise NoProductsResolvedError("No products to insert.", phase='resolve')

        handles = list(candidate_ids)
        persisted: Dict[str, str] = {}
        try:
            for start in range(0, len(handles), self.chunk_size):
                chunk = handles[start:start + self.chunk_size]
                stmt = select(products_table.c.handle, products_table.c.id).where(
                    products_table.c.handle.in_(chunk)
                )
                for handle, product_id in conn.execute(stmt):
                    persisted[handle] = product_id
        except SQLAlchemyError as e:
            raise StorageWriteFailedError(f"Could not resolve product ids: {e}", phase='resolve') from e

        if not persisted:
            raise NoProductsResolvedError("No product ids could be resolved from storage.", phase='resolve')

        reused = sum(1 for handle, product_id in persisted.items() if candidate_ids[handle] != product_id)
        logger.info(f"Resolved {len(persisted)} product id(s), {reused} already existed")
        return persisted

    def _process_variants(self, run: _ImportRun, variants: BatchWriter, persisted_ids: Dict[str, str]) -> None:
        """Bind spooled variants to persisted product ids and upsert them."""
        for pending in run.spool:
            variant = resolve_variant(pending, persisted_ids)
            if variant is None:
                raise MalformedBatchRecordError(
                    f"Variant {pending.sku!r} references unresolved product handle {pending.handle!r}",
                    phase='variants',
                )
            variants.enqueue(variant)
            variants.flush_if_full()
        variants.flush_remaining()

    def _log_summary(self, stats: ImportStats) -> None:
        logger.info("=" * 60)
        logger.info("IMPORT SUMMARY")
        logger.info("=" * 60)
        logger.info(f"Data rows read: {stats.rows_read}")
        logger.info(f"Products imported: {stats.products_imported}")
        logger.info(f"Variants imported: {stats.variants_imported}")
        logger.info(f"Corrupted rows: {stats.corrupted_rows}")
        logger.info("=" * 60)
