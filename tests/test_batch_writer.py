"""
Tests for Batch Writer Module
"""

import tempfile
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy import func, select

from catalog_import.batch_writer import FlushResult, product_writer, variant_writer
from catalog_import.database import create_db_engine, init_db, products_table, variants_table
from catalog_import.errors import MalformedBatchRecordError
from catalog_import.records import StockStatus, build_product, build_variant


NOW = datetime(2025, 3, 16, 13, 30, tzinfo=timezone.utc)


class TestBatchWriter:
    """Test cases for BatchWriter."""

    def setup_method(self):
        """Set up test fixtures."""
        self.tmp = tempfile.TemporaryDirectory()
        self.engine = create_db_engine(f"sqlite:///{Path(self.tmp.name) / 'catalog.sqlite'}")
        init_db(self.engine)

    def teardown_method(self):
        self.engine.dispose()
        self.tmp.cleanup()

    def count(self, table):
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(table)).scalar()

    def test_flush_if_full(self):
        """Test the buffer is only written once it reaches chunk size."""
        with self.engine.begin() as conn:
            writer = product_writer(conn, chunk_size=2)

            writer.enqueue(build_product('product-1', 'Product 1', 'BrandX', NOW))
            assert writer.flush_if_full() == FlushResult()
            assert len(writer) == 1

            writer.enqueue(build_product('product-2', 'Product 2', 'BrandY', NOW))
            result = writer.flush_if_full()

            assert result.inserted == 2
            assert result.updated == 0
            assert len(writer) == 0
            assert writer.rows_written == 2

        assert self.count(products_table) == 2

    def test_upsert_keeps_id_and_created_at(self):
        """Test an existing handle is updated in place."""
        first = build_product('product-1', 'Product 1', 'BrandX', NOW)
        later = NOW + timedelta(days=1)
        second = build_product('product-1', 'Renamed', 'BrandZ', later)

        with self.engine.begin() as conn:
            writer = product_writer(conn)
            writer.enqueue(first)
            writer.flush_remaining()

            writer.enqueue(second)
            result = writer.flush_remaining()

        assert result.inserted == 0
        assert result.updated == 1

        with self.engine.connect() as conn:
            row = conn.execute(select(products_table)).one()
        assert row.id == first.id
        assert row.name == 'Renamed'
        assert row.brand == 'BrandZ'
        assert row.description is None
        assert row.created_at.replace(tzinfo=None) == NOW.replace(tzinfo=None)
        assert row.updated_at.replace(tzinfo=None) == later.replace(tzinfo=None)

    def test_variant_update_rederives_status(self):
        product = build_product('product-1', 'Product 1', 'BrandX', NOW)
        ids = {'product-1': product.id}

        with self.engine.begin() as conn:
            products = product_writer(conn)
            products.enqueue(product)
            products.flush_remaining()

            variants = variant_writer(conn)
            variants.enqueue(build_variant('product-1', 'Sku1', 15, Decimal('10.00'), None, NOW, ids))
            variants.flush_remaining()
            variants.enqueue(build_variant('product-1', 'Sku1', 0, Decimal('12.50'), None, NOW, ids))
            result = variants.flush_remaining()

        assert result.updated == 1
        with self.engine.connect() as conn:
            row = conn.execute(select(variants_table)).one()
        assert row.quantity == 0
        assert row.price == Decimal('12.50')
        assert row.status == StockStatus.OUT_OF_STOCK

    def test_repeated_key_flushes_buffer_first(self):
        with self.engine.begin() as conn:
            writer = product_writer(conn)
            writer.enqueue(build_product('product-1', 'Product 1', 'BrandX', NOW))
            writer.enqueue(build_product('product-1', 'Product 1 v2', 'BrandX', NOW))

            assert len(writer) == 1
            assert writer.rows_written == 1

            writer.flush_remaining()
            assert writer.rows_written == 2

        assert self.count(products_table) == 1

    def test_malformed_record(self):
        """Test records that do not match the table columns are refused."""
        with self.engine.begin() as conn:
            writer = product_writer(conn)

            with pytest.raises(MalformedBatchRecordError):
                writer.enqueue({'id': 'abc', 'handle': 'product-1'})

            with pytest.raises(MalformedBatchRecordError):
                writer.enqueue(['abc', 'product-1'])

            assert len(writer) == 0

    def test_mapping_record(self):
        row = build_product('product-1', 'Product 1', 'BrandX', NOW).to_row()
        with self.engine.begin() as conn:
            writer = product_writer(conn)
            writer.enqueue(row)
            assert writer.flush_remaining().inserted == 1

    def test_invalid_chunk_size(self):
        with self.engine.begin() as conn:
            with pytest.raises(ValueError):
                product_writer(conn, chunk_size=0)
