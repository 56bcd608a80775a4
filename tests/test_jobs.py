"""
Tests for the queued import job
"""

import tempfile
from pathlib import Path

from loguru import logger

from catalog_import.config import ImportSettings
from catalog_import.database import create_db_engine, init_db
from catalog_import.jobs import celery_app, dispatch_import


HEADER = "Handle,Title,Vendor,Variant SKU,Variant Inventory Qty,Variant Price,Variant Barcode\n"


class TestImportJob:
    """Test cases for dispatch_import with an eager queue."""

    def setup_method(self):
        """Set up test fixtures."""
        self.tmp = tempfile.TemporaryDirectory()
        self.database_url = f"sqlite:///{Path(self.tmp.name) / 'catalog.sqlite'}"
        engine = create_db_engine(self.database_url)
        init_db(engine)
        engine.dispose()

        self.settings = ImportSettings(database_url=self.database_url, chunk_size=2)
        self.messages = []
        self.sink_id = logger.add(self.messages.append, format="{message}")

    def teardown_method(self):
        logger.remove(self.sink_id)
        self.tmp.cleanup()

    def test_dispatch_runs_import(self):
        csv_path = Path(self.tmp.name) / 'catalog.csv'
        csv_path.write_text(
            HEADER
            + "product-1,Product 1,BrandX,Sku1,10,99.99,\n"
            + "product-1,Product 1,BrandX,Sku2,0,99.99,\n"
            + "product-2,Product 2,BrandY,Sku1,abc,49.99,\n"
        )

        result = dispatch_import(str(csv_path), self.settings)

        assert result.successful()
        stats = result.get()
        assert stats['products_imported'] == 1
        assert stats['variants_imported'] == 2
        assert stats['corrupted_rows'] == 1
        assert stats['rejections'][0]['row_number'] == 4

        logged = ''.join(str(message) for message in self.messages)
        assert f"Starting queued import from {csv_path}" in logged
        assert "Queued import completed." in logged
        assert "Corrupted rows: 1" in logged

    def test_dispatch_failure(self):
        result = dispatch_import(str(Path(self.tmp.name) / 'missing.csv'), self.settings)

        assert result.state == 'FAILURE'
        logged = ''.join(str(message) for message in self.messages)
        assert "Error in queued import" in logged

    def test_queue_follows_settings(self):
        dispatch_import(str(Path(self.tmp.name) / 'missing.csv'), self.settings)

        assert celery_app.conf.task_always_eager is True
        assert celery_app.conf.broker_url == 'memory://'
