"""
Tests for CSV Handler Module
"""

import io
import os
import tempfile

import pytest
import pandas as pd

from catalog_import.csv_handler import CSVHandler
from catalog_import.errors import SourceNotFoundError


HEADER = "Handle,Title,Vendor,Variant SKU,Variant Inventory Qty,Variant Price,Variant Barcode\n"


class TestCSVHandler:
    """Test cases for CSVHandler."""

    def setup_method(self):
        """Set up test fixtures."""
        self.handler = CSVHandler()
        self.test_data = pd.DataFrame({
            'Handle': ['product-1', 'product-1', 'product-2'],
            'Title': ['Product 1', 'Product 1', 'Product 2'],
            'Variant SKU': ['Sku1', 'Sku1', 'Sku2'],
            'Variant Price': ['19.99', '', '39.99'],
        })

    def write_temp(self, content, encoding='utf-8'):
        with tempfile.NamedTemporaryFile(mode='w', suffix='.csv', delete=False, encoding=encoding) as f:
            f.write(content)
            return f.name

    def test_write_and_read_csv(self):
        """Test writing and reading CSV file."""
        with tempfile.NamedTemporaryFile(mode='w', suffix='.csv', delete=False) as f:
            temp_path = f.name

        try:
            self.handler.write_csv(self.test_data, temp_path)

            df = self.handler.read_csv(temp_path)

            assert len(df) == 3
            assert list(df.columns) == ['Handle', 'Title', 'Variant SKU', 'Variant Price']
            assert df.iloc[0]['Title'] == 'Product 1'
            # Values stay as text, blanks stay blank
            assert df.iloc[0]['Variant Price'] == '19.99'
            assert df.iloc[1]['Variant Price'] == ''
        finally:
            if os.path.exists(temp_path):
                os.unlink(temp_path)

    def test_analyze_csv(self):
        """Test CSV analysis."""
        with tempfile.NamedTemporaryFile(mode='w', suffix='.csv', delete=False) as f:
            temp_path = f.name

        try:
            self.handler.write_csv(self.test_data, temp_path)
            analysis = self.handler.analyze_csv(temp_path)

            assert analysis['row_count'] == 3
            assert analysis['column_count'] == 4
            assert 'Handle' in analysis['columns']
            assert analysis['distinct_handles'] == 2
            assert analysis['missing_values']['Variant Price'] == 1
            assert analysis['duplicate_skus'] == [0, 1]
        finally:
            if os.path.exists(temp_path):
                os.unlink(temp_path)

    def test_check_duplicates_missing_columns(self):
        assert self.handler.check_duplicates(self.test_data, ['Handle', 'Barcode']) == []

    def test_open_rows_cleans_header(self):
        """Test a BOM and padding around header names are removed."""
        temp_path = self.write_temp(
            " Handle ,Title,Vendor,Variant SKU,Variant Inventory Qty,Variant Price, Variant Barcode\n"
            "product-1, Product 1 ,BrandX,Sku1,10,99.99,\n",
            encoding='utf-8-sig',
        )

        try:
            with self.handler.open_rows(temp_path) as records:
                rows = list(records)

            assert rows[0][0] == 'Handle'
            assert rows[0][-1] == 'Variant Barcode'
            # Data rows are left for the validator to trim
            assert rows[1][1] == ' Product 1 '
        finally:
            os.unlink(temp_path)

    def test_open_rows_missing_file(self):
        with pytest.raises(SourceNotFoundError) as excinfo:
            with self.handler.open_rows('/nonexistent/catalog.csv'):
                pass

        assert excinfo.value.phase == 'open'

    def test_open_rows_leaves_stream_open(self):
        stream = io.BytesIO((HEADER + "product-1,Product 1,BrandX,Sku1,10,99.99,\n").encode('utf-8'))

        with self.handler.open_rows(stream) as records:
            rows = list(records)

        assert len(rows) == 2
        assert not stream.closed

    def test_ascii_is_read_as_utf8(self):
        temp_path = self.write_temp(HEADER)

        try:
            assert self.handler.detect_encoding(temp_path) == 'utf-8'
        finally:
            os.unlink(temp_path)

    def test_fixed_encoding_skips_detection(self):
        handler = CSVHandler(encoding='latin-1')
        temp_path = self.write_temp(HEADER + "product-1,Café,BrandX,Sku1,10,99.99,\n", encoding='latin-1')

        try:
            with handler.open_rows(temp_path) as records:
                rows = list(records)

            assert rows[1][1] == 'Café'
            assert handler.detected_encoding == 'latin-1'
        finally:
            os.unlink(temp_path)
