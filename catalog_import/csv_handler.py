"""
CSV Handler Module
Opens catalog sources with encoding detection, streams their rows,
and writes/analyzes CSV files with pandas.
"""

import codecs
import csv
import io
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, IO, Iterator, List, Optional, Union

import chardet
import pandas as pd
from loguru import logger

from .errors import SourceNotFoundError, SourceUnreadableError


Source = Union[str, Path, IO[bytes], IO[str]]

ENCODING_SAMPLE_SIZE = 10000


class CSVHandler:
    """Handle catalog CSV files with encoding detection and error handling."""

    def __init__(self, encoding: Optional[str] = None):
        """
        Initialize CSV handler.

        Args:
            encoding: Optional encoding to use. If None, will auto-detect.
        """
        self.encoding = encoding
        self.detected_encoding = None

    def detect_encoding(self, file_path: str) -> str:
        """
        Detect the encoding of a CSV file.

        Args:
            file_path: Path to the CSV file

        Returns:
            Detected encoding string
        """
        try:
            with open(file_path, 'rb') as f:
                raw_data = f.read(ENCODING_SAMPLE_SIZE)
        except OSError as e:
            logger.warning(f"Could not detect encoding, using UTF-8: {e}")
            return 'utf-8'

        result = chardet.detect(raw_data)
        encoding = result['encoding']
        confidence = result['confidence'] or 0.0
        logger.info(f"Detected encoding: {encoding} (confidence: {confidence:.2%})")
        return _usable_encoding(encoding)

    @contextmanager
    def open_rows(self, source: Source) -> Iterator[Iterator[List[str]]]:
        """
        Open a catalog source and yield an iterator over its csv records.

        Files opened here are closed when the block exits, whatever the
        outcome. Caller-supplied streams are left open.

        Args:
            source: Path to a CSV file, or an open binary/text stream

        Yields:
            Iterator of records (lists of strings), header first
        """
        if isinstance(source, (str, Path)):
            with self._open_path(Path(source)) as text:
                yield _clean_records(csv.reader(text))
        elif isinstance(source, io.TextIOBase):
            yield _clean_records(csv.reader(source))
        else:
            text = io.TextIOWrapper(source, encoding=self.encoding or 'utf-8-sig', newline='')
            try:
                yield _clean_records(csv.reader(text))
            finally:
                text.detach()

    @contextmanager
    def _open_path(self, file_path: Path) -> Iterator[IO[str]]:
        if not file_path.exists():
            raise SourceNotFoundError(f"CSV file not found at: {file_path}", phase='open')

        encoding = self.encoding or self.detect_encoding(str(file_path))
        self.detected_encoding = encoding
        logger.info(f"Reading CSV file: {file_path}")

        try:
            handle = open(file_path, 'r', encoding=encoding, newline='')
        except OSError as e:
            raise SourceUnreadableError(f"Failed to open CSV file at: {file_path}: {e}", phase='open') from e

        try:
            yield handle
        finally:
            handle.close()

    def write_csv(
        self,
        df: pd.DataFrame,
        file_path: str,
        encoding: str = 'utf-8',
        index: bool = False,
        **kwargs
    ) -> None:
        """
        Write DataFrame to CSV file.

        Args:
            df: DataFrame to write
            file_path: Output file path
            encoding: Encoding to use
            index: Whether to write row indices
            **kwargs: Additional arguments to pass to df.to_csv
        """
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        logger.info(f"Writing CSV file: {file_path} ({len(df)} rows)")

        df = df.copy()
        for col in df.columns:
            df[col] = df[col].fillna('').astype(str)

        df.to_csv(
            file_path,
            encoding=encoding,
            index=index,
            lineterminator='\n',
            **kwargs
        )
        logger.info(f"Successfully wrote CSV file: {file_path}")

    def read_csv(self, file_path: str, encoding: Optional[str] = None) -> pd.DataFrame:
        """
        Read a whole CSV file as strings.

        Args:
            file_path: Path to the CSV file
            encoding: Optional encoding (will detect if not provided)

        Returns:
            DataFrame with every value as str, blanks as empty strings
        """
        file_path = Path(file_path)
        if not file_path.exists():
            raise SourceNotFoundError(f"CSV file not found at: {file_path}", phase='open')

        if encoding is None:
            encoding = self.encoding or self.detect_encoding(str(file_path))
            self.detected_encoding = encoding

        df = pd.read_csv(
            file_path,
            encoding=encoding,
            dtype=str,
            keep_default_na=False,
            on_bad_lines='skip',
        )
        df.columns = [str(col).lstrip('\ufeff').strip() for col in df.columns]
        logger.info(f"Successfully read {len(df)} rows from {file_path}")
        return df

    def analyze_csv(self, file_path: str) -> Dict[str, Any]:
        """
        Analyze a catalog CSV file and return metadata.

        Args:
            file_path: Path to the CSV file

        Returns:
            Dictionary with analysis results
        """
        df = self.read_csv(file_path)

        analysis = {
            'row_count': len(df),
            'column_count': len(df.columns),
            'columns': list(df.columns),
            'missing_values': {col: int((df[col].str.strip() == '').sum()) for col in df.columns},
            'distinct_handles': int(df['Handle'].str.strip().nunique()) if 'Handle' in df.columns else 0,
            'duplicate_skus': self.check_duplicates(df, ['Handle', 'Variant SKU']),
        }

        logger.info(f"CSV Analysis: {analysis['row_count']} rows, {analysis['column_count']} columns")
        return analysis

    def check_duplicates(self, df: pd.DataFrame, fields: List[str]) -> List[int]:
        """
        Check for rows sharing the same values in ``fields``.

        Returns:
            List of row indices with duplicates
        """
        if not all(field in df.columns for field in fields):
            return []

        duplicates = df[df.duplicated(subset=fields, keep=False)]
        return [int(i) for i in duplicates.index.tolist()]


def _usable_encoding(encoding: Optional[str]) -> str:
    if not encoding or encoding.lower() == 'ascii':
        return 'utf-8'
    try:
        codecs.lookup(encoding)
    except LookupError:
        logger.warning(f"Unknown encoding {encoding}, using UTF-8")
        return 'utf-8'
    return encoding


def _clean_records(reader: Iterator[List[str]]) -> Iterator[List[str]]:
    """Strip a leading BOM and whitespace from the header record."""
    first = True
    for record in reader:
        if first:
            first = False
            record = [cell.strip() for cell in record]
            if record:
                record[0] = record[0].lstrip('\ufeff').strip()
        yield record
