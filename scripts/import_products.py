#!/usr/bin/env python3
"""
Catalog Import Script
Imports products and variants from a catalog CSV into the database.
"""

import sys
import argparse
from datetime import datetime
from pathlib import Path

import pandas as pd
from colorama import init, Fore
from loguru import logger
from sqlalchemy.engine import make_url

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from catalog_import.config import load_settings, DEFAULT_CONFIG_PATH
from catalog_import.csv_handler import CSVHandler
from catalog_import.database import create_db_engine, init_db
from catalog_import.errors import CatalogImportError
from catalog_import.importer import ProductImporter
from catalog_import.jobs import dispatch_import
from catalog_import.logging_setup import configure_logging

# Initialize colorama for colored output
init(autoreset=True)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description='Import products and variants from a catalog CSV'
    )
    parser.add_argument(
        '--csv-path',
        type=str,
        help='Path to catalog CSV file (default: files.source_csv from config)'
    )
    parser.add_argument(
        '--database-url',
        type=str,
        help='SQLAlchemy database URL'
    )
    parser.add_argument(
        '--config',
        type=str,
        default=DEFAULT_CONFIG_PATH,
        help='Path to configuration YAML file'
    )
    parser.add_argument(
        '--chunk-size',
        type=int,
        help='Rows per upsert statement'
    )
    parser.add_argument(
        '--sync',
        action='store_true',
        help='Run the import in this process instead of queuing it'
    )
    parser.add_argument(
        '--no-progress',
        action='store_true',
        help='Hide the progress bar'
    )
    return parser.parse_args(argv)


def ensure_database(database_url: str) -> None:
    """Create the SQLite directory and any missing tables."""
    url = make_url(database_url)
    if url.get_backend_name() == 'sqlite' and url.database and url.database != ':memory:':
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_db_engine(database_url)
    try:
        init_db(engine)
    finally:
        engine.dispose()


def write_rejection_report(rejections, report_dir: str) -> Path:
    report_path = Path(report_dir) / f"rejected_rows_{datetime.now().strftime('%Y%m%d_%H%M%S')}.csv"
    CSVHandler().write_csv(pd.DataFrame(rejections), str(report_path))
    return report_path


def print_stats(stats: dict) -> None:
    print(Fore.GREEN + "=" * 60)
    print(Fore.GREEN + "IMPORT COMPLETED!")
    print(Fore.GREEN + "=" * 60)
    print(f"Data rows read: {stats['rows_read']}")
    print(f"Products imported: {Fore.GREEN + str(stats['products_imported'])}")
    print(f"Variants imported: {Fore.GREEN + str(stats['variants_imported'])}")
    print(f"Corrupted rows: {Fore.RED + str(stats['corrupted_rows'])}")


def main(argv=None) -> int:
    """Main import function."""
    args = parse_args(argv)

    settings = load_settings(args.config, overrides={
        'source_csv': args.csv_path,
        'database_url': args.database_url,
        'chunk_size': args.chunk_size,
    })
    log_file = configure_logging(settings.log_level, settings.log_file)

    csv_path = settings.source_csv
    if not Path(csv_path).exists():
        print(Fore.RED + f"ERROR: CSV file not found: {csv_path}")
        return 1

    print(Fore.CYAN + "=" * 60)
    print(Fore.CYAN + "CATALOG IMPORT")
    print(Fore.CYAN + "=" * 60)
    print(f"Source CSV: {csv_path}")
    print(f"Database: {make_url(settings.database_url).render_as_string(hide_password=True)}")
    if log_file:
        print(f"Log file: {log_file}")
    print(Fore.CYAN + "=" * 60)
    print()

    try:
        ensure_database(settings.database_url)

        if args.sync:
            engine = create_db_engine(settings.database_url)
            try:
                importer = ProductImporter(
                    engine,
                    chunk_size=settings.chunk_size,
                    spool_max_size=settings.spool_max_size,
                    max_reported_rejections=settings.max_reported_rejections,
                    show_progress=not args.no_progress,
                )
                stats = importer.import_products(csv_path).to_dict()
            finally:
                engine.dispose()
        else:
            print(Fore.YELLOW + f"Queuing import for {csv_path}")
            result = dispatch_import(csv_path, settings)
            print(Fore.GREEN + "Import has been queued successfully.")
            if not result.ready():
                print(f"Task id: {result.id}")
                return 0
            stats = result.get()

        print()
        print_stats(stats)

        if stats['rejections']:
            report_path = write_rejection_report(stats['rejections'], settings.report_dir)
            print(Fore.YELLOW + f"⚠ {stats['corrupted_rows']} rows rejected. Report: {report_path}")

    except KeyboardInterrupt:
        print()
        print(Fore.YELLOW + "\n⚠ Import interrupted by user.")
        return 1
    except CatalogImportError as e:
        logger.error(f"Error during import: {e}")
        print(Fore.RED + f"\nERROR: Import failed: {e}")
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
