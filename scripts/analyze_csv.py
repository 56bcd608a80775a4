#!/usr/bin/env python3
"""
Catalog CSV Analysis Utility
Reports structure, blanks and duplicate variants of a catalog file before import.
"""

import sys
import argparse
import json
from pathlib import Path

from colorama import init, Fore
from dotenv import load_dotenv
from loguru import logger

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from catalog_import.csv_handler import CSVHandler
from catalog_import.logging_setup import configure_logging
from catalog_import.validator import EXPECTED_HEADER

# Initialize colorama
init(autoreset=True)


def main(argv=None) -> int:
    """Main analysis function."""
    parser = argparse.ArgumentParser(
        description='Analyze a catalog CSV file before importing it'
    )
    parser.add_argument(
        'csv_file',
        type=str,
        help='Path to CSV file to analyze'
    )
    parser.add_argument(
        '--output',
        type=str,
        help='Output JSON file for analysis results'
    )

    args = parser.parse_args(argv)

    load_dotenv()
    configure_logging("INFO")

    csv_path = Path(args.csv_file)
    if not csv_path.exists():
        print(Fore.RED + f"ERROR: CSV file not found: {csv_path}")
        return 1

    print(Fore.CYAN + "=" * 60)
    print(Fore.CYAN + "CATALOG CSV ANALYSIS")
    print(Fore.CYAN + "=" * 60)
    print(f"File: {csv_path}")
    print()

    try:
        analysis = CSVHandler().analyze_csv(str(csv_path))
    except (OSError, UnicodeDecodeError, ValueError) as e:
        logger.exception("Analysis failed")
        print(Fore.RED + f"\nERROR: Analysis failed: {e}")
        return 1

    print(Fore.GREEN + "✓ Analysis Complete")
    print()
    print(Fore.YELLOW + "Summary:")
    print(f"  Rows: {analysis['row_count']}")
    print(f"  Columns: {analysis['column_count']}")
    print(f"  Distinct handles: {analysis['distinct_handles']}")
    print()

    print(Fore.YELLOW + "Columns:")
    for i, col in enumerate(analysis['columns'], 1):
        missing = analysis['missing_values'][col]
        missing_pct = (missing / analysis['row_count'] * 100) if analysis['row_count'] > 0 else 0
        status = Fore.GREEN + "✓" if missing == 0 else Fore.YELLOW + f"⚠ ({missing} blank, {missing_pct:.1f}%)"
        print(f"  {i:2d}. {col:30s} {status}")

    unexpected = [col for col in analysis['columns'] if col not in EXPECTED_HEADER]
    absent = [col for col in EXPECTED_HEADER if col not in analysis['columns']]
    if unexpected or absent:
        print()
        print(Fore.RED + "Header does not match the import format:")
        if absent:
            print(f"  Missing: {', '.join(absent)}")
        if unexpected:
            print(f"  Unexpected: {', '.join(unexpected)}")

    if analysis['duplicate_skus']:
        print()
        print(Fore.YELLOW + f"⚠ {len(analysis['duplicate_skus'])} rows share a Handle/Variant SKU pair; "
              "the last one wins on import.")

    if args.output:
        output_path = Path(args.output)
        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(analysis, f, indent=2, default=str)
        print(Fore.GREEN + f"✓ Analysis saved to: {output_path}")

    return 0


if __name__ == '__main__':
    sys.exit(main())
