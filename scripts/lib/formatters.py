"""
Output formatters for transfer history reports.

This module handles CSV and JSON generation for enriched transactions,
with timestamp-based filenames when writing to disk.
"""

import csv
import json
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional, TextIO

from .models import CSV_COLUMNS, DetailedTransaction


OUTPUT_FORMATS = ["csv", "json"]


def generate_timestamp() -> str:
    """
    Generate a timestamp string for filenames.

    Returns:
        Timestamp in YYYYMMDD_HHMMSS format
    """
    return datetime.now().strftime("%Y%m%d_%H%M%S")


def generate_filename(base_path: str, output_format: str, timestamp: Optional[str] = None) -> str:
    """
    Generate a timestamped filename for a report.

    Args:
        base_path: Base output path (e.g., "history.csv")
        output_format: "csv" or "json"; used as suffix when base_path has none
        timestamp: Optional timestamp to use (generates new one if not provided)

    Examples:
        generate_filename("history.csv", "csv", "20241214_153022")
        -> "history_20241214_153022.csv"
    """
    if timestamp is None:
        timestamp = generate_timestamp()

    path = Path(base_path)
    suffix = path.suffix or f".{output_format}"
    return str(path.parent / f"{path.stem}_{timestamp}{suffix}")


def write_csv_to_stream(transactions: List[DetailedTransaction], stream: TextIO) -> None:
    """
    Write transactions to a CSV stream.

    Args:
        transactions: List of DetailedTransaction objects to write
        stream: File-like object to write to
    """
    writer = csv.writer(stream)
    writer.writerow(CSV_COLUMNS)

    for tx in transactions:
        writer.writerow(tx.to_csv_row())


def write_json_to_stream(transactions: List[DetailedTransaction], stream: TextIO) -> None:
    """Write transactions to a stream as an indented JSON array."""
    json.dump([tx.to_dict() for tx in transactions], stream, indent=2, ensure_ascii=False)
    stream.write("\n")


def write_report(
    transactions: List[DetailedTransaction],
    output_format: str = "csv",
    output_path: Optional[str] = None,
) -> Optional[str]:
    """
    Write transactions to a file or stdout.

    Args:
        transactions: Enriched transactions, already in display order
        output_format: "csv" or "json"
        output_path: Base output path. If None, writes to stdout.

    Returns:
        The written file path if output_path provided, otherwise None.

    Raises:
        ValueError: If output_format is not supported
    """
    if output_format not in OUTPUT_FORMATS:
        raise ValueError(
            f"Unsupported format: {output_format}. Supported: {', '.join(OUTPUT_FORMATS)}"
        )
    write = write_csv_to_stream if output_format == "csv" else write_json_to_stream

    if output_path is None:
        write(transactions, sys.stdout)
        return None

    filename = generate_filename(output_path, output_format)
    with open(filename, "w", newline="", encoding="utf-8") as f:
        write(transactions, f)
    return filename
