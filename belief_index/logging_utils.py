"""
Logging utilities for market cycles.

Shared log format plus structured JSON records for an audit trail of
aggregation cycles and settlements.
"""

import json
from pathlib import Path
from typing import Any, Dict, List

from utils.datetime_utils import utc_now
from utils.json_utils import dumps_json

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'


def log_record(
    output_file: Path,
    record: Dict[str, Any],
    append: bool = True
) -> None:
    """
    Append a record to a JSONL file.

    The record gets a 'logged_at' wall-clock stamp; it never replaces the
    record's own timestamps, which come from the engine clock.

    Args:
        output_file: Path to JSONL output file
        record: Record to write
        append: If False, overwrite the file
    """
    output_file = Path(output_file)
    output_file.parent.mkdir(parents=True, exist_ok=True)

    entry = dict(record)
    entry['logged_at'] = utc_now().isoformat()

    mode = 'a' if append else 'w'
    with open(output_file, mode, encoding='utf-8') as f:
        f.write(dumps_json(entry, indent=None) + '\n')


def log_summary(
    output_file: Path,
    summary_data: Dict[str, Any]
) -> None:
    """
    Write a summary to a JSON file.

    Args:
        output_file: Path to JSON output file
        summary_data: Summary to write
    """
    output_file = Path(output_file)
    output_file.parent.mkdir(parents=True, exist_ok=True)

    entry = dict(summary_data)
    entry['logged_at'] = utc_now().isoformat()

    with open(output_file, 'w', encoding='utf-8') as f:
        f.write(dumps_json(entry, indent=2))


def read_jsonl(file_path: Path) -> List[Dict[str, Any]]:
    """
    Read a JSONL file and return its records.

    Args:
        file_path: Path to JSONL file

    Returns:
        List of dictionaries (empty if the file doesn't exist)
    """
    file_path = Path(file_path)
    if not file_path.exists():
        return []

    records = []
    with open(file_path, 'r', encoding='utf-8') as f:
        for line in f:
            line = line.strip()
            if line:
                records.append(json.loads(line))

    return records
