import csv
import os
import logging
from datetime import datetime

from uavguard.errors import ValidationError

# Setup logger
logger = logging.getLogger(__name__)


def validate_upload(file_storage, allowed_extensions=('.pcap',)):
    """
    Validate an uploaded capture file.

    Args:
        file_storage: The werkzeug FileStorage from ``request.files`` (or None)
        allowed_extensions: Accepted filename suffixes

    Returns:
        Dictionary with 'valid' boolean and optional 'error' message
    """
    if file_storage is None:
        return {'valid': False, 'error': 'No file provided'}

    filename = file_storage.filename or ''
    if filename.strip() == '':
        return {'valid': False, 'error': 'No file selected'}

    if not filename.lower().endswith(tuple(ext.lower() for ext in allowed_extensions)):
        names = ', '.join(allowed_extensions)
        return {'valid': False, 'error': f'Only {names} files are supported'}

    # All checks passed
    return {'valid': True}


def measure_upload(file_storage):
    """Return the size in bytes of an uploaded file, leaving the stream rewound."""
    stream = file_storage.stream
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(0)
    return size


def parse_limit(raw_value, default, maximum):
    """
    Parse the ``limit`` query parameter.

    Raises:
        ValidationError: if the value is not a positive integer
    """
    if raw_value is None or raw_value == '':
        return default
    try:
        limit = int(raw_value)
    except (TypeError, ValueError):
        raise ValidationError(f"limit must be an integer, got {raw_value!r}")
    if limit < 1:
        raise ValidationError("limit must be a positive integer")
    return min(limit, maximum)


def log_analysis_result(analysis, log_dir='logs'):
    """
    Append a completed analysis summary to the CSV result log.

    Args:
        analysis: The completed Analysis row
        log_dir: Directory holding ``analysis_log.csv``
    """
    try:
        os.makedirs(log_dir, exist_ok=True)

        log_file = os.path.join(log_dir, 'analysis_log.csv')

        # Check if file exists to determine if we need to write the header
        file_exists = os.path.isfile(log_file)

        completed_at = analysis.completed_at or datetime.utcnow()

        csv_data = {
            'completed_at': completed_at.isoformat() + 'Z',
            'analysis_id': analysis.id,
            'filename': analysis.filename,
            'file_size': analysis.file_size,
            'trust_score': f'{analysis.trust_score:.4f}',
            'anomaly_score': f'{analysis.anomaly_score:.4f}',
            'attacks_detected': analysis.attacks_detected,
            'total_packets': analysis.total_packets,
            'total_nodes': analysis.total_nodes,
            'analysis_duration': analysis.analysis_duration,
        }

        with open(log_file, 'a', newline='') as f:
            writer = csv.DictWriter(f, fieldnames=list(csv_data.keys()))
            if not file_exists:
                writer.writeheader()
            writer.writerow(csv_data)

        logger.debug(f"Logged analysis result for {analysis.filename}")

    except OSError as e:
        logger.error(f"Error logging analysis result: {str(e)}")
