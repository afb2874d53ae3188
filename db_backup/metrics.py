from typing import Optional

import psutil
from prometheus_client import REGISTRY, Counter, Gauge, Histogram, write_to_textfile

from .logger import get_logger

logger = get_logger(__name__)

BACKUPS_TOTAL = Counter(
    "backups_total",
    "Total number of backups.",
    ["engine", "status"]
)

BACKUP_DURATION_SECONDS = Histogram(
    "backup_duration_seconds",
    "Duration of backup operations in seconds.",
    ["engine"]
)

BACKUP_SIZE_BYTES = Gauge(
    "backup_size_bytes",
    "Size of the last backup artifact in bytes.",
    ["engine"]
)

BACKUP_LAST_STATUS = Gauge(
    "backup_last_status",
    "Status of the last backup (1 for success, 0 for failure).",
    ["engine"]
)

RESTORES_TOTAL = Counter(
    "restores_total",
    "Total number of restores.",
    ["engine", "status"]
)

NOTIFICATIONS_FAILED_TOTAL = Counter(
    "notifications_failed_total",
    "Total number of notifications that could not be delivered."
)

DISK_SPACE_AVAILABLE_BYTES = Gauge(
    "disk_space_available_bytes",
    "Available disk space on the staging volume in bytes."
)


def record_disk_space(path: str) -> Optional[int]:
    try:
        free = psutil.disk_usage(path).free
    except OSError as e:
        logger.warning(f"Could not read disk usage for {path}: {e}")
        return None
    DISK_SPACE_AVAILABLE_BYTES.set(free)
    return free


def export_metrics(path: str) -> None:
    """Write the registry in the node-exporter textfile format."""
    write_to_textfile(path, REGISTRY)
    logger.debug(f"Metrics written to {path}")
