"""Point-in-time database backups and restores with pluggable storage."""

__version__ = "1.0.0"
