"""Database models for drivevault."""

from drivevault.db.models.drive_file import DriveFile

__all__ = [
    "DriveFile",
]
