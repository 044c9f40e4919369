"""Utility functions for drivevault."""

from drivevault.utils.links import FILE_ID_REGEX, extract_file_id

__all__ = [
    "FILE_ID_REGEX",
    "extract_file_id",
]
