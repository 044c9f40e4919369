"""Business logic services for drivevault."""

from drivevault.services.download import DownloadCache
from drivevault.services.file_query import FileFetcher, FileRecord
from drivevault.services.file_store import FileStore, SyncResult, SyncState
from drivevault.services.google_drive import GoogleDriveTransport, MetadataPage, RemoteTransport

__all__ = [
    "DownloadCache",
    "FileFetcher",
    "FileRecord",
    "FileStore",
    "SyncResult",
    "SyncState",
    "GoogleDriveTransport",
    "MetadataPage",
    "RemoteTransport",
]
