"""
asyncblobfs
===========

Async filesystem adapter for Azure Blob Storage: write, read, delete, list,
copy, move and metadata on top of a blob container, with optional path
prefix and directories emulated from blob name prefixes.

Main entry points:
- BlobFilesystemAdapter: the filesystem adapter
- AzureBlobClient, LocalBlobClient: storage backends
- FileAttributes, DirectoryAttributes, UploadOptions: data model
- WriteFailed, ReadFailed, ... : per-operation exceptions
- AdapterSettings: environment-based configuration

Example:
    from asyncblobfs import AzureBlobClient, BlobFilesystemAdapter

    async with BlobFilesystemAdapter(
        AzureBlobClient.from_connection_string(conn_str),
        "container",
        prefix="root_directory",
    ) as fs:
        await fs.write("a_file.txt", b"with contents")
        async for entry in fs.list_contents("", recursive=True):
            print(entry.path)
"""

from .attributes import (
    ContainerOptions,
    DirectoryAttributes,
    FileAttributes,
    ListingPage,
    ObjectDownload,
    ObjectProperties,
    StorageAttributes,
    UploadOptions,
)
from .errors import (
    BlobNotFoundError,
    ContainerExistsError,
    ContainerNotFoundError,
    CopyFailed,
    DeleteDirectoryFailed,
    DeleteFailed,
    ExistenceCheckFailed,
    FilesystemOperationFailed,
    ListContentsFailed,
    MetadataRetrievalFailed,
    MoveFailed,
    ReadFailed,
    VisibilityUnsupported,
    WriteFailed,
)
from .filesystem import BlobFilesystemAdapter
from .mime import ExtensionMimeTypeDetector
from .paths import PathPrefixer
from .storage_protocols import BlobStorageClient, MimeTypeDetector
from .local_blob_client import LocalBlobClient
from .azure_blob_client import AzureBlobClient
from .config import AdapterSettings

import importlib.metadata

try:
    __version__ = importlib.metadata.version(__name__)
except importlib.metadata.PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "BlobFilesystemAdapter",
    "AdapterSettings",
    "AzureBlobClient",
    "LocalBlobClient",
    "BlobStorageClient",
    "MimeTypeDetector",
    "ExtensionMimeTypeDetector",
    "PathPrefixer",
    "ContainerOptions",
    "DirectoryAttributes",
    "FileAttributes",
    "ListingPage",
    "ObjectDownload",
    "ObjectProperties",
    "StorageAttributes",
    "UploadOptions",
    "BlobNotFoundError",
    "ContainerExistsError",
    "ContainerNotFoundError",
    "FilesystemOperationFailed",
    "WriteFailed",
    "ReadFailed",
    "ExistenceCheckFailed",
    "DeleteFailed",
    "DeleteDirectoryFailed",
    "ListContentsFailed",
    "CopyFailed",
    "MoveFailed",
    "MetadataRetrievalFailed",
    "VisibilityUnsupported",
]
