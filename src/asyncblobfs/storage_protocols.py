from collections.abc import AsyncIterable
from typing import IO, Protocol

from .attributes import (
    ContainerOptions,
    ListingPage,
    ObjectDownload,
    ObjectProperties,
    UploadOptions,
)

ObjectContent = bytes | AsyncIterable[bytes] | IO[bytes]


class BlobStorageClient(Protocol):
    """
    Protocol for a blob storage backend.
    Missing blobs raise BlobNotFoundError, missing containers
    ContainerNotFoundError, and creating an existing container
    ContainerExistsError.
    """

    async def create_container(
        self, container: str, options: ContainerOptions | None = None
    ) -> None:
        """Create a container."""
        ...

    async def get_container_properties(self, container: str) -> dict:
        """Return container properties."""
        ...

    async def put_object(
        self,
        container: str,
        key: str,
        content: ObjectContent,
        options: UploadOptions | None = None,
    ) -> ObjectProperties:
        """Upload content to a blob, overwriting any existing blob."""
        ...

    async def get_object(self, container: str, key: str) -> ObjectDownload:
        """Open a blob for download."""
        ...

    async def get_object_properties(
        self, container: str, key: str
    ) -> ObjectProperties:
        """Return blob properties without content."""
        ...

    async def delete_object(self, container: str, key: str) -> None:
        """Delete a blob."""
        ...

    async def copy_object(
        self, src_container: str, src_key: str, dest_container: str, dest_key: str
    ) -> None:
        """Server-side copy of a blob."""
        ...

    async def list_objects(
        self,
        container: str,
        prefix: str = "",
        delimiter: str | None = None,
        max_results: int | None = None,
        continuation_token: str | None = None,
    ) -> ListingPage:
        """Return a single page of blobs (and common prefixes with a delimiter)."""
        ...

    async def close(self) -> None:
        """Close any resources/connections."""
        ...


class MimeTypeDetector(Protocol):
    def detect(self, path: str, content: bytes | None = None) -> str | None:
        """Best-guess content type for a path and optional content."""
        ...
