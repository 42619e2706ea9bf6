import asyncio
import logging

from azure.core.exceptions import ResourceExistsError, ResourceNotFoundError
from azure.storage.blob import BlobProperties, ContentSettings
from azure.storage.blob.aio import BlobServiceClient

from .attributes import (
    ContainerOptions,
    ListingPage,
    ObjectDownload,
    ObjectProperties,
    UploadOptions,
)
from .errors import BlobNotFoundError, ContainerExistsError, ContainerNotFoundError
from .storage_protocols import BlobStorageClient, ObjectContent

logger = logging.getLogger(__name__)

COPY_POLL_INTERVAL = 0.5


def _not_found(exc: ResourceNotFoundError, container: str, key: str | None = None):
    if key is None or getattr(exc, "error_code", None) == "ContainerNotFound":
        return ContainerNotFoundError(f"Container '{container}' not found")
    return BlobNotFoundError(f"Blob '{key}' not found in container '{container}'")


def _to_properties(props: BlobProperties) -> ObjectProperties:
    content_settings = props.content_settings
    return ObjectProperties(
        name=props.name,
        size=props.size or 0,
        last_modified=props.last_modified,
        content_type=content_settings.content_type if content_settings else None,
        etag=props.etag,
        metadata=dict(props.metadata or {}),
    )


class AzureBlobClient(BlobStorageClient):
    """Azure Blob Storage client for BlobFilesystemAdapter."""

    def __init__(self, blob_service_client: BlobServiceClient):
        """
        Create a client from an existing BlobServiceClient.
        This allows custom authentication and configuration.
        """
        self._client = blob_service_client

    @classmethod
    def from_connection_string(cls, connection_string: str) -> "AzureBlobClient":
        """
        Convenience builder: create client from a connection string.
        """
        client = BlobServiceClient.from_connection_string(connection_string)
        return cls(client)

    def _blob(self, container: str, key: str):
        return self._client.get_container_client(container).get_blob_client(key)

    async def close(self) -> None:
        await self._client.close()

    async def create_container(
        self, container: str, options: ContainerOptions | None = None
    ) -> None:
        public_access = options.public_access if options else None
        try:
            await self._client.create_container(container, public_access=public_access)
        except ResourceExistsError:
            raise ContainerExistsError(f"Container '{container}' already exists")
        logger.debug("Created container %s", container)

    async def get_container_properties(self, container: str) -> dict:
        container_client = self._client.get_container_client(container)
        try:
            props = await container_client.get_container_properties()
        except ResourceNotFoundError as e:
            raise _not_found(e, container)
        return {
            "name": props.name,
            "last_modified": props.last_modified,
            "etag": props.etag,
            "public_access": props.public_access,
        }

    async def put_object(
        self,
        container: str,
        key: str,
        content: ObjectContent,
        options: UploadOptions | None = None,
    ) -> ObjectProperties:
        options = options or UploadOptions()
        blob_client = self._blob(container, key)
        content_settings = ContentSettings(
            content_type=options.content_type,
            cache_control=options.cache_control,
            content_language=options.content_language,
            content_encoding=options.content_encoding,
        )
        try:
            response = await blob_client.upload_blob(
                content,
                overwrite=True,
                content_settings=content_settings,
                metadata=options.metadata or None,
            )
        except ResourceNotFoundError as e:
            raise _not_found(e, container, key)

        if not isinstance(content, (bytes, bytearray)):
            # Size of streamed uploads is only known to the service.
            return await self.get_object_properties(container, key)

        return ObjectProperties(
            name=key,
            size=len(content),
            last_modified=response["last_modified"],
            content_type=options.content_type,
            etag=response.get("etag"),
            metadata=dict(options.metadata),
        )

    async def get_object(self, container: str, key: str) -> ObjectDownload:
        try:
            downloader = await self._blob(container, key).download_blob()
        except ResourceNotFoundError as e:
            raise _not_found(e, container, key)
        return ObjectDownload(
            properties=_to_properties(downloader.properties),
            chunks=downloader.chunks(),
        )

    async def get_object_properties(
        self, container: str, key: str
    ) -> ObjectProperties:
        try:
            props = await self._blob(container, key).get_blob_properties()
        except ResourceNotFoundError as e:
            raise _not_found(e, container, key)
        return _to_properties(props)

    async def delete_object(self, container: str, key: str) -> None:
        try:
            await self._blob(container, key).delete_blob()
        except ResourceNotFoundError as e:
            raise _not_found(e, container, key)

    async def copy_object(
        self, src_container: str, src_key: str, dest_container: str, dest_key: str
    ) -> None:
        source_url = self._blob(src_container, src_key).url
        dest_client = self._blob(dest_container, dest_key)
        try:
            copy = await dest_client.start_copy_from_url(source_url)
            status = copy.get("copy_status")
            while status == "pending":
                await asyncio.sleep(COPY_POLL_INTERVAL)
                props = await dest_client.get_blob_properties()
                status = props.copy.status
        except ResourceNotFoundError as e:
            raise _not_found(e, src_container, src_key)
        if status not in (None, "success"):
            raise RuntimeError(
                f"Copy of '{src_key}' to '{dest_key}' ended with status '{status}'"
            )

    async def list_objects(
        self,
        container: str,
        prefix: str = "",
        delimiter: str | None = None,
        max_results: int | None = None,
        continuation_token: str | None = None,
    ) -> ListingPage:
        container_client = self._client.get_container_client(container)
        if delimiter:
            paged = container_client.walk_blobs(
                name_starts_with=prefix or None,
                delimiter=delimiter,
                results_per_page=max_results,
            )
        else:
            paged = container_client.list_blobs(
                name_starts_with=prefix or None, results_per_page=max_results
            )
        pages = paged.by_page(continuation_token=continuation_token)

        entries: list[ObjectProperties] = []
        prefixes: list[str] = []
        try:
            page = await anext(pages)
            async for item in page:
                if isinstance(item, BlobProperties):
                    entries.append(_to_properties(item))
                else:
                    prefixes.append(item.name)
        except StopAsyncIteration:
            pass
        except ResourceNotFoundError as e:
            raise _not_found(e, container)

        logger.debug(
            "Listed %d blobs and %d prefixes under '%s' in %s",
            len(entries),
            len(prefixes),
            prefix,
            container,
        )
        return ListingPage(
            entries=entries,
            prefixes=prefixes,
            continuation_token=pages.continuation_token or None,
        )
