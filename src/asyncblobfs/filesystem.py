import logging
from collections.abc import AsyncIterable, AsyncIterator, Mapping
from dataclasses import replace
from typing import IO, Any

from .attributes import (
    ContainerOptions,
    DirectoryAttributes,
    FileAttributes,
    ListingPage,
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
    ListContentsFailed,
    MetadataRetrievalFailed,
    MoveFailed,
    ReadFailed,
    VisibilityUnsupported,
    WriteFailed,
)
from .mime import ExtensionMimeTypeDetector
from .paths import PathPrefixer, dirname
from .storage_protocols import BlobStorageClient, MimeTypeDetector, ObjectContent

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 5000
SEPARATOR = "/"

OptionsArg = UploadOptions | Mapping[str, Any] | None


def _coerce_options(options: OptionsArg) -> UploadOptions | None:
    if options is None or isinstance(options, UploadOptions):
        return options
    return UploadOptions.from_mapping(options)


class BlobFilesystemAdapter:
    """
    Filesystem operations on top of a blob container.

    Paths are logical: the optional prefix is prepended on the way in and
    stripped on the way out. Directories are not stored; they are derived
    from blob name prefixes when listing. Missing blobs make delete succeed
    and file_exists return False; every other failure is raised as the
    operation's error type with the storage error as its cause.
    """

    def __init__(
        self,
        client: BlobStorageClient,
        container: str,
        prefix: str | None = None,
        *,
        max_results: int = DEFAULT_MAX_RESULTS,
        upload_options: OptionsArg = None,
        container_options: ContainerOptions | None = None,
        mime_detector: MimeTypeDetector | None = None,
    ) -> None:
        if max_results < 1:
            raise ValueError("max_results must be a positive integer")
        self._client = client
        self._container = container
        self._prefixer = PathPrefixer(prefix, SEPARATOR)
        self._max_results = max_results
        self._upload_options = _coerce_options(upload_options) or UploadOptions()
        self._container_options = container_options or ContainerOptions()
        self._mime_detector = mime_detector or ExtensionMimeTypeDetector()

    @property
    def container(self) -> str:
        return self._container

    @property
    def max_results(self) -> int:
        return self._max_results

    def with_max_results(self, max_results: int) -> "BlobFilesystemAdapter":
        """Return a copy of this adapter with a different listing page size."""
        return BlobFilesystemAdapter(
            self._client,
            self._container,
            self._prefixer.prefix,
            max_results=max_results,
            upload_options=self._upload_options,
            container_options=self._container_options,
            mime_detector=self._mime_detector,
        )

    async def __aenter__(self) -> "BlobFilesystemAdapter":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.close()

    # ---------------------------
    # Writing
    # ---------------------------

    async def write(
        self, path: str, contents: bytes | str, options: OptionsArg = None
    ) -> FileAttributes:
        if isinstance(contents, str):
            contents = contents.encode("utf-8")
        try:
            return await self._upload(path, contents, options, sample=contents)
        except Exception as e:
            raise WriteFailed(path, e) from e

    async def write_stream(
        self,
        path: str,
        stream: AsyncIterable[bytes] | IO[bytes],
        options: OptionsArg = None,
    ) -> FileAttributes:
        """
        Upload from a binary file object or an async iterable of bytes.
        The stream is closed whether or not the upload succeeds.
        """
        try:
            return await self._upload(path, stream, options, sample=None)
        except Exception as e:
            raise WriteFailed(path, e) from e
        finally:
            await _close_stream(stream)

    update = write
    update_stream = write_stream

    async def _upload(
        self,
        path: str,
        content: ObjectContent,
        options: OptionsArg,
        sample: bytes | None,
    ) -> FileAttributes:
        await self._ensure_container()

        upload_options = self._upload_options.merged(_coerce_options(options))
        if upload_options.content_type is None:
            upload_options = replace(
                upload_options,
                content_type=self._mime_detector.detect(path, sample),
            )

        key = self._prefixer.prefix_path(path)
        props = await self._client.put_object(
            self._container, key, content, upload_options
        )
        return self._file_attributes(path, props)

    async def _ensure_container(self) -> None:
        try:
            await self._client.get_container_properties(self._container)
            return
        except ContainerNotFoundError:
            pass

        try:
            await self._client.create_container(
                self._container, self._container_options
            )
            logger.info("Created container %s", self._container)
        except ContainerExistsError:
            # Created concurrently by someone else.
            logger.debug("Container %s already exists", self._container)

    # ---------------------------
    # Reading
    # ---------------------------

    async def read(self, path: str) -> bytes:
        try:
            download = await self._client.get_object(
                self._container, self._prefixer.prefix_path(path)
            )
            chunks = [chunk async for chunk in download.chunks]
        except Exception as e:
            raise ReadFailed(path, e) from e
        return b"".join(chunks)

    async def read_stream(self, path: str) -> AsyncIterator[bytes]:
        """
        Open a blob and return its content as an async iterator of chunks.
        Errors raised while consuming the iterator are not wrapped.
        """
        try:
            download = await self._client.get_object(
                self._container, self._prefixer.prefix_path(path)
            )
        except Exception as e:
            raise ReadFailed(path, e) from e
        return download.chunks

    async def file_exists(self, path: str) -> bool:
        try:
            await self._client.get_object_properties(
                self._container, self._prefixer.prefix_path(path)
            )
        except BlobNotFoundError:
            return False
        except Exception as e:
            raise ExistenceCheckFailed(path, e) from e
        return True

    has = file_exists

    # ---------------------------
    # Deleting
    # ---------------------------

    async def delete(self, path: str) -> None:
        try:
            await self._client.delete_object(
                self._container, self._prefixer.prefix_path(path)
            )
        except BlobNotFoundError:
            logger.debug("Delete of missing blob %s ignored", path)
        except Exception as e:
            raise DeleteFailed(path, e) from e

    async def delete_directory(self, path: str) -> None:
        """
        Delete every blob below path, following all listing pages.
        Not transactional: blobs deleted before a failure stay deleted.
        The root itself is never a directory, so an empty path deletes nothing.
        """
        if not path.strip(SEPARATOR):
            logger.debug("Delete of root directory ignored")
            return
        location = self._prefixer.prefix_directory_path(path)
        try:
            keys = [
                props.name
                async for page in self._iter_pages(location, delimiter=None)
                for props in page.entries
            ]
        except Exception as e:
            raise DeleteDirectoryFailed(path, e) from e

        first_error: Exception | None = None
        for key in keys:
            try:
                await self._client.delete_object(self._container, key)
            except BlobNotFoundError:
                continue
            except Exception as e:
                logger.warning("Failed to delete blob %s: %s", key, e)
                if first_error is None:
                    first_error = e

        if first_error is not None:
            raise DeleteDirectoryFailed(path, first_error) from first_error

    # ---------------------------
    # Directories, copy and move
    # ---------------------------

    async def create_directory(
        self, path: str, options: OptionsArg = None
    ) -> DirectoryAttributes:
        """Directories only exist as blob name prefixes, so nothing is stored."""
        return DirectoryAttributes(path.strip(SEPARATOR))

    async def copy(
        self, source: str, destination: str, options: OptionsArg = None
    ) -> None:
        """
        Server-side copy within the container. Content settings and
        metadata come from the source blob, so options are not applied.
        """
        try:
            await self._client.copy_object(
                self._container,
                self._prefixer.prefix_path(source),
                self._container,
                self._prefixer.prefix_path(destination),
            )
        except Exception as e:
            raise CopyFailed(source, destination, e) from e

    async def move(
        self, source: str, destination: str, options: OptionsArg = None
    ) -> None:
        """
        Copy then delete the source. If the source cannot be deleted the
        copy is removed again; a failed removal is kept on
        MoveFailed.rollback_error.
        """
        source_key = self._prefixer.prefix_path(source)
        destination_key = self._prefixer.prefix_path(destination)
        if source_key == destination_key:
            return

        try:
            await self.copy(source, destination, options)
        except CopyFailed as e:
            raise MoveFailed(source, destination, e.cause) from e

        try:
            await self._client.delete_object(self._container, source_key)
        except BlobNotFoundError:
            return
        except Exception as e:
            rollback_error = None
            try:
                await self._client.delete_object(self._container, destination_key)
            except Exception as rollback:
                logger.warning(
                    "Rollback of %s after failed move from %s failed: %s",
                    destination,
                    source,
                    rollback,
                )
                rollback_error = rollback
            raise MoveFailed(source, destination, e, rollback_error) from e

    rename = move

    # ---------------------------
    # Metadata
    # ---------------------------

    async def _fetch_metadata(self, path: str, reason: str) -> FileAttributes:
        try:
            props = await self._client.get_object_properties(
                self._container, self._prefixer.prefix_path(path)
            )
        except Exception as e:
            raise MetadataRetrievalFailed(path, reason, e) from e
        return self._file_attributes(path, props)

    async def get_metadata(self, path: str) -> FileAttributes:
        return await self._fetch_metadata(path, "metadata")

    async def file_size(self, path: str) -> int:
        return (await self._fetch_metadata(path, "file_size")).file_size

    async def last_modified(self, path: str) -> int:
        return (await self._fetch_metadata(path, "last_modified")).last_modified

    async def mime_type(self, path: str) -> str:
        attributes = await self._fetch_metadata(path, "mime_type")
        if attributes.mime_type is None:
            raise MetadataRetrievalFailed(path, "mime_type")
        return attributes.mime_type

    async def set_visibility(self, path: str, visibility: str) -> None:
        raise VisibilityUnsupported(path)

    async def visibility(self, path: str) -> str:
        raise VisibilityUnsupported(path)

    # ---------------------------
    # Listing
    # ---------------------------

    async def _iter_pages(
        self, location: str, delimiter: str | None
    ) -> AsyncIterator[ListingPage]:
        token: str | None = None
        while True:
            try:
                page = await self._client.list_objects(
                    self._container,
                    prefix=location,
                    delimiter=delimiter,
                    max_results=self._max_results,
                    continuation_token=token,
                )
            except ContainerNotFoundError:
                return
            yield page
            token = page.continuation_token
            if not token:
                return

    async def list_contents(
        self,
        path: str = "",
        recursive: bool = False,
        *,
        emulate_directories: bool = False,
    ) -> AsyncIterator[StorageAttributes]:
        """
        Yield file and directory attributes below path, page by page.

        Non-recursive listings group nested blobs into one directory entry
        per common prefix. With emulate_directories, directories implied by
        nested file paths are also yielded, once each.
        """
        location = self._prefixer.prefix_directory_path(path)
        base = path.strip(SEPARATOR)
        seen_directories: set[str] = set()

        def new_directories(paths) -> list[DirectoryAttributes]:
            found = []
            for dir_path in paths:
                if dir_path and dir_path not in seen_directories:
                    seen_directories.add(dir_path)
                    found.append(DirectoryAttributes(dir_path))
            return found

        pages = self._iter_pages(location, None if recursive else SEPARATOR)
        try:
            async for page in pages:
                for props in page.entries:
                    if location and not props.name.startswith(location):
                        continue
                    attributes = self._normalize(props)
                    if attributes.is_dir:
                        for directory in new_directories([attributes.path]):
                            yield directory
                        continue
                    if emulate_directories:
                        implied = _ancestors(attributes.path, base)
                        for directory in new_directories(implied):
                            yield directory
                    yield attributes

                for prefix in page.prefixes:
                    if location and not prefix.startswith(location):
                        continue
                    dir_path = self._prefixer.strip_directory_prefix(prefix)
                    for directory in new_directories([dir_path]):
                        yield directory
        except Exception as e:
            raise ListContentsFailed(path, e) from e

    # ---------------------------
    # Normalization
    # ---------------------------

    def _normalize(self, props: ObjectProperties) -> StorageAttributes:
        path = self._prefixer.strip_prefix(props.name)
        if path.endswith(SEPARATOR):
            # Placeholder blob for an empty "folder".
            return DirectoryAttributes(path.rstrip(SEPARATOR))
        return self._file_attributes(path, props)

    @staticmethod
    def _file_attributes(path: str, props: ObjectProperties) -> FileAttributes:
        return FileAttributes(
            path=path,
            file_size=props.size,
            last_modified=int(props.last_modified.timestamp()),
            mime_type=props.content_type,
            extra_metadata=dict(props.metadata),
        )


def _ancestors(path: str, base: str) -> list[str]:
    """Directories between base (exclusive) and path's parent (inclusive)."""
    found: list[str] = []
    parent = dirname(path, SEPARATOR)
    while parent and parent != base:
        found.append(parent)
        parent = dirname(parent, SEPARATOR)
    return list(reversed(found))


async def _close_stream(stream: Any) -> None:
    aclose = getattr(stream, "aclose", None)
    if aclose is not None:
        await aclose()
        return
    close = getattr(stream, "close", None)
    if close is not None:
        close()
