import asyncio
import hashlib
import logging
import weakref
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import quote, unquote

from .attributes import (
    ContainerOptions,
    ListingPage,
    ObjectDownload,
    ObjectProperties,
    UploadOptions,
)
from .errors import BlobNotFoundError, ContainerExistsError, ContainerNotFoundError
from .serializers import JSONSerializer
from .storage_protocols import BlobStorageClient, ObjectContent

logger = logging.getLogger(__name__)

META_DIR = ".blobmeta"
CHUNK_SIZE = 64 * 1024


def _ensure_within(base: Path, target: Path, strict: bool = True) -> Path:
    """
    Resolve target path and ensure it is inside base path.
    strict=True will fail if the target does not exist (good for read/delete).
    strict=False allows non-existing targets (good for upload).
    """
    base_resolved = base.resolve(strict=True)
    if strict:
        target_resolved = target.resolve(strict=True)
    else:
        target_resolved = target.resolve()
    if not target_resolved.is_relative_to(base_resolved):
        raise ValueError(
            f"Path {target_resolved} escapes base directory {base_resolved}"
        )
    return target_resolved


def encode_name(key: str) -> str:
    """
    Map a blob name to a single file name. Separators are percent-encoded,
    so "x" and "x/a.txt" are siblings on disk, and a leading dot is encoded
    so names like ".." stay ordinary files.
    """
    encoded = quote(key, safe="")
    if encoded.startswith("."):
        encoded = "%2E" + encoded[1:]
    return encoded


def decode_name(filename: str) -> str:
    return unquote(filename)


async def _read_content(content: ObjectContent) -> bytes:
    if isinstance(content, (bytes, bytearray)):
        return bytes(content)
    if hasattr(content, "read"):
        return content.read()
    chunks = [chunk async for chunk in content]
    return b"".join(chunks)


async def _iter_chunks(data: bytes) -> AsyncIterator[bytes]:
    for start in range(0, len(data), CHUNK_SIZE):
        yield data[start : start + CHUNK_SIZE]


class LocalBlobClient(BlobStorageClient):
    """
    Local filesystem client for BlobFilesystemAdapter.
    Containers are directories below base_path holding one file per blob,
    named by encode_name(); blob properties are kept as JSON sidecars under
    base_path/.blobmeta.
    """

    def __init__(self, base_path: str):
        self._base_path = Path(base_path).resolve()
        self._base_path.mkdir(parents=True, exist_ok=True)
        self._meta_path = self._base_path / META_DIR
        self._meta_path.mkdir(exist_ok=True)
        self._serializer = JSONSerializer()
        # Entries disappear once no task holds the lock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    async def close(self) -> None:
        pass

    def _lock(self, path: Path) -> asyncio.Lock:
        key = str(path)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def _container_path(self, container: str) -> Path:
        if container in ("", META_DIR):
            raise ValueError(f"Invalid container name '{container}'")
        return _ensure_within(
            self._base_path, self._base_path / container, strict=False
        )

    def _existing_container(self, container: str) -> Path:
        path = self._container_path(container)
        if not path.is_dir():
            raise ContainerNotFoundError(f"Container '{container}' not found")
        return path

    def _blob_path(self, container: str, key: str) -> Path:
        if not key:
            raise ValueError("Blob name must not be empty")
        container_path = self._existing_container(container)
        return _ensure_within(
            container_path, container_path / encode_name(key), strict=False
        )

    def _sidecar_path(self, container: str, key: str) -> Path:
        return self._meta_path / container / f"{encode_name(key)}.json"

    def _load_sidecar(self, container: str, key: str) -> dict:
        sidecar = self._sidecar_path(container, key)
        if not sidecar.exists():
            return {}
        return self._serializer.deserialize(sidecar.read_bytes())

    def _load_properties(self, container: str, key: str) -> ObjectProperties:
        blob_path = self._blob_path(container, key)
        if not blob_path.is_file():
            raise BlobNotFoundError(
                f"Blob '{key}' not found in container '{container}'"
            )
        # Strict resolve to catch symlink escapes
        _ensure_within(self._container_path(container), blob_path, strict=True)
        stored = self._load_sidecar(container, key)
        stat = blob_path.stat()
        return ObjectProperties(
            name=key,
            size=stat.st_size,
            last_modified=stored.get(
                "last_modified", datetime.fromtimestamp(stat.st_mtime, timezone.utc)
            ),
            content_type=stored.get("content_type"),
            etag=stored.get("etag"),
            metadata=stored.get("metadata", {}),
        )

    async def create_container(
        self, container: str, options: ContainerOptions | None = None
    ) -> None:
        path = self._container_path(container)
        try:
            path.mkdir(parents=True)
        except FileExistsError as e:
            raise ContainerExistsError(
                f"Container '{container}' already exists"
            ) from e
        logger.debug("Created local container %s at %s", container, path)

    async def get_container_properties(self, container: str) -> dict:
        path = self._existing_container(container)
        return {
            "name": container,
            "last_modified": datetime.fromtimestamp(path.stat().st_mtime, timezone.utc),
        }

    async def put_object(
        self,
        container: str,
        key: str,
        content: ObjectContent,
        options: UploadOptions | None = None,
    ) -> ObjectProperties:
        options = options or UploadOptions()
        blob_path = self._blob_path(container, key)
        data = await _read_content(content)
        props = ObjectProperties(
            name=key,
            size=len(data),
            last_modified=datetime.now(timezone.utc),
            content_type=options.content_type,
            etag=hashlib.md5(data).hexdigest(),
            metadata=dict(options.metadata),
        )
        sidecar = self._sidecar_path(container, key)
        async with self._lock(blob_path):
            blob_path.write_bytes(data)
            sidecar.parent.mkdir(parents=True, exist_ok=True)
            sidecar.write_bytes(
                self._serializer.serialize(
                    {
                        "last_modified": props.last_modified,
                        "content_type": options.content_type,
                        "cache_control": options.cache_control,
                        "content_language": options.content_language,
                        "content_encoding": options.content_encoding,
                        "etag": props.etag,
                        "metadata": props.metadata,
                    }
                )
            )
        return props

    async def get_object(self, container: str, key: str) -> ObjectDownload:
        props = self._load_properties(container, key)
        blob_path = self._blob_path(container, key)
        async with self._lock(blob_path):
            data = blob_path.read_bytes()
        return ObjectDownload(properties=props, chunks=_iter_chunks(data))

    async def get_object_properties(
        self, container: str, key: str
    ) -> ObjectProperties:
        return self._load_properties(container, key)

    async def delete_object(self, container: str, key: str) -> None:
        self._load_properties(container, key)
        blob_path = self._blob_path(container, key)
        async with self._lock(blob_path):
            blob_path.unlink()
            self._sidecar_path(container, key).unlink(missing_ok=True)

    async def copy_object(
        self, src_container: str, src_key: str, dest_container: str, dest_key: str
    ) -> None:
        download = await self.get_object(src_container, src_key)
        data = b"".join([chunk async for chunk in download.chunks])
        stored = self._load_sidecar(src_container, src_key)
        options = UploadOptions(
            content_type=stored.get("content_type"),
            cache_control=stored.get("cache_control"),
            content_language=stored.get("content_language"),
            content_encoding=stored.get("content_encoding"),
            metadata=stored.get("metadata", {}),
        )
        await self.put_object(dest_container, dest_key, data, options)

    def _blob_names(self, container_path: Path) -> list[str]:
        names: list[str] = []
        for path in container_path.iterdir():
            if path.is_file():
                # Strict resolve to catch symlink escapes
                _ensure_within(container_path, path, strict=True)
                names.append(decode_name(path.name))
        return sorted(names)

    async def list_objects(
        self,
        container: str,
        prefix: str = "",
        delimiter: str | None = None,
        max_results: int | None = None,
        continuation_token: str | None = None,
    ) -> ListingPage:
        container_path = self._existing_container(container)

        # name -> blob name, or None for a common prefix
        items: dict[str, str | None] = {}
        for name in self._blob_names(container_path):
            if not name.startswith(prefix):
                continue
            rest = name[len(prefix) :]
            if delimiter and delimiter in rest:
                common = prefix + rest.split(delimiter, 1)[0] + delimiter
                items.setdefault(common, None)
            else:
                items[name] = name

        keys = sorted(
            k for k in items if continuation_token is None or k > continuation_token
        )
        next_token = None
        if max_results is not None and len(keys) > max_results:
            keys = keys[:max_results]
            next_token = keys[-1]

        entries: list[ObjectProperties] = []
        prefixes: list[str] = []
        for key in keys:
            if items[key] is None:
                prefixes.append(key)
            else:
                entries.append(self._load_properties(container, key))
        return ListingPage(
            entries=entries, prefixes=prefixes, continuation_token=next_token
        )
