from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from typing import Any

from .paths import dirname


@dataclass(frozen=True)
class FileAttributes:
    path: str
    file_size: int
    last_modified: int  # unix timestamp
    mime_type: str | None = None
    visibility: str | None = None  # Always unknown for blob storage
    extra_metadata: dict[str, str] = field(default_factory=dict)

    is_file = True
    is_dir = False

    @property
    def dirname(self) -> str:
        return dirname(self.path)


@dataclass(frozen=True)
class DirectoryAttributes:
    path: str
    last_modified: int | None = None

    is_file = False
    is_dir = True

    @property
    def dirname(self) -> str:
        return dirname(self.path)


StorageAttributes = FileAttributes | DirectoryAttributes


# Option names accepted by from_mapping, including the capitalized
# spellings used by blob client configuration arrays.
_OPTION_ALIASES = {
    "content_type": "content_type",
    "ContentType": "content_type",
    "mimetype": "content_type",
    "cache_control": "cache_control",
    "CacheControl": "cache_control",
    "content_language": "content_language",
    "ContentLanguage": "content_language",
    "content_encoding": "content_encoding",
    "ContentEncoding": "content_encoding",
    "metadata": "metadata",
    "Metadata": "metadata",
}


@dataclass(frozen=True)
class UploadOptions:
    content_type: str | None = None
    cache_control: str | None = None
    content_language: str | None = None
    content_encoding: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any] | None) -> "UploadOptions":
        kwargs: dict[str, Any] = {}
        for key, value in (options or {}).items():
            name = _OPTION_ALIASES.get(key)
            if name is None or value is None:
                continue
            kwargs[name] = dict(value) if name == "metadata" else value
        return cls(**kwargs)

    def merged(self, other: "UploadOptions | None") -> "UploadOptions":
        """Fields set on `other` win; metadata dicts are merged."""
        if other is None:
            return self
        changes: dict[str, Any] = {
            f.name: getattr(other, f.name)
            for f in fields(other)
            if f.name != "metadata" and getattr(other, f.name) is not None
        }
        changes["metadata"] = {**self.metadata, **other.metadata}
        return replace(self, **changes)


@dataclass(frozen=True)
class ContainerOptions:
    public_access: str | None = None  # "container", "blob" or None (private)


@dataclass
class ObjectProperties:
    name: str
    size: int
    last_modified: datetime
    content_type: str | None = None
    etag: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class ListingPage:
    entries: list[ObjectProperties]
    prefixes: list[str]
    continuation_token: str | None = None


@dataclass
class ObjectDownload:
    properties: ObjectProperties
    chunks: AsyncIterator[bytes]
