import os
from datetime import datetime, timezone

import pytest

from asyncblobfs import (
    AdapterSettings,
    BlobFilesystemAdapter,
    ExtensionMimeTypeDetector,
    FileAttributes,
    PathPrefixer,
    UploadOptions,
)
from asyncblobfs.local_blob_client import decode_name, encode_name
from asyncblobfs.paths import dirname
from asyncblobfs.serializers import JSONSerializer

AZURITE_CONN_STR = (
    "DefaultEndpointsProtocol=http;AccountName=devstoreaccount1;"
    "AccountKey=Eby8vdM02xNOcqFlqUwJPLlmEtlCDXJ1OUzFT50uSRZ6IFsuFq2UVErCz4I6tq/"
    "K1SZFPTOtr/KBHBeksoGMGw==;"
    "BlobEndpoint=http://127.0.0.1:10000/devstoreaccount1;"
)


@pytest.mark.parametrize("prefix", [None, "", "root", "root/", "/root/", "a/b"])
@pytest.mark.parametrize("path", ["file.txt", "dir/file.txt", "dir/sub/file"])
def test_prefix_round_trip(prefix, path):
    prefixer = PathPrefixer(prefix)
    assert prefixer.strip_prefix(prefixer.prefix_path(path)) == path


def test_prefix_is_normalized_to_one_separator():
    assert PathPrefixer("/root//").prefix_path("a.txt") == "root/a.txt"
    assert PathPrefixer(None).prefix_path("/a.txt") == "a.txt"


def test_directory_paths():
    prefixer = PathPrefixer("root")
    assert prefixer.prefix_directory_path("") == "root/"
    assert prefixer.prefix_directory_path("x") == "root/x/"
    assert prefixer.prefix_directory_path("x//") == "root/x/"
    assert prefixer.strip_directory_prefix("root/x/y/") == "x/y"
    assert PathPrefixer().prefix_directory_path("") == ""


def test_dirname():
    assert dirname("a.txt") == ""
    assert dirname("x/y/a.txt") == "x/y"
    assert FileAttributes("x/a.txt", 1, 0).dirname == "x"


def test_upload_options_from_mapping_accepts_aliases():
    options = UploadOptions.from_mapping(
        {
            "mimetype": "text/csv",
            "CacheControl": "no-cache",
            "content_encoding": "gzip",
            "Metadata": {"owner": "reports"},
            "visibility": "public",
        }
    )
    assert options == UploadOptions(
        content_type="text/csv",
        cache_control="no-cache",
        content_encoding="gzip",
        metadata={"owner": "reports"},
    )


def test_upload_options_merge_prefers_explicit_values():
    defaults = UploadOptions(cache_control="max-age=60", metadata={"a": "1"})
    merged = defaults.merged(
        UploadOptions(content_type="text/plain", metadata={"a": "2"})
    )
    assert merged.cache_control == "max-age=60"
    assert merged.content_type == "text/plain"
    assert merged.metadata == {"a": "2"}
    assert defaults.merged(None) is defaults


@pytest.mark.parametrize(
    "path, content, expected",
    [
        ("a.json", b"{}", "application/json"),
        ("photo", b"\xff\xd8\xff\xe0rest", "image/jpeg"),
        ("doc", b"%PDF-1.7", "application/pdf"),
        ("image", b"RIFF\x00\x00\x00\x00WEBPVP8 ", "image/webp"),
        ("notes", "héllo".encode("utf-8"), "text/plain"),
        ("blob", b"\xfe\xfe\xfe\xfe", "application/octet-stream"),
        ("empty", b"", "application/octet-stream"),
        ("stream", None, "application/octet-stream"),
    ],
)
def test_mime_type_detection(path, content, expected):
    assert ExtensionMimeTypeDetector().detect(path, content) == expected


def test_settings_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("ASYNCBLOBFS_CONNECTION_STRING", AZURITE_CONN_STR)
    monkeypatch.setenv("ASYNCBLOBFS_CONTAINER", "files")
    monkeypatch.setenv("ASYNCBLOBFS_PREFIX", "root")
    monkeypatch.setenv("ASYNCBLOBFS_MAX_RESULTS", "100")
    monkeypatch.setenv("ASYNCBLOBFS_CACHE_CONTROL", "no-cache")

    settings = AdapterSettings.from_env(str(tmp_path / "missing.env"))

    assert settings.container == "files"
    assert settings.prefix == "root"
    assert settings.max_results == 100
    assert settings.upload_options() == UploadOptions(cache_control="no-cache")

    adapter = settings.build_adapter()
    assert isinstance(adapter, BlobFilesystemAdapter)
    assert adapter.container == "files"
    assert adapter.max_results == 100


def test_settings_from_dotenv_file(monkeypatch, tmp_path):
    monkeypatch.delenv("ASYNCBLOBFS_CONNECTION_STRING", raising=False)
    monkeypatch.delenv("ASYNCBLOBFS_CONTAINER", raising=False)
    monkeypatch.delenv("ASYNCBLOBFS_MAX_RESULTS", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text(
        "ASYNCBLOBFS_CONNECTION_STRING=UseDevelopmentStorage=true\n"
        "ASYNCBLOBFS_CONTAINER=from-file\n"
    )

    try:
        settings = AdapterSettings.from_env(str(env_file))
    finally:
        os.environ.pop("ASYNCBLOBFS_CONNECTION_STRING", None)
        os.environ.pop("ASYNCBLOBFS_CONTAINER", None)

    assert settings.container == "from-file"
    assert settings.max_results == 5000


def test_settings_require_connection_and_container(monkeypatch, tmp_path):
    monkeypatch.delenv("ASYNCBLOBFS_CONNECTION_STRING", raising=False)
    monkeypatch.delenv("ASYNCBLOBFS_CONTAINER", raising=False)
    with pytest.raises(ValueError):
        AdapterSettings.from_env(str(tmp_path / "missing.env"))


def test_sidecar_serializer_keeps_datetimes():
    serializer = JSONSerializer()
    stored = {
        "last_modified": datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc),
        "metadata": {"k": "v"},
        "content_type": None,
    }

    assert serializer.deserialize(serializer.serialize(stored)) == stored


def test_sidecar_serializer_rejects_bad_input():
    serializer = JSONSerializer()
    with pytest.raises(ValueError):
        serializer.serialize({"value": object()})
    with pytest.raises(ValueError):
        serializer.deserialize(b"{not json")


@pytest.mark.parametrize(
    "name, filename",
    [
        ("a.txt", "a.txt"),
        ("x/a.txt", "x%2Fa.txt"),
        ("..", "%2E."),
        (".hidden", "%2Ehidden"),
        ("100%", "100%25"),
    ],
)
def test_blob_names_map_to_single_file_names(name, filename):
    assert encode_name(name) == filename
    assert decode_name(filename) == name
