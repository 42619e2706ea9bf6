import asyncio
import gc
import os
import sys

import pytest

from asyncblobfs import (
    BlobNotFoundError,
    ContainerExistsError,
    ContainerNotFoundError,
    LocalBlobClient,
    UploadOptions,
)

CONTAINER = "test_container"


@pytest.fixture
def client(tmp_path):
    (tmp_path / CONTAINER).mkdir()
    return LocalBlobClient(str(tmp_path))


async def names(client, **kwargs):
    page = await client.list_objects(CONTAINER, **kwargs)
    return [e.name for e in page.entries], page.prefixes, page.continuation_token


@pytest.mark.asyncio
async def test_create_container_twice(client):
    with pytest.raises(ContainerExistsError):
        await client.create_container(CONTAINER)
    assert (await client.get_container_properties(CONTAINER))["name"] == CONTAINER


@pytest.mark.asyncio
async def test_missing_container(client):
    with pytest.raises(ContainerNotFoundError):
        await client.get_container_properties("other")
    with pytest.raises(ContainerNotFoundError):
        await client.put_object("other", "a.txt", b"x")


@pytest.mark.asyncio
async def test_properties_survive_round_trip(client):
    options = UploadOptions(content_type="text/plain", metadata={"k": "v"})
    written = await client.put_object(CONTAINER, "dir/a.txt", b"hello", options)

    props = await client.get_object_properties(CONTAINER, "dir/a.txt")
    assert props.size == 5
    assert props.content_type == "text/plain"
    assert props.metadata == {"k": "v"}
    assert props.etag == written.etag
    assert props.last_modified == written.last_modified


@pytest.mark.asyncio
async def test_copy_keeps_content_settings(client):
    await client.put_object(
        CONTAINER, "a.txt", b"hello", UploadOptions(content_type="text/x-a")
    )
    await client.copy_object(CONTAINER, "a.txt", CONTAINER, "b/c.txt")

    download = await client.get_object(CONTAINER, "b/c.txt")
    assert download.properties.content_type == "text/x-a"
    assert b"".join([chunk async for chunk in download.chunks]) == b"hello"


@pytest.mark.asyncio
async def test_delete_missing_blob(client):
    with pytest.raises(BlobNotFoundError):
        await client.delete_object(CONTAINER, "missing.txt")


@pytest.mark.asyncio
async def test_listing_with_delimiter(client):
    for key in ("x/a.txt", "x/y/b.txt", "x/y/c.txt", "x/z/d.txt", "xa.txt"):
        await client.put_object(CONTAINER, key, b"x")

    entries, prefixes, token = await names(client, prefix="x/", delimiter="/")

    assert entries == ["x/a.txt"]
    assert prefixes == ["x/y/", "x/z/"]
    assert token is None


@pytest.mark.asyncio
async def test_listing_pages_with_continuation_token(client):
    for key in ("p/1", "p/2", "p/q/3", "p/r/4"):
        await client.put_object(CONTAINER, key, b"x")

    seen = []
    token = None
    while True:
        entries, prefixes, token = await names(
            client, prefix="p/", delimiter="/", max_results=1, continuation_token=token
        )
        seen.extend(entries + prefixes)
        if token is None:
            break

    assert seen == ["p/1", "p/2", "p/q/", "p/r/"]


@pytest.mark.asyncio
async def test_concurrent_writes_do_not_interleave(client):
    async def writer(data):
        await client.put_object(CONTAINER, "shared.txt", data)

    await asyncio.gather(writer(b"first"), writer(b"second"))

    download = await client.get_object(CONTAINER, "shared.txt")
    content = b"".join([chunk async for chunk in download.chunks])
    assert content in (b"first", b"second")


@pytest.mark.asyncio
async def test_path_traversal_protection(client, tmp_path):
    await client.put_object(CONTAINER, "../../etc/passwd", b"x")
    # The name is stored as one encoded file inside the container
    assert [p.parent for p in (tmp_path / CONTAINER).iterdir()] == [
        tmp_path / CONTAINER
    ]
    download = await client.get_object(CONTAINER, "../../etc/passwd")
    assert b"".join([chunk async for chunk in download.chunks]) == b"x"

    with pytest.raises(ValueError) as excinfo:
        await client.create_container("../outside_container")
    assert "escapes base directory" in str(excinfo.value)


@pytest.mark.asyncio
async def test_symlink_outside_protection(client, tmp_path):
    if not hasattr(os, "symlink"):
        pytest.skip("Symlinks not supported on this platform")
    if sys.platform == "win32":
        pytest.skip("Symlink creation needs extra privileges on Windows")

    # Create a file outside the base directory
    outside_file = tmp_path.parent / f"{tmp_path.name}_outside.txt"
    outside_file.write_text("secret")

    symlink_path = tmp_path / CONTAINER / "link.txt"
    symlink_path.symlink_to(outside_file)

    with pytest.raises(ValueError):
        await client.get_object(CONTAINER, "link.txt")
    with pytest.raises(ValueError):
        await client.delete_object(CONTAINER, "link.txt")

    assert outside_file.exists(), "Outside file should not be deleted"


@pytest.mark.asyncio
async def test_blob_and_directory_share_a_name(client):
    await client.put_object(CONTAINER, "x", b"file")
    await client.put_object(CONTAINER, "x/a.txt", b"nested")

    assert await names(client) == (["x", "x/a.txt"], [], None)
    assert await names(client, delimiter="/") == (["x"], ["x/"], None)
    assert await names(client, prefix="x/", delimiter="/") == (["x/a.txt"], [], None)

    for key, expected in (("x", b"file"), ("x/a.txt", b"nested")):
        download = await client.get_object(CONTAINER, key)
        assert b"".join([chunk async for chunk in download.chunks]) == expected

    await client.delete_object(CONTAINER, "x")
    assert await names(client) == (["x/a.txt"], [], None)


@pytest.mark.asyncio
async def test_dot_names_stay_inside_container(client, tmp_path):
    for key in (".", "..", ".hidden", "%2F"):
        await client.put_object(CONTAINER, key, key.encode())

    entries, _, _ = await names(client)
    assert entries == sorted([".", "..", ".hidden", "%2F"])
    assert all(p.is_file() for p in (tmp_path / CONTAINER).iterdir())


@pytest.mark.asyncio
async def test_create_container_lost_race(client, monkeypatch):
    original = LocalBlobClient._container_path

    def created_elsewhere(self, container):
        # Another process creates the directory right after the path is resolved
        path = original(self, container)
        path.mkdir(exist_ok=True)
        return path

    monkeypatch.setattr(LocalBlobClient, "_container_path", created_elsewhere)
    with pytest.raises(ContainerExistsError):
        await client.create_container("racing")


@pytest.mark.asyncio
async def test_locks_are_per_client_and_released(tmp_path):
    (tmp_path / CONTAINER).mkdir()
    first = LocalBlobClient(str(tmp_path))
    second = LocalBlobClient(str(tmp_path))

    for i in range(5):
        await first.put_object(CONTAINER, f"k{i}.txt", b"x")
    gc.collect()

    assert len(first._locks) == 0
    assert len(second._locks) == 0
    path = tmp_path / CONTAINER / "k0.txt"
    assert first._lock(path) is not second._lock(path)
