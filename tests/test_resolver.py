#!/usr/bin/env python3
"""
Tests for reference resolution: local, remote and pass-through links
"""
import httpx
import pytest
import pytest_asyncio

from vault_media.addressing import compute_hash
from vault_media.links import build_link_graph
from vault_media.resolver import DownloadTooLarge, ReferenceResolver, download_image

from helpers import make_oversized_png, make_png, shard_path, write_file

CAT = make_png("orange", (12, 12))
DOG = make_png("brown", (12, 12))


def image_transport(routes):
    """MockTransport serving the given url -> (status, body) table"""
    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url not in routes:
            return httpx.Response(404, content=b"not found")
        status, body = routes[url]
        if isinstance(body, Exception):
            raise body
        return httpx.Response(status, content=body, headers={"Content-Type": "image/png"})
    return httpx.MockTransport(handler)


@pytest_asyncio.fixture
async def make_resolver(vault, store, notices):
    clients = []

    async def factory(routes=None, link_graph=None, **kwargs):
        client = httpx.AsyncClient(transport=image_transport(routes or {}))
        clients.append(client)
        if link_graph is None:
            link_graph = await build_link_graph(vault, vault)
        return ReferenceResolver(store, vault, link_graph, client=client, notifier=notices, **kwargs)

    yield factory

    for client in clients:
        await client.aclose()


# ============================================================================
# Pass-through
# ============================================================================

@pytest.mark.asyncio
async def test_data_uri_unchanged(make_resolver):
    resolver = await make_resolver()
    match = "![inline](data:image/png;base64,iVBORw0KGgo=)"
    assert await resolver.resolve(match, "inline", "data:image/png;base64,iVBORw0KGgo=") == match


@pytest.mark.asyncio
async def test_non_image_link_unchanged(make_resolver):
    resolver = await make_resolver()
    match = "![doc](notes/readme.pdf)"
    assert await resolver.resolve(match, "doc", "notes/readme.pdf") == match


@pytest.mark.asyncio
async def test_missing_local_image_unchanged(make_resolver, vault_dir):
    resolver = await make_resolver()
    match = "![gone](raw/missing.png)"
    assert await resolver.resolve(match, "gone", "raw/missing.png") == match
    assert not (vault_dir / "media").exists()


# ============================================================================
# Local Images
# ============================================================================

@pytest.mark.asyncio
async def test_local_image_moved_into_store(make_resolver, vault_dir):
    write_file(vault_dir, "raw/cat.png", CAT)
    write_file(vault_dir, "note.md", "See ![cat](./raw/cat.png)\n")
    resolver = await make_resolver()

    replacement = await resolver.resolve("![cat](./raw/cat.png)", "cat", "./raw/cat.png")

    expected_path = shard_path("media", compute_hash(CAT), "png")
    assert replacement == f"![cat]({expected_path})", f"Unexpected replacement: {replacement}"
    assert (vault_dir / expected_path).read_bytes() == CAT
    assert (vault_dir / "raw/cat.png").exists(), "Source image is copied, not moved"

    print("✅ Local image stored under its content hash")


@pytest.mark.asyncio
async def test_percent_encoded_local_link(make_resolver, vault_dir):
    write_file(vault_dir, "raw/my cat.png", CAT)
    write_file(vault_dir, "note.md", "![](raw/my%20cat.png)\n")
    resolver = await make_resolver()

    replacement = await resolver.resolve("![](raw/my%20cat.png)", "", "raw/my%20cat.png")
    assert replacement == f"![]({shard_path('media', compute_hash(CAT), 'png')})"


@pytest.mark.asyncio
async def test_already_canonical_link_unchanged(make_resolver, vault_dir, store):
    result = await store.store(CAT)
    write_file(vault_dir, "note.md", f"![cat]({result.path})\n")
    resolver = await make_resolver()

    match = f"![cat]({result.path})"
    assert await resolver.resolve(match, "cat", result.path) == match


@pytest.mark.asyncio
async def test_injected_link_matcher(make_resolver, vault_dir):
    write_file(vault_dir, "a/cat.png", CAT)
    write_file(vault_dir, "b/cat.png", DOG)
    resolver = await make_resolver(link_graph={}, link_matcher=lambda graph, link: "b/cat.png")

    replacement = await resolver.resolve("![](cat.png)", "", "cat.png")
    assert replacement == f"![]({shard_path('media', compute_hash(DOG), 'png')})"


# ============================================================================
# Remote Images
# ============================================================================

@pytest.mark.asyncio
async def test_remote_image_downloaded(make_resolver, vault_dir):
    url = "https://images.example.com/dog"
    resolver = await make_resolver({url: (200, DOG)})

    replacement = await resolver.resolve(f"![dog]({url})", "dog", url)

    expected_path = shard_path("media", compute_hash(DOG), "png")
    assert replacement == f"![dog]({expected_path})"
    assert (vault_dir / expected_path).read_bytes() == DOG


@pytest.mark.asyncio
async def test_remote_failure_unchanged(make_resolver, vault_dir):
    missing = "https://images.example.com/404.png"
    broken = "https://images.example.com/broken.png"
    resolver = await make_resolver({broken: (200, httpx.ConnectError("connection refused"))})

    for url in (missing, broken):
        match = f"![x]({url})"
        assert await resolver.resolve(match, "x", url) == match, f"{url} should be left unchanged"
    assert not (vault_dir / "media").exists()

    print("✅ Download failures leave references unchanged")


@pytest.mark.asyncio
async def test_remote_non_image_unchanged(make_resolver):
    url = "https://example.com/page.html"
    resolver = await make_resolver({url: (200, b"<html><body>hi</body></html>")})
    match = f"![page]({url})"
    assert await resolver.resolve(match, "page", url) == match


@pytest.mark.asyncio
async def test_collision_notifies(make_resolver, vault_dir, store, notices):
    url = "https://images.example.com/cat.png"
    canonical = store.resolve_path(store.addresser.identify(CAT))
    write_file(vault_dir, canonical, DOG)
    resolver = await make_resolver({url: (200, CAT)})

    match = f"![cat]({url})"
    assert await resolver.resolve(match, "cat", url) == match
    assert (vault_dir / canonical).read_bytes() == DOG
    assert any("collision" in n.message.lower() for n in notices.history())


@pytest.mark.asyncio
async def test_download_size_limit():
    url = "https://images.example.com/big.png"
    async with httpx.AsyncClient(transport=image_transport({url: (200, DOG)})) as client:
        with pytest.raises(httpx.HTTPError):
            await download_image(client, url, max_size=10)
        assert await download_image(client, url) == DOG


@pytest.mark.asyncio
async def test_download_stops_at_size_limit():
    """An undeclared oversized body is abandoned without reading it all"""
    url = "https://images.example.com/endless.png"
    sent = []

    async def body():
        for _ in range(10):
            sent.append(1000)
            yield b"\x00" * 1000

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=body())

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(DownloadTooLarge):
            await download_image(client, url, max_size=2500)

    assert sum(sent) < 10 * 1000, f"Whole body was read: {sum(sent)} bytes"


@pytest.mark.asyncio
async def test_download_declared_length_over_limit():
    url = "https://images.example.com/huge.png"
    async with httpx.AsyncClient(transport=image_transport({url: (200, DOG)})) as client:
        with pytest.raises(DownloadTooLarge) as exc_info:
            await download_image(client, url, max_size=len(DOG) - 1)
    assert "declared" in str(exc_info.value)


@pytest.mark.asyncio
async def test_local_image_over_pixel_limit_stored(make_resolver, vault_dir):
    big = make_oversized_png(20000, 20000)
    write_file(vault_dir, "raw/big.png", big)
    write_file(vault_dir, "note.md", "![b](raw/big.png)\n")
    resolver = await make_resolver()

    replacement = await resolver.resolve("![b](raw/big.png)", "b", "raw/big.png")

    expected_path = shard_path("media", compute_hash(big), "png")
    assert replacement == f"![b]({expected_path})", f"Unexpected replacement: {replacement}"
    assert (vault_dir / expected_path).read_bytes() == big
