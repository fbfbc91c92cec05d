#!/usr/bin/env python3
"""
Tests for link classification, link graph building and link text
"""
import pytest

from vault_media.links import (
    build_link_graph, extract_link_targets, generate_markdown_link, get_link_full_path,
    has_image_extension, is_local_image, is_url, normalize_link,
)

from helpers import make_png, write_file


# ============================================================================
# Classification
# ============================================================================

@pytest.mark.parametrize("link,expected", [
    ("https://example.com/a.png", True),
    ("http://example.com", True),
    ("ftp://files.example.com/x.jpg", True),
    ("data:image/png;base64,AAAA", False),
    ("raw/cat.png", False),
    ("./raw/cat.png", False),
    ("C:/Users/me/cat.png", False),
    ("", False),
])
def test_is_url(link, expected):
    assert is_url(link) == expected, f"is_url({link!r}) should be {expected}"


def test_image_extensions_case_insensitive():
    assert has_image_extension("a/B.PNG")
    assert has_image_extension("photo.JpEg")
    assert not has_image_extension("notes.md")
    assert not has_image_extension("png")
    assert is_local_image("pics/x.webp")
    assert not is_local_image("https://example.com/x.webp")
    assert not is_local_image("x.ico")
    assert is_local_image("x.ico", ["ico"])


def test_normalize_link():
    assert normalize_link("./raw/cat.png") == "raw/cat.png"
    assert normalize_link("../../raw/cat.png") == "raw/cat.png"
    assert normalize_link("/raw/cat.png") == "raw/cat.png"
    assert normalize_link("raw\\cat.png") == "raw/cat.png"


# ============================================================================
# Link Graph Lookup
# ============================================================================

def test_get_link_full_path_containment():
    graph = {
        "note.md": {"raw/cat.png": 1, "other/dog.png": 2},
        "second.md": {"media/a/b/c/abc.png": 1},
    }
    assert get_link_full_path(graph, "./raw/cat.png") == "raw/cat.png"
    assert get_link_full_path(graph, "cat.png") == "raw/cat.png"
    assert get_link_full_path(graph, "abc.png") == "media/a/b/c/abc.png"
    assert get_link_full_path(graph, "elsewhere/cat.png") is None
    assert get_link_full_path(graph, "at.png") is None, "Base names must match exactly"
    assert get_link_full_path({}, "cat.png") is None


def test_extract_link_targets():
    text = (
        "![one](img/one.png) [doc](Other%20Note.md) "
        "![[two.png]] [[Linked Note#Heading|alias]] "
        '![three](<img/with space.png>) ![four](four.png "title")'
    )
    targets = extract_link_targets(text)
    assert targets == [
        "img/one.png", "Other Note.md", "img/with space.png", "four.png",
        "two.png", "Linked Note",
    ], f"Unexpected targets: {targets}"


@pytest.mark.asyncio
async def test_build_link_graph(vault, vault_dir):
    png = make_png()
    write_file(vault_dir, "img/cat.png", png)
    write_file(vault_dir, "notes/pics/dog.png", png)
    write_file(vault_dir, "unused.png", png)
    write_file(vault_dir, "notes/day.md", "![c](../img/cat.png) ![[dog.png]] ![x](nowhere.png) ![[dog.png]]")
    write_file(vault_dir, "Other Note.md", "[[notes/day]]")
    write_file(vault_dir, ".hidden/secret.md", "![](unused.png)")

    graph = await build_link_graph(vault, vault)

    assert set(graph) == {"notes/day.md", "Other Note.md"}, f"Unexpected documents: {set(graph)}"
    assert graph["notes/day.md"] == {"img/cat.png": 1, "notes/pics/dog.png": 2}
    assert graph["Other Note.md"] == {"notes/day.md": 1}

    print("✅ Link graph built from vault documents")


# ============================================================================
# Link Text
# ============================================================================

def test_generate_markdown_link():
    assert generate_markdown_link("media/a/b/c/h.png") == "![[h.png]]"
    assert generate_markdown_link("Pasted image 1.png", use_wikilinks=True) == "![[Pasted image 1.png]]"
    assert generate_markdown_link("Pasted image 1.png", use_wikilinks=False) == "![](Pasted%20image%201.png)"
    assert generate_markdown_link("media/a/b/c/h.png", use_wikilinks=False) == "![](media/a/b/c/h.png)"
