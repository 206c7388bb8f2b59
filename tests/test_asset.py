"""Tests for in-memory assets."""

import pytest

from kiln.asset import Asset
from kiln.errors import NonBinaryError, NonTextualError
from kiln.media_types import HTML

PNG_HEADER = b"\x89PNG\r\n\x1a\n"


def test_text_asset():
    asset = Asset("notes.txt", b"hello")
    assert asset.is_text
    assert asset.as_text() == "hello"
    assert asset.as_bytes() == b"hello"
    with pytest.raises(NonBinaryError):
        asset.as_binary()


def test_binary_asset():
    asset = Asset("image.png", PNG_HEADER)
    assert not asset.is_text
    assert asset.as_binary() == PNG_HEADER
    with pytest.raises(NonTextualError):
        asset.as_text()


def test_empty_asset():
    asset = Asset("empty.html", b"")
    assert asset.is_empty
    assert asset.as_bytes() == b""
    with pytest.raises(NonTextualError):
        asset.as_text()
    with pytest.raises(NonBinaryError):
        asset.as_binary()


def test_replacing_contents_changes_media_type():
    asset = Asset("page.md", b"# Title")
    asset.replace_with_text("<h1>Title</h1>", HTML)
    assert asset.media_type == HTML
    assert asset.path == "page.md"
