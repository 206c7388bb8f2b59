"""In-memory assets for Kiln.

An Asset is one logical file flowing through the pipeline. Its contents are
either text (a ``str``), binary (``bytes``), or empty (``None``), and its
media type changes as processors transform it.
"""

from __future__ import annotations

from .errors import NonBinaryError, NonTextualError
from .media_types import MediaType, media_type_for_path


class Asset:
    """An asset being processed.

    Attributes:
        path: Logical path relative to the source root, including the
            original extension. Stable for the whole build.
        media_type: Current media type of the contents.
    """

    def __init__(self, path: str, data: bytes = b""):
        """Create an asset from raw bytes.

        Empty data becomes empty contents; valid UTF-8 becomes text; anything
        else is kept as binary. The media type is taken from the extension.

        Args:
            path: Logical path of the asset.
            data: Raw file contents.
        """
        self.path = path
        self.media_type: MediaType = media_type_for_path(path)
        self._contents: str | bytes | None
        if not data:
            self._contents = None
        else:
            try:
                self._contents = data.decode("utf-8")
            except UnicodeDecodeError:
                self._contents = bytes(data)

    def __repr__(self) -> str:
        kind = "empty" if self._contents is None else type(self._contents).__name__
        return f"Asset({self.path!r}, {self.media_type.mime}, {kind})"

    @property
    def is_empty(self) -> bool:
        return self._contents is None

    @property
    def is_text(self) -> bool:
        return isinstance(self._contents, str)

    def as_bytes(self) -> bytes:
        """Return the contents as bytes, whatever their representation."""
        if self._contents is None:
            return b""
        if isinstance(self._contents, str):
            return self._contents.encode("utf-8")
        return self._contents

    def as_text(self) -> str:
        """Return textual contents.

        Raises:
            NonTextualError: If the asset is empty or holds binary data.
        """
        if isinstance(self._contents, str):
            return self._contents
        raise NonTextualError(self.path)

    def as_binary(self) -> bytes:
        """Return binary contents.

        Text is refused; its bytes must stay valid UTF-8.

        Raises:
            NonBinaryError: If the asset is empty or holds text.
        """
        if isinstance(self._contents, bytes):
            return self._contents
        raise NonBinaryError(self.path)

    def replace_with_text(self, text: str, media_type: MediaType) -> None:
        self._contents = text
        self.media_type = media_type

    def replace_with_bytes(self, data: bytes, media_type: MediaType) -> None:
        self._contents = bytes(data)
        self.media_type = media_type
