"""Media type registry for Kiln.

Maps file extensions to MIME-like media types and back. The table is fixed
at import time from a declarative list; lookups in either direction are
plain dictionary hits.

Each entry is ``(name, mime_type, extensions)`` with extensions ordered
roughly from most to least common, since the first one is used when an
asset is written out.

See: https://www.iana.org/assignments/media-types/media-types.xhtml
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class MediaCategory(Enum):
    """Top-level media type registries as enumerated by the IANA."""

    APPLICATION = "application"
    AUDIO = "audio"
    EXAMPLE = "example"
    FONT = "font"
    HAPTICS = "haptics"
    IMAGE = "image"
    MESSAGE = "message"
    MODEL = "model"
    MULTIPART = "multipart"
    TEXT = "text"
    VIDEO = "video"


UNKNOWN_MIME = "application/octet-stream"


@dataclass(frozen=True)
class MediaType:
    """A media type and the file extensions it is written with.

    Attributes:
        name: Logical name (e.g. "Html"); "Unknown" for unregistered types.
        mime: MIME type string (e.g. "text/html").
        extensions: Known extensions, most common first.
    """

    name: str
    mime: str
    extensions: tuple[str, ...]

    @classmethod
    def unknown(cls, extension: str) -> MediaType:
        """Return the media type used for an unrecognized extension."""
        return cls("Unknown", UNKNOWN_MIME, (extension,))

    @property
    def is_unknown(self) -> bool:
        return self.name == "Unknown"

    @property
    def category(self) -> MediaCategory:
        """Category derived from the MIME prefix; unknown prefixes are APPLICATION."""
        prefix = self.mime.split("/", 1)[0]
        try:
            return MediaCategory(prefix)
        except ValueError:
            return MediaCategory.APPLICATION

    @property
    def extension(self) -> str:
        """Preferred extension for writing assets of this type."""
        return self.extensions[0]

    def __str__(self) -> str:
        return self.mime


_MEDIA_TYPES: list[tuple[str, str, tuple[str, ...]]] = [
    ("Css", "text/css", ("css",)),
    ("Gif", "image/gif", ("gif",)),
    ("Html", "text/html", ("html", "htm", "hxt", "shtml")),
    ("Ico", "image/x-icon", ("ico",)),
    ("JavaScript", "text/javascript", ("js", "mjs")),
    ("Jpeg", "image/jpeg", ("jpeg", "jpg")),
    ("Markdown", "text/markdown", ("md", "markdown")),
    ("Plain", "text/plain", ("txt",)),
    ("Png", "image/png", ("png",)),
    ("Scss", "text/x-scss", ("scss",)),
    ("Webp", "image/webp", ("webp",)),
]

_BY_NAME: dict[str, MediaType] = {}
_BY_EXTENSION: dict[str, MediaType] = {}
_BY_MIME: dict[str, MediaType] = {}

for _name, _mime, _extensions in _MEDIA_TYPES:
    _media_type = MediaType(_name, _mime, _extensions)
    _BY_NAME[_name] = _media_type
    _BY_MIME[_mime] = _media_type
    for _ext in _extensions:
        _BY_EXTENSION[_ext] = _media_type

CSS = _BY_NAME["Css"]
GIF = _BY_NAME["Gif"]
HTML = _BY_NAME["Html"]
ICO = _BY_NAME["Ico"]
JAVASCRIPT = _BY_NAME["JavaScript"]
JPEG = _BY_NAME["Jpeg"]
MARKDOWN = _BY_NAME["Markdown"]
PLAIN = _BY_NAME["Plain"]
PNG = _BY_NAME["Png"]
SCSS = _BY_NAME["Scss"]
WEBP = _BY_NAME["Webp"]


def media_type_for(extension: str) -> MediaType:
    """Return the media type for a file extension (without the dot).

    Never fails: unrecognized extensions produce ``MediaType.unknown`` carrying
    the extension verbatim.

    Examples:
        >>> media_type_for("md").mime
        'text/markdown'

        >>> media_type_for("dat").extensions
        ('dat',)
    """
    return _BY_EXTENSION.get(extension.lower()) or MediaType.unknown(extension)


def media_type_for_mime(mime: str) -> MediaType | None:
    """Return the registered media type for a MIME string, if any."""
    return _BY_MIME.get(mime)


def media_type_for_path(path: str) -> MediaType:
    """Return the media type implied by the extension of ``path``."""
    name = path.rsplit("/", 1)[-1]
    if "." not in name:
        return MediaType.unknown("")
    return media_type_for(name.rsplit(".", 1)[1])
