"""
Content addressing for media files

Identity of a file is the SHA256 of its bytes plus an extension sniffed from
the bytes themselves. File names and download URLs are never trusted for the
extension.
"""
import hashlib
import io
import logging
import re
import warnings
from dataclasses import dataclass
from typing import Optional

from PIL import Image, UnidentifiedImageError

from .errors import UnrecognizedContent

logger = logging.getLogger(__name__)

# Pillow format name -> stored extension
PIL_FORMAT_TO_EXT = {
    "JPEG": "jpg",
    "MPO": "jpg",
    "PNG": "png",
    "GIF": "gif",
    "BMP": "bmp",
    "DIB": "bmp",
    "TIFF": "tiff",
    "WEBP": "webp",
    "ICO": "ico",
}

FORBIDDEN_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f\x7f]')
WHITESPACE_RUN = re.compile(r"\s+")

# Leading noise allowed before the root element of an XML document
_XML_PROLOG = re.compile(
    rb"^\s*(?:<\?xml[^>]*\?>\s*)?(?:(?:<!--.*?-->|<!DOCTYPE[^>\[]*(?:\[.*?\])?\s*>)\s*)*",
    re.DOTALL | re.IGNORECASE,
)
_SVG_ROOT = re.compile(rb"<svg[\s>/]", re.IGNORECASE)
SNIFF_BYTES = 4096


@dataclass(frozen=True)
class MediaIdentity:
    """Canonical identity of a byte sequence"""
    hash: str       # SHA256 hex digest (64 chars, lower-case)
    extension: str  # without the leading dot

    @property
    def file_name(self) -> str:
        return f"{self.hash}.{self.extension}"


def compute_hash(data: bytes) -> str:
    """Compute SHA256 hash of file data"""
    return hashlib.sha256(data).hexdigest()


def looks_like_xml(data: bytes) -> bool:
    head = data[:SNIFF_BYTES].lstrip(b"\xef\xbb\xbf").lstrip()
    return head.startswith(b"<")


def is_svg(data: bytes) -> bool:
    """Check whether XML content has an <svg> root element"""
    head = data[:SNIFF_BYTES].lstrip(b"\xef\xbb\xbf")
    prolog = _XML_PROLOG.match(head)
    rest = head[prolog.end():] if prolog else head
    return _SVG_ROOT.match(rest) is not None


def _image_format(data: bytes) -> Optional[str]:
    with Image.open(io.BytesIO(data)) as img:
        return img.format


def _image_format_unbounded(data: bytes) -> Optional[str]:
    """Read the format with Pillow's pixel-count limit lifted.

    Only the header is parsed, pixel data is never decoded.
    """
    limit = Image.MAX_IMAGE_PIXELS
    Image.MAX_IMAGE_PIXELS = None
    try:
        return _image_format(data)
    finally:
        Image.MAX_IMAGE_PIXELS = limit


def sniff_extension(data: bytes) -> Optional[str]:
    """Detect file extension from header bytes. Returns None if unknown."""
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", Image.DecompressionBombWarning)
            fmt = _image_format(data)
    except Image.DecompressionBombError:
        logger.debug(f"Image over Pillow's pixel limit ({len(data):,} bytes), reading header only")
        fmt = _image_format_unbounded(data)
    except (UnidentifiedImageError, OSError, ValueError):
        fmt = None

    if fmt:
        ext = PIL_FORMAT_TO_EXT.get(fmt.upper(), fmt.lower())
        return ext

    # Pillow cannot read SVG; generic XML is re-tested for an svg root
    if looks_like_xml(data) and is_svg(data):
        return "svg"
    return None


def normalize_name(name: str) -> str:
    """Make a name safe to use as a file base name.

    Path-illegal characters become "!", whitespace runs become "_".
    """
    safe = FORBIDDEN_FILENAME_CHARS.sub("!", name)
    safe = safe.strip(" .")
    return WHITESPACE_RUN.sub("_", safe)


class ContentAddresser:
    """Produces MediaIdentity values from raw bytes"""

    def identify(self, data: bytes) -> MediaIdentity:
        """
        Identify file content.

        Raises:
            UnrecognizedContent: if no extension can be sniffed
        """
        extension = sniff_extension(data)
        if not extension:
            raise UnrecognizedContent()

        identity = MediaIdentity(hash=normalize_name(compute_hash(data)), extension=extension)
        logger.debug(f"Identified {identity.hash[:16]}... as .{extension} ({len(data):,} bytes)")
        return identity


content_addresser = ContentAddresser()
