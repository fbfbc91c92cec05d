"""
Error types for the media store and link rewriting pipeline
"""
import httpx


class VaultMediaError(Exception):
    """Base class for media pipeline failures"""


class UnrecognizedContent(VaultMediaError):
    """Bytes could not be mapped to a file extension by content sniffing"""

    def __init__(self, message: str = "file extension unknown"):
        super().__init__(message)


class HashCollision(VaultMediaError):
    """Two distinct byte sequences produced the same digest.

    Never resolved automatically: the existing canonical file is kept and the
    reference or ingest event that triggered it is left untouched.
    """

    def __init__(self, path: str, source: str = ""):
        self.path = path
        self.source = source
        message = f"SHA256 collision happened for file: {path}"
        if source:
            message += f" (incoming: {source})"
        super().__init__(message)


class ResolutionMiss(VaultMediaError):
    """A local link could not be mapped to a vault path"""

    def __init__(self, link: str):
        self.link = link
        super().__init__(f"Cannot resolve link: {link}")


# Read/write/download/create-folder failures surface as these
IO_ERRORS = (OSError, httpx.HTTPError)
