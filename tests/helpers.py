"""
Test helpers: synthetic image bytes and vault doubles
"""
import io
import struct
import zlib
from pathlib import Path
from typing import Dict, List, Optional

from PIL import Image

from vault_media.vault import LocalVault

SVG_BYTES = (
    b'<?xml version="1.0" encoding="UTF-8"?>\n'
    b'<!-- drawn by hand -->\n'
    b'<svg xmlns="http://www.w3.org/2000/svg" width="10" height="10">'
    b'<rect width="10" height="10" fill="red"/></svg>\n'
)

XML_BYTES = b'<?xml version="1.0"?>\n<note><to>Tove</to></note>\n'


def make_image(color: str = "blue", size=(8, 8), fmt: str = "PNG") -> bytes:
    """Create a small synthetic image"""
    img = Image.new("RGB", size, color=color)
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


def make_png(color: str = "blue", size=(8, 8)) -> bytes:
    return make_image(color, size, "PNG")


def _png_chunk(kind: bytes, body: bytes) -> bytes:
    return struct.pack(">I", len(body)) + kind + body + struct.pack(">I", zlib.crc32(kind + body) & 0xFFFFFFFF)


def make_oversized_png(width: int = 20000, height: int = 20000) -> bytes:
    """Valid PNG header declaring more pixels than Pillow opens by default"""
    header = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return (
        b"\x89PNG\r\n\x1a\n"
        + _png_chunk(b"IHDR", header)
        + _png_chunk(b"IDAT", zlib.compress(b"\x00" * 4))
        + _png_chunk(b"IEND", b"")
    )


def shard_path(root: str, file_hash: str, ext: str) -> str:
    return f"{root}/{file_hash[0]}/{file_hash[1]}/{file_hash[2]}/{file_hash}.{ext}"


def write_file(vault_dir: Path, path: str, data) -> Path:
    full = vault_dir / path
    full.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(data, str):
        full.write_text(data, encoding="utf-8")
    else:
        full.write_bytes(data)
    return full


class RecordingVault(LocalVault):
    """LocalVault that records writes and can fail reads of chosen documents"""

    def __init__(self, root, failing_reads: Optional[List[str]] = None):
        super().__init__(root)
        self.failing_reads = set(failing_reads or [])
        self.binary_writes: List[str] = []
        self.text_writes: Dict[str, int] = {}

    async def read_text(self, path: str) -> str:
        if path in self.failing_reads:
            raise OSError(f"Simulated read failure: {path}")
        return await super().read_text(path)

    async def write_text(self, path: str, text: str) -> None:
        self.text_writes[path] = self.text_writes.get(path, 0) + 1
        await super().write_text(path, text)

    async def write_bytes(self, path: str, data: bytes) -> None:
        self.binary_writes.append(path)
        await super().write_bytes(path, data)
