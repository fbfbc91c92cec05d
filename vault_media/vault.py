"""
Vault collaborators: document and binary file access

Paths handed across these interfaces are vault-relative POSIX strings
("notes/today.md", "media/a/b/c/abc....png").
"""
import logging
import os
import stat
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import List, Protocol, Union, runtime_checkable

import aiofiles
import aiofiles.os

logger = logging.getLogger(__name__)

DOCUMENT_EXTENSIONS = {".md"}
HIDDEN_PREFIX = "."


@dataclass
class FileStat:
    """Subset of file metadata the pipeline needs"""
    path: str
    is_file: bool
    size: int
    ctime_ms: int
    mtime_ms: int


@runtime_checkable
class DocumentStore(Protocol):
    async def read_text(self, path: str) -> str: ...

    async def write_text(self, path: str, text: str) -> None: ...

    async def list_documents(self) -> List[str]: ...


@runtime_checkable
class BinaryStore(Protocol):
    async def read_bytes(self, path: str) -> bytes: ...

    async def write_bytes(self, path: str, data: bytes) -> None: ...

    async def exists(self, path: str) -> bool: ...

    async def create_folder(self, path: str) -> None: ...

    async def rename(self, path: str, new_path: str) -> None: ...

    async def list_files(self) -> List[str]: ...

    async def stat_file(self, path: str) -> FileStat: ...


def join_path(directory: str, subpath: str) -> str:
    """Join vault paths, always with forward slashes"""
    joined = PurePosixPath(directory.replace("\\", "/")) / subpath.replace("\\", "/")
    return os.path.normpath(str(joined)).replace("\\", "/")


class LocalVault:
    """
    Vault backed by a directory on the local filesystem.

    Implements both DocumentStore and BinaryStore with aiofiles so the
    event loop never blocks on disk I/O.
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root).expanduser().resolve()
        if not self.root.is_dir():
            raise FileNotFoundError(f"Vault directory does not exist: {self.root}")
        logger.info(f"Vault opened: {self.root}")

    def full_path(self, path: str) -> Path:
        """Map a vault path to the filesystem, refusing escapes from the root"""
        candidate = (self.root / path.lstrip("/")).resolve()
        if candidate != self.root and self.root not in candidate.parents:
            raise PermissionError(f"Path escapes vault: {path}")
        return candidate

    def vault_path(self, full_path: Path) -> str:
        return full_path.relative_to(self.root).as_posix()

    # Documents

    async def read_text(self, path: str) -> str:
        async with aiofiles.open(self.full_path(path), "r", encoding="utf-8", newline="") as f:
            return await f.read()

    async def write_text(self, path: str, text: str) -> None:
        async with aiofiles.open(self.full_path(path), "w", encoding="utf-8", newline="") as f:
            await f.write(text)
        logger.debug(f"Wrote document {path} ({len(text):,} chars)")

    async def list_documents(self) -> List[str]:
        return [p for p in await self.list_files() if PurePosixPath(p).suffix.lower() in DOCUMENT_EXTENSIONS]

    # Binary files

    async def read_bytes(self, path: str) -> bytes:
        async with aiofiles.open(self.full_path(path), "rb") as f:
            return await f.read()

    async def write_bytes(self, path: str, data: bytes) -> None:
        file_path = self.full_path(path)
        # Atomic write: temp file then rename
        temp_path = file_path.with_name(file_path.name + ".tmp")
        try:
            async with aiofiles.open(temp_path, "wb") as f:
                await f.write(data)
            await aiofiles.os.replace(temp_path, file_path)
        except OSError:
            if temp_path.exists():
                await aiofiles.os.remove(temp_path)
            raise

    async def exists(self, path: str) -> bool:
        return await aiofiles.os.path.exists(self.full_path(path))

    async def create_folder(self, path: str) -> None:
        """Create a folder and its parents. An existing folder is not an error."""
        await aiofiles.os.makedirs(self.full_path(path), exist_ok=True)

    async def rename(self, path: str, new_path: str) -> None:
        target = self.full_path(new_path)
        if await aiofiles.os.path.exists(target):
            raise FileExistsError(f"Destination already exists: {new_path}")
        await aiofiles.os.rename(self.full_path(path), target)
        logger.debug(f"Renamed {path} -> {new_path}")

    async def list_files(self) -> List[str]:
        """List every file in the vault, skipping hidden folders and files"""
        files = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith(HIDDEN_PREFIX))
            for name in sorted(filenames):
                if name.startswith(HIDDEN_PREFIX):
                    continue
                files.append(self.vault_path(Path(dirpath) / name))
        return files

    async def stat_file(self, path: str) -> FileStat:
        st = await aiofiles.os.stat(self.full_path(path))
        # st_birthtime where the platform has it, ctime otherwise
        created = getattr(st, "st_birthtime", st.st_ctime)
        return FileStat(
            path=path,
            is_file=stat.S_ISREG(st.st_mode),
            size=st.st_size,
            ctime_ms=int(created * 1000),
            mtime_ms=int(st.st_mtime * 1000),
        )
