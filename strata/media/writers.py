"""
Output writers for downloads: stream straight to a file, or buffer in memory and
assemble on completion.
"""

import logging
import os
from pathlib import Path
from typing import List, Optional

import aiofiles

from strata.utils.path import create_dir

log = logging.getLogger(__name__)


class FileWriter:
    """Writes each chunk straight to the destination file as it arrives."""

    def __init__(self) -> None:
        self.path: Optional[Path] = None
        self._file = None
        self.bytes_written = 0

    async def open(self, path: Path) -> None:
        create_dir(path.parent)
        self.path = path
        self._file = await aiofiles.open(path, "wb")

    async def write(self, data: bytes) -> None:
        await self._file.write(data)
        self.bytes_written += len(data)

    async def finalize(self) -> Path:
        await self._file.close()
        self._file = None
        log.debug(f"Wrote {self.bytes_written} bytes to '{self.path}'")
        return self.path

    async def abort(self) -> None:
        """Closes and deletes the partial file."""
        if self._file is not None:
            await self._file.close()
            self._file = None
        if self.path is not None:
            try:
                os.remove(self.path)
            except OSError:
                pass


class MemoryWriter:
    """Keeps every chunk in memory and writes the assembled file at the end."""

    def __init__(self) -> None:
        self.path: Optional[Path] = None
        self._chunks: List[bytes] = []
        self.bytes_written = 0

    async def open(self, path: Path) -> None:
        self.path = path

    async def write(self, data: bytes) -> None:
        self._chunks.append(data)
        self.bytes_written += len(data)

    def assemble(self) -> bytes:
        return b"".join(self._chunks)

    async def finalize(self) -> Path:
        await save_file(self.assemble(), self.path)
        self._chunks = []
        return self.path

    async def abort(self) -> None:
        self._chunks = []


async def save_file(data: bytes, path: Path) -> Path:
    """Writes `data` to `path`, creating parent directories as needed."""
    create_dir(path.parent)
    async with aiofiles.open(path, "wb") as f:
        await f.write(data)
    log.debug(f"Saved {len(data)} bytes to '{path}'")
    return path
