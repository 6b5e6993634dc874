"""
File Copier - picks a copy strategy by file size, with a last-resort fallback.

Tiers:
- small (< copy_small_threshold_mb): shutil.copyfile in a worker thread
- medium (up to copy_large_threshold_mb): chunked streaming copy in a worker thread
- large (> copy_large_threshold_mb): rsync --partial subprocess (resumable)

Any failure at the chosen tier falls back to a naive read-all/write-all
copy before the file is reported as failed.
"""

import asyncio
import logging
import os
import shutil
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from app.core.config import settings
from app.core.exceptions import CopyFailure

logger = logging.getLogger(__name__)

MB = 1024 * 1024


class CopyStrategy(str, Enum):
    """Copy implementation used for a file."""
    FAST = "fast_copy"
    STREAM = "stream_copy"
    RSYNC = "rsync"
    NAIVE = "naive_copy"


@dataclass
class CopyResult:
    """Outcome of a successful copy."""
    strategy: CopyStrategy
    size: int
    used_fallback: bool = False


class FileCopier:
    """Size-tiered file copy with fallback."""

    def __init__(
        self,
        small_threshold: Optional[int] = None,
        large_threshold: Optional[int] = None,
        chunk_size: Optional[int] = None,
        rsync_binary: Optional[str] = None,
    ):
        self.small_threshold = small_threshold if small_threshold is not None else settings.copy_small_threshold_mb * MB
        self.large_threshold = large_threshold if large_threshold is not None else settings.copy_large_threshold_mb * MB
        self.chunk_size = chunk_size or settings.copy_chunk_size
        self.rsync_binary = rsync_binary or settings.rsync_binary

    def select_strategy(self, size: int) -> CopyStrategy:
        if size < self.small_threshold:
            return CopyStrategy.FAST
        if size <= self.large_threshold:
            return CopyStrategy.STREAM
        return CopyStrategy.RSYNC

    async def copy(self, source: str, dest: str, size: Optional[int] = None) -> CopyResult:
        """
        Copy source to dest.

        Raises:
            CopyFailure: if both the chosen tier and the naive fallback fail
        """
        if size is None:
            try:
                size = os.path.getsize(source)
            except OSError:
                size = 0

        strategy = self.select_strategy(size)
        try:
            await self._run_strategy(strategy, source, dest)
            return CopyResult(strategy=strategy, size=size)
        except Exception as e:
            logger.warning(f"[COPY] {strategy.value} failed for {source}, using fallback: {e}")

        try:
            await asyncio.to_thread(self._naive_copy, source, dest)
        except Exception as e:
            logger.error(f"[COPY] Fallback copy failed for {source}: {e}")
            raise CopyFailure(f"Failed to copy {source}: {e}") from e

        return CopyResult(strategy=CopyStrategy.NAIVE, size=size, used_fallback=True)

    async def _run_strategy(self, strategy: CopyStrategy, source: str, dest: str) -> None:
        if strategy == CopyStrategy.FAST:
            await asyncio.to_thread(self._fast_copy, source, dest)
        elif strategy == CopyStrategy.STREAM:
            await asyncio.to_thread(self._stream_copy, source, dest)
        else:
            await self._rsync_copy(source, dest)

    def _fast_copy(self, source: str, dest: str) -> None:
        shutil.copyfile(source, dest)

    def _stream_copy(self, source: str, dest: str) -> None:
        with open(source, "rb") as src, open(dest, "wb") as dst:
            while True:
                chunk = src.read(self.chunk_size)
                if not chunk:
                    break
                dst.write(chunk)

    async def _rsync_copy(self, source: str, dest: str) -> None:
        process = await asyncio.create_subprocess_exec(
            self.rsync_binary, "-a", "--partial", source, dest,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        _, stderr = await process.communicate()
        if process.returncode != 0:
            message = stderr.decode(errors="replace").strip()
            raise OSError(f"rsync exited with {process.returncode}: {message}")

    def _naive_copy(self, source: str, dest: str) -> None:
        with open(source, "rb") as src:
            data = src.read()
        with open(dest, "wb") as dst:
            dst.write(data)
