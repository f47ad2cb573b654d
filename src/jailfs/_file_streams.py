# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Host file streaming implementations.

Provides :class:`FileSource` and :class:`FileSink`, the ``ByteSource`` and
``ByteSink`` implementations backed by raw host file descriptors, and the
``read_stream`` / ``write_stream`` factories that open them.

Each stream owns exactly one descriptor and closes it exactly once: on end
of stream, on error (before the error propagates) or on abort.
"""

from __future__ import annotations

import asyncio
import errno
import os
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Self

from . import _host
from ._config import DEFAULT_FILE_MODE, StreamConfig
from ._deferred import operation
from ._logging import StructuredLogger, get_logger
from ._stream_protocols import ByteSource, iter_source
from ._types import ByteWindow, StrPath
from .errors import CloseError, ProtocolError, WriteError

__all__ = [
    "FileSink",
    "FileSource",
    "read_stream",
    "write_stream",
]

logger: StructuredLogger = get_logger(__name__, context={"component": "file_stream"})


async def _close_after(fd: int, error: BaseException) -> None:
    """Close ``fd`` while ``error`` is propagating; a close failure is noted on it."""
    try:
        await _host.close(fd)
    except CloseError as close_error:
        error.add_note(f"Closing the file handle also failed: {close_error}")


async def _abort_after(source: ByteSource, error: BaseException) -> None:
    try:
        await source.abort()
    except CloseError as abort_error:
        error.add_note(f"Aborting the source also failed: {abort_error}")


@dataclass(slots=True)
class FileSource:
    """ByteSource implementation backed by a host file descriptor.

    Reads at most ``chunk_size`` bytes per ``pull``, clamped to the byte
    window when one is configured. A zero-byte read ends the stream.
    """

    _path: str
    _fd: int | None
    _window: ByteWindow
    _chunk_size: int
    _position: int = field(init=False)
    _pending: bool = field(default=False, init=False)
    _abort_requested: bool = field(default=False, init=False)
    _released: asyncio.Event = field(default_factory=asyncio.Event, init=False)
    _deferred_close: asyncio.Future[None] | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        self._position = self._window.offset

    @property
    def path(self) -> str:
        """Host path being read."""
        return self._path

    @property
    def position(self) -> int:
        """Offset of the next byte to read."""
        return self._position

    @property
    def closed(self) -> bool:
        """True once the file handle has been released."""
        return self._fd is None

    @property
    def _positional(self) -> bool:
        return self._window.start is not None or self._window.end is not None

    async def pull(self) -> bytes | None:
        """Return the next chunk, or ``None`` at end of stream.

        Raises:
            ProtocolError: If another ``pull`` is still pending.
            ReadError: If the host read fails. The handle is closed first.
        """
        if self._pending:
            raise ProtocolError("only one read at a time")
        fd = self._fd
        if fd is None:
            return None
        self._pending = True
        try:
            chunk = await self._read_next(fd)
        except Exception:
            # An abort issued during the read discards its outcome.
            if not self._abort_requested:
                raise
            chunk = None
        finally:
            self._pending = False
            aborted = self._abort_requested
            if aborted:
                await self._finish_abort()
        return None if aborted else chunk

    async def _read_next(self, fd: int) -> bytes | None:
        length = self._chunk_size
        remaining = self._window.remaining(self._position)
        if remaining is not None:
            length = min(length, remaining)
            if not length:
                await self._close()
                return None
        position = self._position if self._positional else None
        read = asyncio.ensure_future(_host.read_chunk(fd, length, position))
        try:
            chunk = await asyncio.shield(read)
        except asyncio.CancelledError:
            # The worker thread may still be using fd; close it once the
            # read has returned so the descriptor number is not reused early.
            self._fd = None
            self._deferred_close = asyncio.ensure_future(
                self._close_when_read_returns(read, fd)
            )
            raise
        except BaseException as error:
            self._fd = None
            await _close_after(fd, error)
            raise
        if not chunk:
            await self._close()
            return None
        self._position += len(chunk)
        return chunk

    async def _close_when_read_returns(
        self, read: asyncio.Future[bytes], fd: int
    ) -> None:
        _ = await asyncio.wait([read])
        # The pull that wanted this outcome was cancelled.
        if not read.cancelled():
            _ = read.exception()
        logger.debug(
            "file_stream.source_closed",
            event="file_stream.source_closed",
            context={"path": self._path, "position": self._position},
        )
        await _host.close(fd)

    async def abort(self) -> None:
        """Release the file handle, discarding any pending read.

        Idempotent and safe with no ``pull`` pending. When a read is in
        flight the handle is released as soon as that read returns, and the
        pending ``pull`` resolves to ``None``. After a cancelled ``pull``,
        ``abort`` waits until the abandoned read has returned and the handle
        is closed.
        """
        if self._pending:
            self._abort_requested = True
            _ = await self._released.wait()
        elif self._fd is not None:
            logger.debug(
                "file_stream.source_aborted",
                event="file_stream.source_aborted",
                context={"path": self._path, "position": self._position},
            )
            await self._close()
        closing, self._deferred_close = self._deferred_close, None
        if closing is not None:
            await closing

    async def _finish_abort(self) -> None:
        self._abort_requested = False
        try:
            await self._close()
        finally:
            self._released.set()

    async def _close(self) -> None:
        fd, self._fd = self._fd, None
        if fd is None:
            return
        logger.debug(
            "file_stream.source_closed",
            event="file_stream.source_closed",
            context={"path": self._path, "position": self._position},
        )
        await _host.close(fd)

    def __aiter__(self) -> AsyncIterator[bytes]:
        return iter_source(self)

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.abort()


@dataclass(slots=True)
class FileSink:
    """ByteSink implementation backed by a host file descriptor.

    Drains exactly one source. Partial writes are retried with the unwritten
    tail before the next chunk is requested, so chunks land in order and
    only one is ever held in memory.
    """

    _path: str
    _fd: int | None
    _bytes_written: int = field(default=0, init=False)
    _consumed: bool = field(default=False, init=False)

    @property
    def path(self) -> str:
        """Host path being written."""
        return self._path

    @property
    def bytes_written(self) -> int:
        """Total bytes persisted so far."""
        return self._bytes_written

    @property
    def closed(self) -> bool:
        """True once the file handle has been released."""
        return self._fd is None

    @operation
    async def drain(self, source: ByteSource) -> int:
        """Write every chunk of ``source`` and return the total bytes written.

        The handle is closed exactly once before this returns or raises.
        Errors raised by ``source`` propagate unchanged; when a write fails
        the source is aborted as well.

        Raises:
            ProtocolError: If the sink already drained a source or was closed.
            WriteError: If a host write fails.
            CloseError: If closing the handle fails after a clean drain.
        """
        if self._consumed:
            raise ProtocolError("a sink drains exactly one source")
        self._consumed = True
        fd = self._fd
        if fd is None:
            raise ProtocolError("sink is closed")
        try:
            while (chunk := await source.pull()) is not None:
                await self._write_all(fd, chunk)
        except BaseException as error:
            self._fd = None
            logger.debug(
                "file_stream.sink_failed",
                event="file_stream.sink_failed",
                context={"path": self._path, "bytes_written": self._bytes_written},
            )
            try:
                if isinstance(error, WriteError):
                    await _abort_after(source, error)
            finally:
                await _close_after(fd, error)
            raise
        await self.close()
        return self._bytes_written

    async def _write_all(self, fd: int, chunk: bytes) -> None:
        view = memoryview(chunk)
        while view:
            written = await _host.write_chunk(fd, view, None)
            if written <= 0:
                raise WriteError(errno.EIO, "host accepted no bytes", self._path)
            self._bytes_written += written
            view = view[written:]

    @operation
    async def close(self) -> None:
        """Release the file handle; idempotent.

        Only needed for a sink that will never be drained.
        """
        fd, self._fd = self._fd, None
        if fd is None:
            return
        logger.debug(
            "file_stream.sink_closed",
            event="file_stream.sink_closed",
            context={"path": self._path, "bytes_written": self._bytes_written},
        )
        await _host.close(fd)

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.close()


@operation
async def read_stream(
    path: StrPath,
    *,
    start: int | None = None,
    end: int | None = None,
    chunk_size: int | None = None,
) -> FileSource:
    """Open ``path`` and return a source over its bytes.

    Args:
        path: File to read.
        start: First byte to read. Defaults to the start of the file.
        end: Offset of the first byte NOT to read. Defaults to end of file.
        chunk_size: Maximum bytes per ``pull``. Defaults to
            ``JAILFS_CHUNK_SIZE`` or 8 KiB.

    Raises:
        ValueError: If the window or chunk size is invalid.
        OpenError: If the file cannot be opened.
    """
    window = ByteWindow(start=start, end=end)
    config = StreamConfig.from_env() if chunk_size is None else StreamConfig(chunk_size)
    resolved = os.fspath(path)
    fd = await _host.open_for_read(resolved)
    logger.debug(
        "file_stream.source_opened",
        event="file_stream.source_opened",
        context={"path": resolved, "start": start, "end": end},
    )
    return FileSource(
        _path=resolved, _fd=fd, _window=window, _chunk_size=config.chunk_size
    )


@operation
async def write_stream(path: StrPath, *, mode: int | None = None) -> FileSink:
    """Create or truncate ``path`` and return a sink writing to it.

    Args:
        path: File to write. Its parent directory must exist.
        mode: Permission bits applied when the file is created. Defaults to
            ``0o666`` under the process umask.

    Raises:
        OpenError: If the file cannot be created or opened.
    """
    resolved = os.fspath(path)
    fd = await _host.open_for_write(resolved, DEFAULT_FILE_MODE if mode is None else mode)
    logger.debug(
        "file_stream.sink_opened",
        event="file_stream.sink_opened",
        context={"path": resolved},
    )
    return FileSink(_path=resolved, _fd=fd)
