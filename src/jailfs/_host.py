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

"""Host filesystem adapter.

Thin asynchronous pass-through to the operating system's file primitives.
Every call is dispatched with :func:`asyncio.to_thread` so the event loop
is never blocked, and every native ``OSError`` is re-raised as the matching
:class:`~jailfs.errors.FilesystemError` subclass.

File handles are raw integer descriptors from :func:`os.open`; the stream
factories in ``_file_streams`` own them.
"""

from __future__ import annotations

import asyncio
import errno
import os
import stat as stat_module
from collections.abc import Callable, Iterator
from typing import Protocol, overload

from ._types import FileStat, StrPath
from .errors import (
    CloseError,
    FilesystemError,
    MkdirError,
    OpenError,
    ReadError,
    ReaddirError,
    ReadlinkError,
    RenameError,
    RmdirError,
    StatError,
    SymlinkError,
    UnlinkError,
    WriteError,
)

__all__ = [
    "DirectoryHandle",
    "close",
    "close_directory",
    "create_directory",
    "create_link",
    "list_directory",
    "next_entry_name",
    "open_directory",
    "open_for_read",
    "open_for_write",
    "read_chunk",
    "read_link",
    "read_whole_file",
    "remove_directory",
    "remove_file",
    "rename_path",
    "stat_entry",
    "write_chunk",
    "write_whole_file",
]

_BINARY = getattr(os, "O_BINARY", 0)


async def _call[**P, R](
    error_type: type[FilesystemError],
    fn: Callable[P, R],
    *args: P.args,
    **kwargs: P.kwargs,
) -> R:
    try:
        return await asyncio.to_thread(fn, *args, **kwargs)
    except FilesystemError:
        raise
    except OSError as error:
        raise error_type.wrap(error) from error


def _open_file(path: StrPath, flags: int, mode: int = 0o777) -> int:
    fd = os.open(path, flags | _BINARY, mode)
    try:
        info = os.fstat(fd)
    except OSError:
        os.close(fd)
        raise
    if stat_module.S_ISDIR(info.st_mode):
        os.close(fd)
        raise IsADirectoryError(errno.EISDIR, os.strerror(errno.EISDIR), os.fspath(path))
    return fd


async def open_for_read(path: StrPath) -> int:
    """Open ``path`` read-only and return its descriptor.

    Raises:
        OpenError: If the file is missing, unreadable or a directory.
    """
    return await _call(OpenError, _open_file, path, os.O_RDONLY)


async def open_for_write(path: StrPath, mode: int) -> int:
    """Open ``path`` for writing, creating or truncating it.

    ``mode`` is applied (under the process umask) only when the file is
    created.

    Raises:
        OpenError: If the parent is missing, permission is denied or
            ``path`` is a directory.
    """
    return await _call(
        OpenError, _open_file, path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode
    )


def _read(fd: int, max_bytes: int, position: int | None) -> bytes:
    if position is None:
        return os.read(fd, max_bytes)
    return os.pread(fd, max_bytes, position)


async def read_chunk(fd: int, max_bytes: int, position: int | None) -> bytes:
    """Read up to ``max_bytes`` from ``fd``.

    Reads at the absolute ``position`` when given, otherwise at the
    descriptor's current offset. An empty result means end of file.

    Raises:
        ReadError: If the host read fails.
    """
    return await _call(ReadError, _read, fd, max_bytes, position)


def _write(fd: int, data: bytes | memoryview, position: int | None) -> int:
    if position is None:
        return os.write(fd, data)
    return os.pwrite(fd, data, position)


async def write_chunk(fd: int, data: bytes | memoryview, position: int | None) -> int:
    """Write ``data`` to ``fd`` and return how many bytes the host accepted.

    The count may be smaller than ``len(data)``; callers retry the tail.

    Raises:
        WriteError: If the host write fails.
    """
    return await _call(WriteError, _write, fd, data, position)


async def close(fd: int) -> None:
    """Close the descriptor ``fd``.

    Raises:
        CloseError: If the host reports a failure while closing.
    """
    await _call(CloseError, os.close, fd)


async def stat_entry(path: StrPath) -> FileStat:
    """Return metadata for ``path``, following symlinks.

    Raises:
        StatError: If ``path`` cannot be queried.
    """
    result = await _call(StatError, os.stat, path)
    return FileStat.from_stat_result(result)


def _read_file(path: StrPath, encoding: str | None) -> str | bytes:
    if encoding is None:
        with open(path, "rb") as handle:
            return handle.read()
    with open(path, encoding=encoding) as handle:
        return handle.read()


@overload
async def read_whole_file(path: StrPath, encoding: None) -> bytes: ...


@overload
async def read_whole_file(path: StrPath, encoding: str) -> str: ...


@overload
async def read_whole_file(path: StrPath, encoding: str | None) -> str | bytes: ...


async def read_whole_file(path: StrPath, encoding: str | None) -> str | bytes:
    """Read all of ``path``; bytes when ``encoding`` is ``None``, text otherwise.

    Raises:
        ReadError: If the file cannot be opened or read.
    """
    return await _call(ReadError, _read_file, path, encoding)


def _write_file(path: StrPath, contents: str | bytes, encoding: str | None) -> None:
    if isinstance(contents, bytes):
        with open(path, "wb") as handle:
            _ = handle.write(contents)
        return
    with open(path, "w", encoding=encoding or "utf-8") as handle:
        _ = handle.write(contents)


async def write_whole_file(
    path: StrPath, contents: str | bytes, encoding: str | None
) -> None:
    """Replace the contents of ``path``, creating it if needed.

    Text is encoded with ``encoding`` (UTF-8 when ``None``); bytes are
    written as-is.

    Raises:
        WriteError: If the file cannot be opened or written.
    """
    await _call(WriteError, _write_file, path, contents, encoding)


async def remove_file(path: StrPath) -> None:
    """Remove the file ``path``."""
    await _call(UnlinkError, os.unlink, path)


async def read_link(path: StrPath) -> str:
    """Return the target text stored in the symlink ``path``."""
    return os.fspath(await _call(ReadlinkError, os.readlink, path))


async def create_link(path: StrPath, target: StrPath) -> None:
    """Create a symlink at ``path`` whose stored target is ``target``."""
    await _call(SymlinkError, os.symlink, target, path)


async def list_directory(path: StrPath) -> list[str]:
    """Return the entry names of the directory ``path`` in host order."""
    return await _call(ReaddirError, os.listdir, path)


async def remove_directory(path: StrPath) -> None:
    """Remove the empty directory ``path``."""
    await _call(RmdirError, os.rmdir, path)


async def create_directory(path: StrPath, mode: int = 0o777) -> None:
    """Create the directory ``path``; its parent must exist."""
    await _call(MkdirError, os.mkdir, path, mode)


async def rename_path(source: StrPath, target: StrPath) -> None:
    """Rename ``source`` to ``target``, replacing ``target`` if permitted."""
    await _call(RenameError, os.rename, source, target)


class DirectoryHandle(Protocol):
    """Open directory listing as returned by :func:`os.scandir`."""

    def __iter__(self) -> Iterator[os.DirEntry[str]]: ...

    def __next__(self) -> os.DirEntry[str]: ...

    def close(self) -> None: ...


async def open_directory(path: StrPath) -> DirectoryHandle:
    """Start listing the directory ``path``.

    Raises:
        ReaddirError: If ``path`` is missing, unreadable or not a directory.
    """
    return await _call(ReaddirError, os.scandir, path)


def _next_name(handle: DirectoryHandle) -> str | None:
    entry = next(handle, None)
    return None if entry is None else entry.name


async def next_entry_name(handle: DirectoryHandle) -> str | None:
    """Return the next entry name, or ``None`` once the listing is done.

    Raises:
        ReaddirError: If the host fails while listing.
    """
    return await _call(ReaddirError, _next_name, handle)


async def close_directory(handle: DirectoryHandle) -> None:
    """Release a listing opened with :func:`open_directory`."""
    await _call(CloseError, handle.close)
