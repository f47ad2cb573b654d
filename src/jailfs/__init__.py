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

"""Asynchronous host filesystem access with chunked streams and path jails.

The module-level operations act on real host paths; :func:`chroot` returns a
handle whose operations are confined beneath a root directory.

Example usage::

    import asyncio
    import jailfs

    async def main() -> None:
        jail = jailfs.chroot("workspace")
        source = await jail.read_stream("/input.bin", start=0, end=4096)
        sink = await jail.write_stream("/head.bin")
        await sink.drain(source)

    asyncio.run(main())

Every operation can also be deferred: ``jailfs.stat.defer("a.txt")`` returns
a zero-argument action that performs the call when driven.
"""

from __future__ import annotations

from ._chroot import JailedFilesystem, chroot, jail_path
from ._config import DEFAULT_CHUNK_SIZE, DEFAULT_FILE_MODE, JailConfig, StreamConfig
from ._deferred import Deferred, Handler, Operation, operation
from ._dir_streams import DirectorySource, readdir_stream
from ._file_streams import FileSink, FileSource, read_stream, write_stream
from ._logging import StructuredLogger, configure_logging, get_logger
from ._ops import (
    mkdir,
    read,
    readdir,
    readlink,
    rename,
    rmdir,
    stat,
    symlink,
    unlink,
    write,
)
from ._sources import IterableSource, collect, copy_file, pipe
from ._stream_protocols import ByteSink, ByteSource, EntrySource, iter_source
from ._types import ByteWindow, FileStat, StrPath, Timespec
from .errors import (
    CloseError,
    FilesystemError,
    JailfsError,
    MkdirError,
    OpenError,
    PathEscapeError,
    ProtocolError,
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
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_FILE_MODE",
    "ByteSink",
    "ByteSource",
    "ByteWindow",
    "CloseError",
    "Deferred",
    "DirectorySource",
    "EntrySource",
    "FileSink",
    "FileSource",
    "FileStat",
    "FilesystemError",
    "Handler",
    "IterableSource",
    "JailConfig",
    "JailedFilesystem",
    "JailfsError",
    "MkdirError",
    "OpenError",
    "Operation",
    "PathEscapeError",
    "ProtocolError",
    "ReadError",
    "ReaddirError",
    "ReadlinkError",
    "RenameError",
    "RmdirError",
    "StatError",
    "StreamConfig",
    "StrPath",
    "StructuredLogger",
    "SymlinkError",
    "Timespec",
    "UnlinkError",
    "WriteError",
    "chroot",
    "collect",
    "configure_logging",
    "copy_file",
    "get_logger",
    "iter_source",
    "jail_path",
    "mkdir",
    "operation",
    "pipe",
    "read",
    "read_stream",
    "readdir",
    "readdir_stream",
    "readlink",
    "rename",
    "rmdir",
    "stat",
    "symlink",
    "unlink",
    "write",
    "write_stream",
]
