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

"""Base exception hierarchy for :mod:`jailfs`."""

from __future__ import annotations

from typing import ClassVar

__all__ = [
    "CloseError",
    "FilesystemError",
    "JailfsError",
    "MkdirError",
    "OpenError",
    "PathEscapeError",
    "ProtocolError",
    "ReadError",
    "ReaddirError",
    "ReadlinkError",
    "RenameError",
    "RmdirError",
    "StatError",
    "SymlinkError",
    "UnlinkError",
    "WriteError",
]


class JailfsError(Exception):
    """Base class for all jailfs exceptions.

    Catch this to handle any library-specific failure while letting standard
    Python exceptions propagate normally.

    Example:
        Handling any jailfs failure::

            try:
                await fs.read("config.json", "utf-8")
            except JailfsError as e:
                logger.error("Filesystem error: %s", e)

    Note:
        Subclasses also inherit from standard exception types (``OSError``,
        ``RuntimeError``, ``PermissionError``) so existing handlers keep
        working.
    """


class FilesystemError(JailfsError, OSError):
    """A host filesystem call failed.

    Wraps the native ``OSError`` raised by the host. The ``errno``,
    ``strerror`` and ``filename`` attributes are copied from the native error
    so callers can branch on ``errno.ENOENT`` and friends.

    Example:
        Distinguishing a missing file::

            try:
                source = await read_stream("missing.bin")
            except OpenError as e:
                if e.errno == errno.ENOENT:
                    ...
    """

    operation: ClassVar[str] = "filesystem"

    @classmethod
    def wrap(cls, error: OSError) -> FilesystemError:
        """Build an instance of ``cls`` carrying the details of ``error``."""
        if error.errno is None:
            return cls(*error.args)
        return cls(error.errno, error.strerror, error.filename, None, error.filename2)

    def __str__(self) -> str:
        return f"{self.operation}: {super().__str__()}"


class OpenError(FilesystemError):
    """Opening a file for streaming failed."""

    operation = "open"


class ReadError(FilesystemError):
    """Reading file content failed."""

    operation = "read"


class WriteError(FilesystemError):
    """Writing file content failed."""

    operation = "write"


class CloseError(FilesystemError):
    """Closing a file handle failed."""

    operation = "close"


class StatError(FilesystemError):
    """Querying file metadata failed."""

    operation = "stat"


class UnlinkError(FilesystemError):
    """Removing a file failed."""

    operation = "unlink"


class ReaddirError(FilesystemError):
    """Listing a directory failed."""

    operation = "readdir"


class RmdirError(FilesystemError):
    """Removing a directory failed."""

    operation = "rmdir"


class MkdirError(FilesystemError):
    """Creating a directory failed."""

    operation = "mkdir"


class RenameError(FilesystemError):
    """Renaming a filesystem entry failed."""

    operation = "rename"


class SymlinkError(FilesystemError):
    """Creating a symbolic link failed."""

    operation = "symlink"


class ReadlinkError(FilesystemError):
    """Reading a symbolic link failed."""

    operation = "readlink"


class ProtocolError(JailfsError, RuntimeError):
    """A stream was driven in violation of the pull protocol.

    Raised when a second ``pull`` is issued on a source while a previous one
    is still pending, or when a sink is asked to drain a second source.
    The stream itself is left intact; the pending request still completes.
    """


class PathEscapeError(JailfsError, PermissionError):
    """A jailed path resolved outside of its root directory."""
