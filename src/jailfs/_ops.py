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

"""One-shot operations on real host paths.

Each function is an :class:`~jailfs._deferred.Operation`: await it to run it
now, or call ``.defer(...)`` for a deferred action. The streaming factories
live in ``_file_streams``.
"""

from __future__ import annotations

from . import _host
from ._deferred import operation
from ._types import FileStat, StrPath

__all__ = [
    "mkdir",
    "read",
    "readdir",
    "readlink",
    "rename",
    "rmdir",
    "stat",
    "symlink",
    "unlink",
    "write",
]


@operation
async def stat(path: StrPath) -> FileStat:
    """Return metadata for ``path``.

    Raises:
        StatError: If ``path`` cannot be queried.
    """
    return await _host.stat_entry(path)


@operation
async def read(path: StrPath, encoding: str | None = None) -> str | bytes:
    """Read the whole file; text when ``encoding`` is given, bytes otherwise.

    Raises:
        ReadError: If the file cannot be read.
    """
    return await _host.read_whole_file(path, encoding)


@operation
async def write(path: StrPath, contents: str | bytes, encoding: str | None = None) -> None:
    """Replace the file's contents, creating it if needed.

    Raises:
        WriteError: If the file cannot be written.
    """
    await _host.write_whole_file(path, contents, encoding)


@operation
async def unlink(path: StrPath) -> None:
    """Remove a file.

    Raises:
        UnlinkError: If the file cannot be removed.
    """
    await _host.remove_file(path)


@operation
async def readlink(path: StrPath) -> str:
    """Return the stored target of the symlink ``path``.

    Raises:
        ReadlinkError: If ``path`` is not a readable symlink.
    """
    return await _host.read_link(path)


@operation
async def symlink(path: StrPath, target: StrPath) -> None:
    """Create a symlink at ``path`` pointing to ``target``.

    Raises:
        SymlinkError: If the link cannot be created.
    """
    await _host.create_link(path, target)


@operation
async def readdir(path: StrPath) -> list[str]:
    """Return the entry names in the directory ``path``.

    Raises:
        ReaddirError: If the directory cannot be listed.
    """
    return await _host.list_directory(path)


@operation
async def rmdir(path: StrPath) -> None:
    """Remove the empty directory ``path``.

    Raises:
        RmdirError: If the directory cannot be removed.
    """
    await _host.remove_directory(path)


@operation
async def mkdir(path: StrPath, mode: int = 0o777) -> None:
    """Create the directory ``path``.

    Raises:
        MkdirError: If the directory cannot be created.
    """
    await _host.create_directory(path, mode)


@operation
async def rename(source: StrPath, target: StrPath) -> None:
    """Rename ``source`` to ``target``.

    Raises:
        RenameError: If the entry cannot be renamed.
    """
    await _host.rename_path(source, target)
