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

"""Path-jailed filesystem handles.

:func:`chroot` returns a :class:`JailedFilesystem` whose operations rewrite
every path argument under a fixed root before delegating to the host::

    jail = chroot("/srv/data")
    await jail.read("/etc/passwd")      # reads /srv/data/etc/passwd
    await jail.read("../../etc/passwd") # also /srv/data/etc/passwd

Paths are forced absolute and canonicalized before they are joined onto the
root, so ``..`` segments can never climb above it. Symlinks are resolved
before the call and must land inside the root; operations that act on a
link itself (``unlink``, ``readlink``, ``symlink``, ``rmdir``, ``rename``)
only resolve the parent directory.
"""

from __future__ import annotations

import os
import posixpath
from dataclasses import dataclass

from . import _ops
from ._config import JailConfig
from ._deferred import operation
from ._dir_streams import DirectorySource, readdir_stream
from ._file_streams import FileSink, FileSource, read_stream, write_stream
from ._logging import StructuredLogger, get_logger
from ._types import FileStat, StrPath
from .errors import PathEscapeError

__all__ = [
    "JailedFilesystem",
    "chroot",
    "jail_path",
]

logger: StructuredLogger = get_logger(__name__, context={"component": "chroot"})


def _is_path_under(path: str, root: str) -> bool:
    return path == root or path.startswith(root.rstrip(os.sep) + os.sep)


def jail_path(root: str, path: StrPath, *, follow_symlinks: bool = True) -> str:
    """Rewrite ``path`` as a location under the absolute ``root``.

    Equivalent to ``join(root, join("/", path))`` with ``..`` and ``.``
    segments resolved lexically at the forced-absolute stage, where they
    cannot rise above ``/``. Symlinks along the result are then resolved
    and must stay inside ``root``. With ``follow_symlinks=False`` the final
    component is left alone, so the result may name a link whose target
    lies elsewhere.

    Examples:
        >>> jail_path("/jail", "/etc/passwd")
        '/jail/etc/passwd'
        >>> jail_path("/jail", "passwd")
        '/jail/passwd'
        >>> jail_path("/jail", "../../etc")
        '/jail/etc'

    Raises:
        PathEscapeError: If a symlink carries the path outside ``root``.
    """
    anchored = posixpath.normpath(posixpath.join("/", os.fspath(path)))
    relative = anchored.lstrip("/")
    if not relative:
        return root
    candidate = os.path.join(root, relative)
    checked = candidate if follow_symlinks else os.path.dirname(candidate)
    if not _is_path_under(os.path.realpath(checked), os.path.realpath(root)):
        msg = f"Path escapes root directory: {os.fspath(path)}"
        raise PathEscapeError(msg)
    return candidate


@dataclass(slots=True, frozen=True)
class JailedFilesystem:
    """Filesystem operations confined beneath a fixed root directory.

    Every operation rewrites its path argument with :func:`jail_path`
    before delegating to the unwrapped operation. ``rename`` rewrites both
    paths; ``symlink`` rewrites the link location and stores the target
    text verbatim.
    """

    config: JailConfig

    @property
    def root(self) -> str:
        """Absolute jail root."""
        return self.config.root

    def resolve(self, path: StrPath) -> str:
        """Return the host path that ``path`` maps to inside the jail.

        Raises:
            PathEscapeError: If a symlink carries ``path`` outside the root.
        """
        return jail_path(self.config.root, path)

    def _resolve_entry(self, path: StrPath) -> str:
        return jail_path(self.config.root, path, follow_symlinks=False)

    def chroot(self, path: StrPath) -> JailedFilesystem:
        """Return a nested jail rooted at ``path`` inside this one."""
        return _make_jail(JailConfig(root=self.resolve(path)))

    @operation
    async def stat(self, path: StrPath) -> FileStat:
        """Return metadata for ``path``."""
        return await _ops.stat(self.resolve(path))

    @operation
    async def read(self, path: StrPath, encoding: str | None = None) -> str | bytes:
        """Read a whole file; text when ``encoding`` is given."""
        return await _ops.read(self.resolve(path), encoding)

    @operation
    async def write(
        self, path: StrPath, contents: str | bytes, encoding: str | None = None
    ) -> None:
        """Replace a file's contents."""
        await _ops.write(self.resolve(path), contents, encoding)

    @operation
    async def read_stream(
        self,
        path: StrPath,
        *,
        start: int | None = None,
        end: int | None = None,
        chunk_size: int | None = None,
    ) -> FileSource:
        """Open a source over ``path``; see :func:`jailfs.read_stream`."""
        return await read_stream(
            self.resolve(path), start=start, end=end, chunk_size=chunk_size
        )

    @operation
    async def write_stream(self, path: StrPath, *, mode: int | None = None) -> FileSink:
        """Open a sink writing ``path``; see :func:`jailfs.write_stream`."""
        return await write_stream(self.resolve(path), mode=mode)

    @operation
    async def unlink(self, path: StrPath) -> None:
        await _ops.unlink(self._resolve_entry(path))

    @operation
    async def readlink(self, path: StrPath) -> str:
        return await _ops.readlink(self._resolve_entry(path))

    @operation
    async def symlink(self, path: StrPath, target: StrPath) -> None:
        await _ops.symlink(self._resolve_entry(path), target)

    @operation
    async def readdir(self, path: StrPath) -> list[str]:
        return await _ops.readdir(self.resolve(path))

    @operation
    async def readdir_stream(self, path: StrPath) -> DirectorySource:
        """Stream the entry names of ``path``; see :func:`jailfs.readdir_stream`."""
        return await readdir_stream(self.resolve(path))

    @operation
    async def rmdir(self, path: StrPath) -> None:
        await _ops.rmdir(self._resolve_entry(path))

    @operation
    async def mkdir(self, path: StrPath, mode: int = 0o777) -> None:
        await _ops.mkdir(self.resolve(path), mode)

    @operation
    async def rename(self, source: StrPath, target: StrPath) -> None:
        await _ops.rename(self._resolve_entry(source), self._resolve_entry(target))


def _make_jail(config: JailConfig) -> JailedFilesystem:
    logger.debug(
        "chroot.created",
        event="chroot.created",
        context={"root": config.root},
    )
    return JailedFilesystem(config)


def chroot(root: StrPath) -> JailedFilesystem:
    """Return a handle confining every operation beneath ``root``.

    ``root`` is resolved once against the current working directory; later
    ``chdir`` calls do not move the jail.
    """
    return _make_jail(JailConfig.resolve(root))
