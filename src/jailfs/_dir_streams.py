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

"""Streaming directory listings.

:func:`readdir_stream` opens a :class:`DirectorySource` that hands out one
entry name per ``pull``. Unlike :func:`jailfs.readdir` it does not build the
whole listing up front, and the consumer can stop early with ``abort``.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Self

from . import _host
from ._deferred import operation
from ._logging import StructuredLogger, get_logger
from ._stream_protocols import iter_source
from ._types import StrPath
from .errors import CloseError, ProtocolError

__all__ = [
    "DirectorySource",
    "readdir_stream",
]

logger: StructuredLogger = get_logger(__name__, context={"component": "dir_stream"})


@dataclass(slots=True)
class DirectorySource:
    """EntrySource over an open host directory listing.

    Names come in host order without ``.`` and ``..``. The listing is
    released when it runs out, when a ``pull`` fails, or on ``abort``.
    """

    _path: str
    _handle: _host.DirectoryHandle | None
    _pending: bool = field(default=False, init=False)
    _abort_requested: bool = field(default=False, init=False)
    _released: asyncio.Event = field(default_factory=asyncio.Event, init=False)
    _deferred_release: asyncio.Future[None] | None = field(default=None, init=False)

    @property
    def path(self) -> str:
        """Host directory being listed."""
        return self._path

    @property
    def closed(self) -> bool:
        return self._handle is None

    async def pull(self) -> str | None:
        """Return the next entry name, or ``None`` once the listing is done.

        Raises:
            ProtocolError: If another ``pull`` is still pending.
            ReaddirError: If the host fails while listing. The listing is
                released first.
        """
        if self._pending:
            raise ProtocolError("only one read at a time")
        handle = self._handle
        if handle is None:
            return None
        self._pending = True
        try:
            name = await self._next_name(handle)
        except Exception:
            if not self._abort_requested:
                raise
            name = None
        finally:
            self._pending = False
            aborted = self._abort_requested
            if aborted:
                self._abort_requested = False
                try:
                    await self._release()
                finally:
                    self._released.set()
        if aborted:
            return None
        if name is None:
            await self._release()
        return name

    async def _next_name(self, handle: _host.DirectoryHandle) -> str | None:
        step = asyncio.ensure_future(_host.next_entry_name(handle))
        try:
            return await asyncio.shield(step)
        except asyncio.CancelledError:
            # The listing is still in use by the worker thread.
            self._handle = None
            self._deferred_release = asyncio.ensure_future(
                self._release_when_done(step, handle)
            )
            raise
        except Exception as error:
            try:
                await self._release()
            except CloseError as close_error:
                error.add_note(f"Closing the listing also failed: {close_error}")
            raise

    async def _release_when_done(
        self, step: asyncio.Future[str | None], handle: _host.DirectoryHandle
    ) -> None:
        _ = await asyncio.wait([step])
        if not step.cancelled():
            _ = step.exception()
        await _host.close_directory(handle)

    async def abort(self) -> None:
        """Stop listing and release the directory; idempotent.

        With a ``pull`` in flight, waits for it to return; that ``pull``
        then resolves to ``None``.
        """
        if self._pending:
            self._abort_requested = True
            _ = await self._released.wait()
        else:
            await self._release()
        release, self._deferred_release = self._deferred_release, None
        if release is not None:
            await release

    async def _release(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        logger.debug(
            "dir_stream.closed",
            event="dir_stream.closed",
            context={"path": self._path},
        )
        await _host.close_directory(handle)

    def __aiter__(self) -> AsyncIterator[str]:
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


@operation
async def readdir_stream(path: StrPath) -> DirectorySource:
    """Open the directory ``path`` for streaming its entry names.

    Raises:
        ReaddirError: If the directory cannot be opened.
    """
    resolved = os.fspath(path)
    handle = await _host.open_directory(resolved)
    logger.debug(
        "dir_stream.opened",
        event="dir_stream.opened",
        context={"path": resolved},
    )
    return DirectorySource(_path=resolved, _handle=handle)
