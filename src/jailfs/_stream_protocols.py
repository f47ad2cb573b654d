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

"""Streaming protocol definitions for chunked transfer.

A :class:`ByteSource` produces byte chunks on demand; a :class:`ByteSink`
pulls a source to exhaustion. The consumer always drives: nothing is read
before it is asked for, so at most one chunk is in flight per stream.

Example::

    source = await read_stream("input.bin")
    sink = await write_stream("copy.bin")
    await sink.drain(source)
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable

__all__ = [
    "ByteSink",
    "ByteSource",
    "EntrySource",
    "iter_source",
]


@runtime_checkable
class ByteSource(Protocol):
    """Pull-driven producer of sequential byte chunks.

    Only one ``pull`` may be pending at a time. Issuing a second one before
    the first resolves raises :class:`~jailfs.errors.ProtocolError`.
    """

    async def pull(self) -> bytes | None:
        """Return the next chunk, or ``None`` once the stream is exhausted.

        Raises:
            ProtocolError: If another ``pull`` is still pending.
        """
        ...

    async def abort(self) -> None:
        """Stop the stream early and release its resources.

        Safe to call at any time, including with no ``pull`` pending, and
        idempotent.
        """
        ...


@runtime_checkable
class ByteSink(Protocol):
    """Consumer that drains exactly one source, persisting chunks in order."""

    async def drain(self, source: ByteSource) -> int:
        """Pull ``source`` until it ends and return the number of bytes written.

        The sink's resources are released before this returns or raises.
        Errors raised by ``source`` are re-raised unchanged.
        """
        ...


@runtime_checkable
class EntrySource(Protocol):
    """Pull-driven producer of directory entry names.

    Follows the same rules as :class:`ByteSource`: one pending ``pull`` at a
    time, ``None`` at the end, ``abort`` idempotent.
    """

    async def pull(self) -> str | None: ...

    async def abort(self) -> None: ...


class _Pullable[T](Protocol):
    async def pull(self) -> T | None: ...

    async def abort(self) -> None: ...


async def iter_source[T](source: _Pullable[T]) -> AsyncIterator[T]:
    """Iterate over the items of ``source``.

    Leaving the loop before the stream ends aborts the source::

        async for chunk in iter_source(source):
            digest.update(chunk)
    """
    finished = False
    try:
        while (chunk := await source.pull()) is not None:
            yield chunk
        finished = True
    finally:
        if not finished:
            await source.abort()
