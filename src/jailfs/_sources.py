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

"""Stream helpers built on the source/sink protocol."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable, Iterator
from dataclasses import dataclass, field

from ._deferred import operation
from ._file_streams import read_stream, write_stream
from ._stream_protocols import ByteSink, ByteSource, iter_source
from ._types import StrPath
from .errors import ProtocolError

__all__ = [
    "IterableSource",
    "collect",
    "copy_file",
    "pipe",
]


@dataclass(slots=True)
class IterableSource:
    """ByteSource over an in-process iterable of byte chunks.

    Chunks are taken lazily, one per ``pull``. Aborting drops the iterator
    and closes it when it is a generator.
    """

    _chunks: Iterator[bytes] | None = field(init=False, default=None)
    chunks: Iterable[bytes] = ()

    def __post_init__(self) -> None:
        self._chunks = iter(self.chunks)

    @property
    def closed(self) -> bool:
        """True once the source is exhausted or aborted."""
        return self._chunks is None

    async def pull(self) -> bytes | None:
        """Return the next chunk, or ``None`` once the iterable is exhausted."""
        if self._chunks is None:
            return None
        chunk = next(self._chunks, None)
        if chunk is None:
            self._chunks = None
        return chunk

    async def abort(self) -> None:
        """Drop the remaining chunks; idempotent."""
        chunks, self._chunks = self._chunks, None
        close = getattr(chunks, "close", None)
        if close is not None:
            close()

    def __aiter__(self) -> AsyncIterator[bytes]:
        return iter_source(self)


@operation
async def collect(source: ByteSource) -> bytes:
    """Drain ``source`` into memory and return its concatenated bytes."""
    parts: list[bytes] = []
    while (chunk := await source.pull()) is not None:
        parts.append(chunk)
    return b"".join(parts)


@operation
async def pipe(source: ByteSource, sink: ByteSink) -> int:
    """Feed ``source`` into ``sink`` and return the bytes written."""
    if not isinstance(source, ByteSource):
        raise ProtocolError(f"{source!r} is not a byte source")
    return await sink.drain(source)


@operation
async def copy_file(source: StrPath, target: StrPath, *, mode: int | None = None) -> int:
    """Stream ``source`` into ``target`` chunk by chunk.

    The source is opened first; if ``target`` cannot be opened the source
    handle is released before the error propagates.

    Returns:
        Number of bytes copied.
    """
    reader = await read_stream(source)
    try:
        writer = await write_stream(target, mode=mode)
    except BaseException:
        await reader.abort()
        raise
    return await writer.drain(reader)
