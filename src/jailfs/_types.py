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

"""Core value types shared by the host adapter and the stream factories.

All types are immutable frozen dataclasses.

- ``FileStat``: file metadata with timestamps split into whole seconds and
  sub-second nanoseconds
- ``ByteWindow``: optional ``start``/``end`` offsets limiting a read stream
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Final

__all__ = [
    "NANOSECONDS_PER_SECOND",
    "ByteWindow",
    "FileStat",
    "StrPath",
    "Timespec",
]

NANOSECONDS_PER_SECOND: Final[int] = 1_000_000_000

type StrPath = str | os.PathLike[str]

#: ``(seconds, nanoseconds)`` pair.
type Timespec = tuple[int, int]


def _split_ns(total_ns: int) -> Timespec:
    seconds, nanos = divmod(total_ns, NANOSECONDS_PER_SECOND)
    return (seconds, nanos)


@dataclass(slots=True, frozen=True)
class FileStat:
    """Metadata for a filesystem entry.

    Timestamps are never floats: ``ctime`` and ``mtime`` are
    ``(seconds, nanoseconds)`` pairs so they survive round trips without
    precision loss.

    Attributes:
        ctime: Inode change time as ``(seconds, nanoseconds)``.
        mtime: Content modification time as ``(seconds, nanoseconds)``.
        dev: Device identifier.
        ino: Inode number.
        mode: File type and permission bits.
        uid: Owner user id.
        gid: Owner group id.
        size: Size in bytes.

    Example::

        info = await stat("src/main.py")
        seconds, nanos = info.mtime
    """

    ctime: Timespec
    mtime: Timespec
    dev: int
    ino: int
    mode: int
    uid: int
    gid: int
    size: int

    @classmethod
    def from_stat_result(cls, result: os.stat_result) -> FileStat:
        """Build a ``FileStat`` from the host's ``os.stat_result``."""
        return cls(
            ctime=_split_ns(result.st_ctime_ns),
            mtime=_split_ns(result.st_mtime_ns),
            dev=result.st_dev,
            ino=result.st_ino,
            mode=result.st_mode,
            uid=result.st_uid,
            gid=result.st_gid,
            size=result.st_size,
        )


@dataclass(slots=True, frozen=True)
class ByteWindow:
    """Byte range limiting a read stream.

    ``start`` is the first byte read; ``end`` is the offset of the first
    byte NOT read. Either side may be omitted: a missing ``start`` reads
    from the beginning, a missing ``end`` reads to end of file.

    Raises:
        ValueError: If an offset is negative, not an ``int``, or
            ``start > end``.
    """

    start: int | None = None
    end: int | None = None

    def __post_init__(self) -> None:
        for name, value in (("start", self.start), ("end", self.end)):
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int):
                msg = f"Window {name} must be an integer, got {value!r}."
                raise ValueError(msg)
            if value < 0:
                msg = f"Window {name} must be non-negative, got {value}."
                raise ValueError(msg)
        if self.start is not None and self.end is not None and self.start > self.end:
            msg = f"Window start ({self.start}) exceeds end ({self.end})."
            raise ValueError(msg)

    @property
    def offset(self) -> int:
        """First byte to read."""
        return 0 if self.start is None else self.start

    def remaining(self, position: int) -> int | None:
        """Bytes left in the window at ``position``, or ``None`` if unbounded."""
        if self.end is None:
            return None
        return max(self.end - position, 0)
