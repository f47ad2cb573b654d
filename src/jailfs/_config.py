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

"""Immutable configuration values.

Constants:
    DEFAULT_CHUNK_SIZE: Bytes requested per ``pull`` on a file source (8 KiB)
    DEFAULT_FILE_MODE: Permission bits for newly created files, before umask
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Final, Self

from ._types import StrPath

__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_FILE_MODE",
    "JailConfig",
    "StreamConfig",
]

DEFAULT_CHUNK_SIZE: Final[int] = 8_192
DEFAULT_FILE_MODE: Final[int] = 0o666

_CHUNK_SIZE_ENV = "JAILFS_CHUNK_SIZE"


@dataclass(slots=True, frozen=True)
class StreamConfig:
    """Tuning for file sources.

    Attributes:
        chunk_size: Maximum bytes returned by a single ``pull``.
    """

    chunk_size: int = DEFAULT_CHUNK_SIZE

    def __post_init__(self) -> None:
        if isinstance(self.chunk_size, bool) or not isinstance(self.chunk_size, int):
            msg = f"chunk_size must be an integer, got {self.chunk_size!r}."
            raise ValueError(msg)
        if self.chunk_size <= 0:
            msg = f"chunk_size must be positive, got {self.chunk_size}."
            raise ValueError(msg)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Self:
        """Build a config honouring ``JAILFS_CHUNK_SIZE`` when set."""
        env = os.environ if env is None else env
        raw = env.get(_CHUNK_SIZE_ENV)
        if raw is None or not raw.strip():
            return cls()
        try:
            chunk_size = int(raw)
        except ValueError:
            msg = f"{_CHUNK_SIZE_ENV} must be an integer, got {raw!r}."
            raise ValueError(msg) from None
        return cls(chunk_size=chunk_size)


@dataclass(slots=True, frozen=True)
class JailConfig:
    """Resolved root of a jailed filesystem.

    Build with :meth:`resolve`; the root is made absolute once against the
    current working directory and never changes afterwards.
    """

    root: str

    @classmethod
    def resolve(cls, root: StrPath) -> Self:
        """Resolve ``root`` against the current working directory."""
        return cls(root=os.path.abspath(os.fspath(root)))
