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

"""Tests for the read-stream factory and FileSource."""

from __future__ import annotations

import asyncio
import errno
from pathlib import Path

import pytest
from hypothesis import given, settings, strategies as st

from jailfs import (
    DEFAULT_CHUNK_SIZE,
    FileSource,
    OpenError,
    ProtocolError,
    ReadError,
    collect,
    read_stream,
)
from jailfs import _host
from tests.helpers import run

WINDOW_DATA = bytes(range(256)) * 3


def _write(path: Path, data: bytes) -> Path:
    _ = path.write_bytes(data)
    return path


class TestOpen:
    def test_returns_open_source(self, tmp_path: Path) -> None:
        target = _write(tmp_path / "a.bin", b"hello")

        async def scenario() -> FileSource:
            source = await read_stream(target)
            await source.abort()
            return source

        source = run(scenario())
        assert source.path == str(target)
        assert source.closed

    def test_missing_file_raises_open_error(self, tmp_path: Path) -> None:
        with pytest.raises(OpenError) as excinfo:
            run(read_stream(tmp_path / "missing.bin"))
        assert excinfo.value.errno == errno.ENOENT
        assert isinstance(excinfo.value.__cause__, FileNotFoundError)

    def test_directory_raises_open_error(self, tmp_path: Path) -> None:
        with pytest.raises(OpenError) as excinfo:
            run(read_stream(tmp_path))
        assert excinfo.value.errno == errno.EISDIR

    @pytest.mark.parametrize(
        ("start", "end"),
        [(-1, None), (None, -1), (5, 4), (1.5, None), (True, None)],
    )
    def test_invalid_window_raises_value_error(
        self, tmp_path: Path, start: object, end: object
    ) -> None:
        target = _write(tmp_path / "a.bin", b"hello")
        with pytest.raises(ValueError, match="Window"):
            run(read_stream(target, start=start, end=end))  # type: ignore[arg-type]

    def test_invalid_window_opens_nothing(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        target = _write(tmp_path / "a.bin", b"hello")
        opened: list[str] = []

        async def fake_open(path: str) -> int:
            opened.append(path)
            return -1

        monkeypatch.setattr(_host, "open_for_read", fake_open)
        with pytest.raises(ValueError):
            run(read_stream(target, start=3, end=1))
        assert opened == []


class TestPull:
    def test_reads_whole_file_in_chunks(self, tmp_path: Path) -> None:
        data = b"x" * (DEFAULT_CHUNK_SIZE * 2 + 10)
        target = _write(tmp_path / "a.bin", data)

        async def scenario() -> list[bytes]:
            source = await read_stream(target)
            chunks: list[bytes] = []
            while (chunk := await source.pull()) is not None:
                chunks.append(chunk)
            return chunks

        chunks = run(scenario())
        assert [len(c) for c in chunks] == [DEFAULT_CHUNK_SIZE, DEFAULT_CHUNK_SIZE, 10]
        assert b"".join(chunks) == data

    def test_end_of_stream_closes_handle_once(
        self, tmp_path: Path, closed_fds: list[int]
    ) -> None:
        target = _write(tmp_path / "a.bin", b"abc")

        async def scenario() -> FileSource:
            source = await read_stream(target)
            assert await source.pull() == b"abc"
            assert await source.pull() is None
            assert await source.pull() is None
            return source

        source = run(scenario())
        assert source.closed
        assert len(closed_fds) == 1

    def test_empty_file_ends_immediately(self, tmp_path: Path) -> None:
        target = _write(tmp_path / "empty.bin", b"")

        async def scenario() -> bytes | None:
            source = await read_stream(target)
            return await source.pull()

        assert run(scenario()) is None

    def test_custom_chunk_size(self, tmp_path: Path) -> None:
        target = _write(tmp_path / "a.bin", b"abcdefg")

        async def scenario() -> list[bytes]:
            source = await read_stream(target, chunk_size=3)
            return [chunk async for chunk in source]

        assert run(scenario()) == [b"abc", b"def", b"g"]

    def test_chunk_size_from_env(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("JAILFS_CHUNK_SIZE", "2")
        target = _write(tmp_path / "a.bin", b"abcde")

        async def scenario() -> list[bytes]:
            source = await read_stream(target)
            return [chunk async for chunk in source]

        assert run(scenario()) == [b"ab", b"cd", b"e"]

    def test_short_read_then_end_of_stream(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        target = _write(tmp_path / "a.bin", b"abcdef")
        requested: list[int] = []
        real_read = _host.read_chunk

        async def short_read(fd: int, max_bytes: int, position: int | None) -> bytes:
            requested.append(max_bytes)
            return await real_read(fd, min(max_bytes, 4), position)

        monkeypatch.setattr(_host, "read_chunk", short_read)

        async def scenario() -> list[bytes | None]:
            source = await read_stream(target, chunk_size=16)
            return [await source.pull(), await source.pull(), await source.pull()]

        assert run(scenario()) == [b"abcd", b"ef", None]
        assert requested == [16, 16, 16]

    def test_read_error_closes_handle_before_raising(
        self,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        closed_fds: list[int],
    ) -> None:
        target = _write(tmp_path / "a.bin", b"abc")

        async def failing_read(fd: int, max_bytes: int, position: int | None) -> bytes:
            raise ReadError(errno.EIO, "disk on fire")

        monkeypatch.setattr(_host, "read_chunk", failing_read)

        async def scenario() -> FileSource:
            source = await read_stream(target)
            with pytest.raises(ReadError, match="disk on fire"):
                _ = await source.pull()
            assert len(closed_fds) == 1
            assert await source.pull() is None
            return source

        source = run(scenario())
        assert source.closed
        assert len(closed_fds) == 1


class TestByteWindow:
    @settings(max_examples=60, deadline=None)
    @given(data=st.data())
    def test_window_yields_exact_slice(
        self, tmp_path_factory: pytest.TempPathFactory, data: st.DataObject
    ) -> None:
        size = len(WINDOW_DATA)
        start = data.draw(st.integers(min_value=0, max_value=size), label="start")
        end = data.draw(st.integers(min_value=start, max_value=size), label="end")
        chunk_size = data.draw(st.integers(min_value=1, max_value=300), label="chunk")
        target = _write(tmp_path_factory.mktemp("window") / "data.bin", WINDOW_DATA)

        async def scenario() -> bytes:
            source = await read_stream(
                target, start=start, end=end, chunk_size=chunk_size
            )
            return await collect(source)

        assert run(scenario()) == WINDOW_DATA[start:end]

    def test_exhausted_window_ends_without_reading(
        self,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        closed_fds: list[int],
    ) -> None:
        target = _write(tmp_path / "a.bin", b"abcdef")
        reads: list[tuple[int, int | None]] = []
        real_read = _host.read_chunk

        async def tracking_read(fd: int, max_bytes: int, position: int | None) -> bytes:
            reads.append((max_bytes, position))
            return await real_read(fd, max_bytes, position)

        monkeypatch.setattr(_host, "read_chunk", tracking_read)

        async def scenario() -> list[bytes | None]:
            source = await read_stream(target, start=1, end=4)
            return [await source.pull(), await source.pull()]

        assert run(scenario()) == [b"bcd", None]
        assert reads == [(3, 1)]
        assert len(closed_fds) == 1

    def test_empty_window(self, tmp_path: Path) -> None:
        target = _write(tmp_path / "a.bin", b"abcdef")

        async def scenario() -> bytes | None:
            source = await read_stream(target, start=2, end=2)
            return await source.pull()

        assert run(scenario()) is None

    def test_start_only_reads_to_end_of_file(self, tmp_path: Path) -> None:
        target = _write(tmp_path / "a.bin", b"abcdef")

        async def scenario() -> bytes:
            return await collect(await read_stream(target, start=4))

        assert run(scenario()) == b"ef"

    def test_end_only_reads_from_beginning(self, tmp_path: Path) -> None:
        target = _write(tmp_path / "a.bin", b"abcdef")

        async def scenario() -> bytes:
            return await collect(await read_stream(target, end=2))

        assert run(scenario()) == b"ab"

    def test_end_past_file_size_stops_at_end_of_file(self, tmp_path: Path) -> None:
        target = _write(tmp_path / "a.bin", b"abc")

        async def scenario() -> bytes:
            return await collect(await read_stream(target, start=1, end=100))

        assert run(scenario()) == b"bc"

    def test_position_tracks_window(self, tmp_path: Path) -> None:
        target = _write(tmp_path / "a.bin", b"abcdef")

        async def scenario() -> tuple[int, int]:
            source = await read_stream(target, start=2, chunk_size=2)
            before = source.position
            _ = await source.pull()
            after = source.position
            await source.abort()
            return before, after

        assert run(scenario()) == (2, 4)


class _GatedRead:
    """read_chunk replacement that blocks until released."""

    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.real_read = _host.read_chunk

    async def __call__(self, fd: int, max_bytes: int, position: int | None) -> bytes:
        self.started.set()
        _ = await self.release.wait()
        return await self.real_read(fd, max_bytes, position)


class TestConcurrency:
    def test_second_pending_pull_raises_protocol_error(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        target = _write(tmp_path / "a.bin", b"abcdef")

        async def scenario() -> tuple[bytes | None, bytes | None]:
            gate = _GatedRead()
            monkeypatch.setattr(_host, "read_chunk", gate)
            source = await read_stream(target, chunk_size=3)
            first = asyncio.create_task(source.pull())
            _ = await gate.started.wait()
            with pytest.raises(ProtocolError, match="only one read at a time"):
                _ = await source.pull()
            gate.release.set()
            first_chunk = await first
            second_chunk = await source.pull()
            await source.abort()
            return first_chunk, second_chunk

        assert run(scenario()) == (b"abc", b"def")


class TestAbort:
    def test_abort_without_pull_releases_handle(
        self, tmp_path: Path, closed_fds: list[int]
    ) -> None:
        target = _write(tmp_path / "a.bin", b"abc")

        async def scenario() -> FileSource:
            source = await read_stream(target)
            await source.abort()
            await source.abort()
            return source

        source = run(scenario())
        assert source.closed
        assert len(closed_fds) == 1

    def test_pull_after_abort_ends_stream(self, tmp_path: Path) -> None:
        target = _write(tmp_path / "a.bin", b"abc")

        async def scenario() -> bytes | None:
            source = await read_stream(target)
            await source.abort()
            return await source.pull()

        assert run(scenario()) is None

    def test_abort_during_pending_pull_discards_chunk(
        self,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        closed_fds: list[int],
    ) -> None:
        target = _write(tmp_path / "a.bin", b"abcdef")

        async def scenario() -> bytes | None:
            gate = _GatedRead()
            monkeypatch.setattr(_host, "read_chunk", gate)
            source = await read_stream(target)
            pending = asyncio.create_task(source.pull())
            _ = await gate.started.wait()
            aborting = asyncio.create_task(source.abort())
            await asyncio.sleep(0)
            assert not aborting.done()
            gate.release.set()
            await aborting
            assert source.closed
            return await pending

        assert run(scenario()) is None
        assert len(closed_fds) == 1

    def test_async_context_manager_aborts(
        self, tmp_path: Path, closed_fds: list[int]
    ) -> None:
        target = _write(tmp_path / "a.bin", b"abc")

        async def scenario() -> FileSource:
            async with await read_stream(target) as source:
                assert await source.pull() == b"abc"
            return source

        assert run(scenario()).closed
        assert len(closed_fds) == 1

    def test_breaking_async_iteration_aborts(
        self, tmp_path: Path, closed_fds: list[int]
    ) -> None:
        target = _write(tmp_path / "a.bin", b"abcdef")

        async def scenario() -> FileSource:
            source = await read_stream(target, chunk_size=2)
            iterator = aiter(source)
            assert await anext(iterator) == b"ab"
            await iterator.aclose()  # type: ignore[attr-defined]
            return source

        assert run(scenario()).closed
        assert len(closed_fds) == 1

    def test_abort_discards_failure_of_pending_read(
        self,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        closed_fds: list[int],
    ) -> None:
        target = _write(tmp_path / "a.bin", b"abcdef")
        started = asyncio.Event()
        release = asyncio.Event()

        async def failing_read(fd: int, max_bytes: int, position: int | None) -> bytes:
            started.set()
            _ = await release.wait()
            raise ReadError(errno.EIO, "disk on fire")

        monkeypatch.setattr(_host, "read_chunk", failing_read)

        async def scenario() -> bytes | None:
            source = await read_stream(target)
            pending = asyncio.create_task(source.pull())
            _ = await started.wait()
            aborting = asyncio.create_task(source.abort())
            await asyncio.sleep(0)
            release.set()
            await aborting
            return await pending

        assert run(scenario()) is None
        assert len(closed_fds) == 1


class TestCancellation:
    def test_cancelled_pull_closes_handle_after_read_returns(
        self,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        closed_fds: list[int],
    ) -> None:
        target = _write(tmp_path / "a.bin", b"abcdef")

        async def scenario() -> FileSource:
            gate = _GatedRead()
            monkeypatch.setattr(_host, "read_chunk", gate)
            source = await read_stream(target)
            pending = asyncio.create_task(source.pull())
            _ = await gate.started.wait()
            _ = pending.cancel()
            with pytest.raises(asyncio.CancelledError):
                await pending
            assert source.closed
            assert closed_fds == []
            gate.release.set()
            await source.abort()
            assert len(closed_fds) == 1
            assert await source.pull() is None
            return source

        assert run(scenario()).closed
        assert len(closed_fds) == 1

    def test_timeout_then_abort_releases_handle(
        self,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        closed_fds: list[int],
    ) -> None:
        target = _write(tmp_path / "a.bin", b"abcdef")

        async def scenario() -> None:
            gate = _GatedRead()
            monkeypatch.setattr(_host, "read_chunk", gate)
            source = await read_stream(target)
            with pytest.raises(TimeoutError):
                _ = await asyncio.wait_for(source.pull(), timeout=0.01)
            assert closed_fds == []
            gate.release.set()
            await source.abort()

        run(scenario())
        assert len(closed_fds) == 1
