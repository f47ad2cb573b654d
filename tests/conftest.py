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

from __future__ import annotations

import pytest

from jailfs import _host


@pytest.fixture
def closed_fds(monkeypatch: pytest.MonkeyPatch) -> list[int]:
    """Record every descriptor closed through the host adapter."""

    closed: list[int] = []
    real_close = _host.close

    async def recording_close(fd: int) -> None:
        closed.append(fd)
        await real_close(fd)

    monkeypatch.setattr(_host, "close", recording_close)
    return closed
