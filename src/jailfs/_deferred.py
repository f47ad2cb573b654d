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

"""Direct and deferred invocation of filesystem operations.

Every public operation is an :class:`Operation`. Awaiting a call performs
the effect immediately; ``defer`` binds the arguments and returns a
:class:`Deferred` that a scheduler can drive later::

    data = await fs.read("notes.txt", "utf-8")

    action = fs.read.defer("notes.txt", "utf-8")
    data = await action()      # or: await action

Callers that prefer completion handlers use :meth:`Deferred.run`::

    fs.read.defer("notes.txt", "utf-8").run(lambda err, value: ...)
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Callable, Coroutine, Generator, Mapping
from dataclasses import dataclass, field
from types import MethodType
from typing import Any, overload

__all__ = [
    "Deferred",
    "Handler",
    "Operation",
    "operation",
]

type Handler[R] = Callable[[BaseException | None, R | None], object]


@dataclass(slots=True, frozen=True)
class Deferred[R]:
    """Zero-argument re-invocation of an operation with bound arguments.

    Each call starts a fresh run of the operation; driving a ``Deferred``
    has exactly the same effect as awaiting the operation directly.
    """

    fn: Callable[..., Coroutine[Any, Any, R]]
    args: tuple[object, ...] = ()
    kwargs: Mapping[str, object] = field(default_factory=dict)

    def __call__(self) -> Coroutine[Any, Any, R]:
        return self.fn(*self.args, **self.kwargs)

    def __await__(self) -> Generator[Any, None, R]:
        return self().__await__()

    def run(self, handler: Handler[R]) -> asyncio.Task[R]:
        """Schedule the action on the running loop and report to ``handler``.

        ``handler`` is called exactly once: ``handler(None, value)`` on
        success, ``handler(error, None)`` on failure or cancellation.

        Raises:
            RuntimeError: If no event loop is running.
        """
        task = asyncio.get_running_loop().create_task(self())

        def _deliver(done: asyncio.Task[R]) -> None:
            if done.cancelled():
                _ = handler(asyncio.CancelledError(), None)
                return
            error = done.exception()
            if error is not None:
                _ = handler(error, None)
                return
            _ = handler(None, done.result())

        task.add_done_callback(_deliver)
        return task


class Operation[**P, R]:
    """Async callable that can also produce :class:`Deferred` actions.

    Works on plain coroutine functions and on methods; accessing an
    operation through an instance binds it like a regular method.
    """

    def __init__(self, fn: Callable[P, Coroutine[Any, Any, R]]) -> None:
        self._fn = fn
        _ = functools.update_wrapper(self, fn)

    def __call__(self, *args: P.args, **kwargs: P.kwargs) -> Coroutine[Any, Any, R]:
        return self._fn(*args, **kwargs)

    def defer(self, *args: P.args, **kwargs: P.kwargs) -> Deferred[R]:
        """Bind ``args`` and return a deferred action."""
        return Deferred(self._fn, args, dict(kwargs))

    @overload
    def __get__(self, instance: None, owner: type | None = None) -> Operation[P, R]: ...

    @overload
    def __get__(self, instance: object, owner: type | None = None) -> Operation[..., R]: ...

    def __get__(
        self, instance: object | None, owner: type | None = None
    ) -> Operation[..., R]:
        if instance is None:
            return self
        return Operation(MethodType(self._fn, instance))

    def __repr__(self) -> str:
        return f"<Operation {getattr(self._fn, '__qualname__', self._fn)!r}>"


def operation[**P, R](fn: Callable[P, Coroutine[Any, Any, R]]) -> Operation[P, R]:
    """Decorate a coroutine function as an :class:`Operation`."""
    return Operation(fn)
