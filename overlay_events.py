from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional


class Subscription:
    def __init__(self, release: Callable[[], None]) -> None:
        self._release: Optional[Callable[[], None]] = release

    @property
    def active(self) -> bool:
        return self._release is not None

    def unsubscribe(self) -> None:
        release, self._release = self._release, None
        if release is not None:
            release()

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.unsubscribe()


class Signal:
    def __init__(self, name: str) -> None:
        self.name = name
        self._callbacks: list[Callable[..., Any]] = []

    def __len__(self) -> int:
        return len(self._callbacks)

    def connect(self, callback: Callable[..., Any]) -> Subscription:
        self._callbacks.append(callback)

        def _release() -> None:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

        return Subscription(_release)

    def emit(self, *args: Any) -> None:
        for callback in list(self._callbacks):
            try:
                callback(*args)
            except Exception:  # noqa: BLE001 - subscriber boundary
                logging.exception("signal_callback_failed signal=%s callback=%r", self.name, callback)


class ViewScope:
    def __init__(self, name: str, parent: Optional[ViewScope] = None) -> None:
        self.name = name
        self.parent = parent
        self._children: list[ViewScope] = []
        self._view_hidden = Signal(f"{name}.view_hidden")
        if parent is not None:
            parent._children.append(self)

    def child(self, name: str) -> ViewScope:
        return ViewScope(name, parent=self)

    def detach(self) -> None:
        if self.parent is not None and self in self.parent._children:
            self.parent._children.remove(self)
        self.parent = None

    def listen(self, callback: Callable[[], Any]) -> Subscription:
        return self._view_hidden.connect(callback)

    def send_view_hidden(self) -> None:
        logging.debug("view_hidden scope=%s", self.name)
        self._view_hidden.emit()
        for child in list(self._children):
            child.send_view_hidden()


class BackgroundTasks:
    def __init__(self, name: str) -> None:
        self._name = name
        self._tasks: set[asyncio.Task[Any]] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Awaitable[Any], label: str = "task") -> asyncio.Task[Any]:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)

        def _finalize(done_task: asyncio.Task[Any]) -> None:
            self._tasks.discard(done_task)
            if done_task.cancelled():
                return
            exc = done_task.exception()
            if exc is not None:
                logging.error(
                    "background_task_failed owner=%s label=%s error=%r",
                    self._name,
                    label,
                    exc,
                    exc_info=exc,
                )

        task.add_done_callback(_finalize)
        return task

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            if not task.done():
                task.cancel()
