"""Cancellation token shared by every stage of one extraction request.

Stages run in worker threads and poll the token between nodes; the
orchestrator awaits ``wait()`` alongside the stage tasks so a cancel
request is noticed without waiting for in-flight stages to finish.
"""

from __future__ import annotations

import asyncio
import threading
from typing import List, Optional, Tuple

from .errors import ExtractionCancelled


class CancellationToken:
    """Thread-safe, one-shot cancellation flag with asyncio waiters."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason = ""
        self._waiters: List[Tuple[asyncio.AbstractEventLoop, asyncio.Future]] = []
        self._children: List["CancellationToken"] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "cancelled by caller") -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._reason = reason
            self._event.set()
            waiters = list(self._waiters)
            self._waiters.clear()
            children = list(self._children)
        for loop, future in waiters:
            loop.call_soon_threadsafe(_resolve, future)
        for child in children:
            child.cancel(reason)

    def child(self) -> "CancellationToken":
        """Token that fires with this one but can also be cancelled alone."""
        token = CancellationToken()
        with self._lock:
            if not self._event.is_set():
                self._children.append(token)
                return token
        token.cancel(self._reason)
        return token

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ExtractionCancelled(self._reason)

    async def wait(self) -> None:
        """Suspend until cancel() is called (returns immediately if it was)."""
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        with self._lock:
            if self._event.is_set():
                return
            self._waiters.append((loop, future))
        try:
            await future
        finally:
            with self._lock:
                if (loop, future) in self._waiters:
                    self._waiters.remove((loop, future))


def _resolve(future: asyncio.Future) -> None:
    if not future.done():
        future.set_result(None)


def checkpoint(token: Optional[CancellationToken]) -> None:
    """Raise ExtractionCancelled if a token is given and has fired."""
    if token is not None:
        token.raise_if_cancelled()
