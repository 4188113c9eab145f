"""クローズ可能な非同期チャネル"""

from __future__ import annotations

import asyncio
from typing import Generic, TypeVar

from .exceptions import ChannelClosedError

T = TypeVar("T")


class Channel(Generic[T]):
    """asyncio.Queue をラップした、クローズ可能なチャネル。

    クローズ後もバッファに残った要素は受信できる。バッファが空になった時点で
    receive() は ChannelClosedError を送出し、async for は終了する。
    maxsize が 0 の場合は容量無制限。
    """

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: asyncio.Queue[T] = asyncio.Queue(maxsize=maxsize)
        self._closed = asyncio.Event()
        self._held: asyncio.Future[T] | None = None

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def qsize(self) -> int:
        return self._queue.qsize()

    async def send(self, item: T, timeout: float | None = None) -> None:
        """要素を送信する。timeout 秒以内に受け入れられなければ asyncio.TimeoutError。"""
        if self.closed:
            raise ChannelClosedError("send on closed channel")
        if timeout is None:
            await self._queue.put(item)
            return
        await asyncio.wait_for(self._queue.put(item), timeout=timeout)

    def send_nowait(self, item: T) -> None:
        if self.closed:
            raise ChannelClosedError("send on closed channel")
        self._queue.put_nowait(item)

    def close(self) -> None:
        self._closed.set()

    async def receive(self) -> T:
        """要素を 1 件受信する。クローズ済みで空なら ChannelClosedError。"""
        if self._held is not None:
            held, self._held = self._held, None
            return held.result()
        if not self._queue.empty():
            return self._queue.get_nowait()
        if self.closed:
            raise ChannelClosedError("channel is closed")

        getter = asyncio.ensure_future(self._queue.get())
        closer = asyncio.ensure_future(self._closed.wait())
        try:
            done, _ = await asyncio.wait({getter, closer}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            closer.cancel()
            # キャンセルと同じタイミングで取り出された要素は次の receive() で返す
            if getter.done() and not getter.cancelled():
                self._held = getter
            else:
                getter.cancel()
            raise
        closer.cancel()
        if getter in done:
            return getter.result()
        getter.cancel()
        if not self._queue.empty():
            return self._queue.get_nowait()
        raise ChannelClosedError("channel is closed")

    def __aiter__(self) -> Channel[T]:
        return self

    async def __anext__(self) -> T:
        try:
            return await self.receive()
        except ChannelClosedError:
            raise StopAsyncIteration from None
