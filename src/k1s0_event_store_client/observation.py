"""ライブ購読 (observe) のバックグラウンドタスクとハンドル"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterable, Callable
from contextlib import AbstractAsyncContextManager
from typing import Any

from .channel import Channel
from .decoder import iter_fragments
from .exceptions import EventStoreError, EventStoreErrorCodes
from .models import Event, ObservationState

logger = logging.getLogger(__name__)

LineSource = Callable[[], AbstractAsyncContextManager[AsyncIterable[str]]]

_TERMINAL_STATES = (ObservationState.DRAINED, ObservationState.FAILED, ObservationState.CANCELLED)


class Observation:
    """ライブ購読のハンドル。

    events と errors の 2 つのチャネルを持ち、タスク終了時にはどの経路でも
    両方がクローズされる。終了理由となったエラーは errors に 1 件だけ送られ、
    ストリームが正常に終端した場合とキャンセルした場合は何も送られない。
    デコードエラーは errors に送られるが購読は継続する。

    Example:
        >>> async with client.observe_events("/customer") as observation:
        ...     async for event in observation:
        ...         print(event.type)
    """

    def __init__(self, subject: str, capacity: int, delivery_timeout: float) -> None:
        self.subject = subject
        self.events: Channel[Event] = Channel(maxsize=capacity)
        self.errors: Channel[EventStoreError] = Channel()
        self._delivery_timeout = delivery_timeout
        self._state = ObservationState.CONNECTING
        self._task: asyncio.Task[None] | None = None

    @property
    def state(self) -> ObservationState:
        return self._state

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def start(self, open_lines: LineSource, normalize: Callable[[Event], Event]) -> None:
        """購読タスクを開始する。実行中のイベントループが必要。"""
        if self._task is not None:
            raise RuntimeError("observation already started")
        self._task = asyncio.create_task(self._run(open_lines, normalize))
        self._task.add_done_callback(self._on_done)

    def cancel(self) -> None:
        """購読を停止する。レスポンスは破棄され、両チャネルがクローズされる。"""
        if self._task is not None and not self._task.done():
            logger.debug("Cancelling observation", extra={"subject": self.subject})
            self._task.cancel()

    async def wait(self) -> None:
        """購読タスクの終了を待つ。"""
        if self._task is None:
            return
        with contextlib.suppress(asyncio.CancelledError):
            await self._task

    async def _run(self, open_lines: LineSource, normalize: Callable[[Event], Event]) -> None:
        try:
            async with open_lines() as lines:
                self._set_state(ObservationState.STREAMING)
                async with contextlib.aclosing(iter_fragments(lines)) as fragments:
                    async for fragment in fragments:
                        if fragment.error is not None:
                            self._push_error(fragment.error)
                            continue
                        try:
                            event = normalize(Event.from_dict(fragment.value))
                        except EventStoreError as e:
                            self._push_error(e)
                            continue
                        try:
                            await self.events.send(event, timeout=self._delivery_timeout)
                        except asyncio.TimeoutError:
                            self._fail(
                                EventStoreError(
                                    code=EventStoreErrorCodes.DELIVERY_TIMEOUT,
                                    message=(
                                        "timeout sending event to channel after "
                                        f"{self._delivery_timeout}s"
                                    ),
                                )
                            )
                            return
            self._set_state(ObservationState.DRAINED)
        except asyncio.CancelledError:
            self._set_state(ObservationState.CANCELLED)
            raise
        except EventStoreError as e:
            self._fail(e)
        except Exception as e:
            self._fail(
                EventStoreError(
                    code=EventStoreErrorCodes.TRANSPORT_ERROR,
                    message=f"observe_events: unexpected error: {e}",
                    cause=e,
                )
            )
        finally:
            self._close()

    def _on_done(self, task: asyncio.Task[None]) -> None:
        # 開始前にキャンセルされた場合は _run の finally を通らない
        # _run の例外は _fail で errors に送られるため、ここに届くのは _fail 自体の失敗のみ
        if task.cancelled():
            if self._state not in _TERMINAL_STATES:
                self._set_state(ObservationState.CANCELLED)
        elif (exc := task.exception()) is not None:
            logger.warning(
                "Observation task crashed",
                extra={"subject": self.subject, "error": str(exc)},
            )
            self._set_state(ObservationState.FAILED)
        self._close()

    def _push_error(self, error: EventStoreError) -> None:
        logger.debug(
            "Skipping undecodable observed record",
            extra={"subject": self.subject, "error": str(error)},
        )
        self.errors.send_nowait(error)

    def _fail(self, error: EventStoreError) -> None:
        logger.warning(
            "Observation failed",
            extra={"subject": self.subject, "error": str(error)},
        )
        self.errors.send_nowait(error)
        self._set_state(ObservationState.FAILED)

    def _set_state(self, state: ObservationState) -> None:
        logger.debug(
            "Observation state changed",
            extra={"subject": self.subject, "from": self._state.name, "to": state.name},
        )
        self._state = state

    def _close(self) -> None:
        self.events.close()
        self.errors.close()

    def __aiter__(self) -> Channel[Event]:
        return self.events

    async def __aenter__(self) -> Observation:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.cancel()
        await self.wait()
