"""イベントストア HTTP クライアント実装"""

from __future__ import annotations

import contextlib
import functools
import logging
from collections.abc import AsyncIterator, Callable
from typing import Any, TypeVar

import httpx

from .client import EventStoreClient
from .decoder import iter_fragments
from .exceptions import EventStoreError, EventStoreErrorCodes
from .models import Event, EventStoreConfig, Precondition, StreamOptions
from .normalizer import EventDefaults, normalize_event
from .observation import Observation

logger = logging.getLogger(__name__)

NDJSON_CONTENT_TYPE = "application/x-ndjson"

T = TypeVar("T")


class HttpEventStoreClient(EventStoreClient):
    """httpx を使ったイベントストア HTTP クライアント。

    呼び出しごとに httpx.AsyncClient を生成して閉じるため、接続は呼び出し間で
    共有されない。observe_events() だけはバックグラウンドタスクが接続を保持する。
    """

    def __init__(self, config: EventStoreConfig) -> None:
        for name in ("api_url", "api_version", "auth_token"):
            if not getattr(config, name):
                raise EventStoreError(
                    code=EventStoreErrorCodes.CONFIG_ERROR,
                    message=f"{name} is required",
                )
        self._config = config
        self._defaults = EventDefaults.from_config(config)
        self._headers: dict[str, str] = {
            "Authorization": f"Bearer {config.auth_token}",
            "User-Agent": config.user_agent,
        }

    @property
    def config(self) -> EventStoreConfig:
        return self._config

    def _make_client(self, timeout: httpx.Timeout | float | None = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._config.base_url,
            headers=self._headers,
            timeout=self._config.timeout_seconds if timeout is None else timeout,
        )

    def _handle_error(self, resp: httpx.Response, context: str) -> None:
        if resp.is_success:
            return
        code = (
            EventStoreErrorCodes.PRECONDITION_FAILED
            if resp.status_code == 412
            else EventStoreErrorCodes.API_ERROR
        )
        logger.warning(
            "Event store returned an error",
            extra={"context": context, "status_code": resp.status_code},
        )
        raise EventStoreError(
            code=code,
            message=f"{context}: API error: {resp.status_code} {resp.reason_phrase} - {resp.text}",
            status_code=resp.status_code,
            body=resp.text,
        )

    def _transport_error(self, e: httpx.HTTPError, context: str) -> EventStoreError:
        logger.warning(
            "Event store request failed",
            extra={"context": context, "error": str(e)},
        )
        return EventStoreError(
            code=EventStoreErrorCodes.TRANSPORT_ERROR,
            message=f"{context}: error making request: {e}",
            cause=e,
        )

    @staticmethod
    def _require_subject(subject: str, context: str) -> None:
        if not subject:
            raise EventStoreError(
                code=EventStoreErrorCodes.VALIDATION_ERROR,
                message=f"{context}: subject is required",
            )

    @staticmethod
    def _stream_body(subject: str, options: StreamOptions | None) -> dict[str, Any]:
        body: dict[str, Any] = {"subject": subject}
        if options is not None:
            body["options"] = options.to_dict()
        return body

    def _normalize(self, event: Event) -> Event:
        return normalize_event(event, self._defaults)

    async def _request(
        self,
        method: str,
        path: str,
        context: str,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        logger.debug("Sending event store request", extra={"method": method, "path": path})
        try:
            async with self._make_client() as client:
                resp = await client.request(method, path, json=json)
        except httpx.HTTPError as e:
            raise self._transport_error(e, context) from e
        self._handle_error(resp, context)
        return resp

    async def _collect(
        self,
        path: str,
        body: dict[str, Any],
        context: str,
        convert: Callable[[Any], T],
        skip_keepalive: bool,
    ) -> list[T]:
        """行区切りレスポンスを最後まで読み、1 行ずつ convert した結果を返す。

        最初のデコードエラーで全体を失敗とし、途中までの結果は捨てる。
        """
        logger.debug("Sending event store request", extra={"method": "POST", "path": path})
        results: list[T] = []
        try:
            async with self._make_client() as client:
                async with client.stream(
                    "POST", path, json=body, headers={"Accept": NDJSON_CONTENT_TYPE}
                ) as resp:
                    if not resp.is_success:
                        await resp.aread()
                        self._handle_error(resp, context)
                    fragments = iter_fragments(resp.aiter_lines(), skip_keepalive=skip_keepalive)
                    async with contextlib.aclosing(fragments):
                        async for fragment in fragments:
                            if fragment.error is not None:
                                raise fragment.error
                            results.append(convert(fragment.value))
        except httpx.HTTPError as e:
            raise self._transport_error(e, context) from e
        return results

    async def stream_events(
        self,
        subject: str,
        options: StreamOptions | None = None,
    ) -> list[Event]:
        """subject のイベントを全件読み取る。

        Args:
            subject: 読み取る subject (例: "/customer/42")
            options: 読み取り範囲のオプション

        Returns:
            ワイヤ上の順序どおりの正規化済みイベント。レスポンスが空なら空リスト。

        Raises:
            EventStoreError: 通信エラー、エラーステータス、デコードエラーの場合。
                subject または type を持たないレコードもデコードエラーとして扱い、
                呼び出し全体が失敗する。
        """
        self._require_subject(subject, "stream_events")
        events = await self._collect(
            "/stream",
            self._stream_body(subject, options),
            "stream_events",
            lambda value: self._normalize(Event.from_dict(value)),
            skip_keepalive=True,
        )
        logger.debug(
            "Streamed events",
            extra={"subject": subject, "event_count": len(events)},
        )
        return events

    def observe_events(
        self,
        subject: str,
        options: StreamOptions | None = None,
    ) -> Observation:
        """subject に追記されるイベントをライブで購読する。

        実行中のイベントループ上で呼び出すこと。接続はバックグラウンドタスクで行い、
        このメソッドはすぐに Observation を返す。
        """
        self._require_subject(subject, "observe_events")
        observation = Observation(
            subject=subject,
            capacity=self._config.channel_capacity,
            delivery_timeout=self._config.delivery_timeout_seconds,
        )
        observation.start(
            functools.partial(self._open_observe_stream, self._stream_body(subject, options)),
            self._normalize,
        )
        return observation

    @contextlib.asynccontextmanager
    async def _open_observe_stream(self, body: dict[str, Any]) -> AsyncIterator[AsyncIterator[str]]:
        # ライブ購読はイベントがいつ届くか分からないため読み取りタイムアウトを無効にする
        timeout = httpx.Timeout(self._config.timeout_seconds, read=None)
        logger.debug("Opening observe stream", extra={"subject": body["subject"]})
        try:
            async with self._make_client(timeout=timeout) as client:
                async with client.stream(
                    "POST", "/observe", json=body, headers={"Accept": NDJSON_CONTENT_TYPE}
                ) as resp:
                    if not resp.is_success:
                        await resp.aread()
                        self._handle_error(resp, "observe_events")
                    yield resp.aiter_lines()
        except httpx.HTTPError as e:
            raise self._transport_error(e, "observe_events") from e

    async def commit_events(
        self,
        events: list[Event],
        preconditions: list[Precondition] | None = None,
    ) -> list[Event]:
        """イベントを 1 リクエストでまとめて追記する。

        各イベントは送信前に正規化される。引数のイベントは変更せず、正規化後の
        イベントを返す。エラー時はどのイベントも追記されていない。

        Raises:
            EventStoreError: 入力が不正な場合 (VALIDATION_ERROR)、前提条件を満たさない
                場合 (PRECONDITION_FAILED)、その他の通信・API エラーの場合
        """
        if not events:
            raise EventStoreError(
                code=EventStoreErrorCodes.VALIDATION_ERROR,
                message="commit_events: events must not be empty",
            )
        for i, event in enumerate(events):
            for name in ("subject", "type"):
                if not getattr(event, name):
                    raise EventStoreError(
                        code=EventStoreErrorCodes.VALIDATION_ERROR,
                        message=f"commit_events: events[{i}] is missing {name}",
                    )

        normalized = [self._normalize(event) for event in events]
        body: dict[str, Any] = {"events": [event.to_dict() for event in normalized]}
        if preconditions:
            body["preconditions"] = [p.to_dict() for p in preconditions]

        await self._request("POST", "/commit", "commit_events", json=body)
        logger.debug(
            "Committed events",
            extra={
                "event_count": len(normalized),
                "precondition_count": len(preconditions or []),
            },
        )
        return normalized

    async def erase_data(self, subject: str) -> None:
        self._require_subject(subject, "erase_data")
        await self._request("POST", "/erase", "erase_data", json={"subject": subject})

    async def q(self, query: str) -> list[Any]:
        """クエリを実行する。

        結果は射影に応じた任意の JSON 値で、イベントとしての正規化は行わない。
        """
        return await self._collect(
            "/q",
            {"query": query},
            "q",
            lambda value: value,
            skip_keepalive=False,
        )

    async def ping(self) -> str:
        resp = await self._request("GET", "/status/ping", "ping")
        return resp.text

    async def audit(self) -> str:
        resp = await self._request("GET", "/status/audit", "audit")
        return resp.text
