"""EventStoreClient 抽象基底クラス"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from .models import Event, Precondition, StreamOptions
from .observation import Observation


class EventStoreClient(ABC):
    """イベントストアクライアント抽象基底クラス。"""

    @abstractmethod
    async def stream_events(
        self,
        subject: str,
        options: StreamOptions | None = None,
    ) -> list[Event]:
        """subject のイベントを全件読み取る。"""
        ...

    @abstractmethod
    def observe_events(
        self,
        subject: str,
        options: StreamOptions | None = None,
    ) -> Observation:
        """subject に追記されるイベントをライブで購読する。"""
        ...

    @abstractmethod
    async def commit_events(
        self,
        events: list[Event],
        preconditions: list[Precondition] | None = None,
    ) -> list[Event]:
        """イベントをまとめて追記する。正規化済みのイベントを返す。"""
        ...

    @abstractmethod
    async def erase_data(self, subject: str) -> None:
        """subject のデータを消去する。"""
        ...

    @abstractmethod
    async def q(self, query: str) -> list[Any]:
        """クエリを実行し、結果の JSON 値を返す。"""
        ...

    async def query_events(self, query: str) -> list[Any]:
        """q() の別名。"""
        return await self.q(query)

    @abstractmethod
    async def ping(self) -> str:
        """サーバーの死活確認。"""
        ...

    @abstractmethod
    async def audit(self) -> str:
        """サーバーの監査ステータスを取得する。"""
        ...
