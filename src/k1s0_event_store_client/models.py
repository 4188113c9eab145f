"""イベントストアクライアントデータモデル"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Any

from .exceptions import EventStoreError, EventStoreErrorCodes

_RFC3339_PATTERN = re.compile(
    r"^(\d{4}-\d{2}-\d{2})[Tt](\d{2}:\d{2}:\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})$"
)


def parse_time(value: Any) -> datetime | None:
    """RFC 3339 文字列を aware な datetime に変換する。

    None・"null"・"" はタイムスタンプなしとして None を返す。
    それ以外の RFC 3339 でない値は ValueError。
    """
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"invalid time value: {value!r}")
    if value in ("", "null"):
        return None
    match = _RFC3339_PATTERN.match(value)
    if match is None:
        raise ValueError(f"invalid RFC 3339 time: {value!r}")
    date_part, time_part, fraction, offset = match.groups()
    if offset in ("Z", "z"):
        offset = "+00:00"
    text = f"{date_part}T{time_part}"
    if fraction:
        # datetime はマイクロ秒精度まで
        text += "." + fraction[:6].ljust(6, "0")
    return datetime.fromisoformat(text + offset)


def format_time(value: datetime | None) -> str | None:
    """datetime を RFC 3339 (秒精度) 文字列に変換する。None は None のまま。"""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = value.isoformat(timespec="seconds")
    if text.endswith("+00:00"):
        text = text[: -len("+00:00")] + "Z"
    return text


@dataclass(frozen=True)
class Event:
    """イベントレコード。

    subject と type は必須。id・source・data_content_type・spec_version・time は
    空の場合に正規化で既定値が補われる。
    """

    subject: str = ""
    type: str = ""
    data: Any = None
    id: str = ""
    source: str = ""
    time: datetime | None = None
    data_content_type: str = ""
    spec_version: str = ""
    options: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.id:
            result["id"] = self.id
        if self.source:
            result["source"] = self.source
        result["subject"] = self.subject
        result["type"] = self.type
        result["time"] = format_time(self.time)
        result["data"] = self.data
        if self.data_content_type:
            result["datacontenttype"] = self.data_content_type
        if self.spec_version:
            result["specversion"] = self.spec_version
        if self.options:
            result["options"] = self.options
        return result

    @classmethod
    def from_dict(cls, data: Any) -> Event:
        """レスポンスの 1 レコードから Event を生成する。

        Raises:
            EventStoreError: オブジェクトでない、subject/type がない、time が不正な場合
        """
        if not isinstance(data, dict):
            raise EventStoreError(
                code=EventStoreErrorCodes.DECODE_ERROR,
                message=f"event record must be a JSON object, got {type(data).__name__}",
            )
        for key in ("subject", "type"):
            if not data.get(key):
                raise EventStoreError(
                    code=EventStoreErrorCodes.DECODE_ERROR,
                    message=f"event record is missing {key}",
                )
        try:
            time = parse_time(data.get("time"))
        except ValueError as e:
            raise EventStoreError(
                code=EventStoreErrorCodes.DECODE_ERROR,
                message=f"error parsing event time: {e}",
                cause=e,
            ) from e
        return cls(
            subject=data["subject"],
            type=data["type"],
            data=data.get("data"),
            id=data.get("id") or "",
            source=data.get("source") or "",
            time=time,
            data_content_type=data.get("datacontenttype") or "",
            spec_version=data.get("specversion") or "",
            options=data.get("options"),
        )


@dataclass(frozen=True)
class Precondition:
    """コミット前にサーバーで評価される前提条件。"""

    type: str
    payload: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def is_subject_new(subject: str) -> Precondition:
        return Precondition(type="isSubjectNew", payload={"subject": subject})

    @staticmethod
    def is_query_result_true(query: str) -> Precondition:
        return Precondition(type="isQueryResultTrue", payload={"query": query})

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "payload": self.payload}


@dataclass(frozen=True)
class StreamOptions:
    """読み取り範囲のオプション。未指定の項目はリクエストに含めない。"""

    lower_bound: str = ""
    include_lower_bound_event: bool = False
    upper_bound: str = ""
    include_upper_bound_event: bool = False
    latest_by_event_type: str = ""

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.lower_bound:
            result["lowerBound"] = self.lower_bound
        if self.include_lower_bound_event:
            result["includeLowerBoundEvent"] = True
        if self.upper_bound:
            result["upperBound"] = self.upper_bound
        if self.include_upper_bound_event:
            result["includeUpperBoundEvent"] = True
        if self.latest_by_event_type:
            result["latestByEventType"] = self.latest_by_event_type
        return result


class ObservationState(Enum):
    """ライブ購読タスクの状態。"""

    CONNECTING = auto()
    STREAMING = auto()
    DRAINED = auto()
    FAILED = auto()
    CANCELLED = auto()


@dataclass
class EventStoreConfig:
    """イベントストアクライアント設定。"""

    api_url: str = ""
    api_version: str = ""
    auth_token: str = ""
    timeout_seconds: float = 10.0
    delivery_timeout_seconds: float = 5.0
    channel_capacity: int = 100
    user_agent: str = "k1s0-event-store-client"

    @property
    def base_url(self) -> str:
        return f"{self.api_url.rstrip('/')}/api/{self.api_version}"
