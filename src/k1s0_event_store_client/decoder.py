"""行区切り JSON デコーダー

プレーンな NDJSON と SSE の data: 行の両方を同じパイプラインで扱う。
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass
from typing import Any

from .exceptions import EventStoreError, EventStoreErrorCodes

SSE_DATA_PREFIX = "data:"

# data: 以外の SSE フィールド行とコメント行
_SSE_SKIPPED_PREFIXES = ("event:", "id:", "retry:", ":")


@dataclass
class Fragment:
    """デコード結果 1 件。value か error のどちらか一方を持つ。"""

    value: Any = None
    error: EventStoreError | None = None


def extract_payload(line: str) -> str | None:
    """1 行から JSON テキストを取り出す。スキップすべき行は None。"""
    line = line.strip()
    if not line:
        return None
    if line.startswith(SSE_DATA_PREFIX):
        payload = line[len(SSE_DATA_PREFIX) :].strip()
        return payload or None
    if line.startswith(_SSE_SKIPPED_PREFIXES):
        return None
    return line


def parse_fragment(text: str) -> Any:
    """JSON テキストをパースする。

    Raises:
        EventStoreError: JSON として不正な場合 (DECODE_ERROR)
    """
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise EventStoreError(
            code=EventStoreErrorCodes.DECODE_ERROR,
            message=f"error parsing JSON line: {e}",
            cause=e,
        ) from e


def is_keepalive(value: Any) -> bool:
    """キーが 1 つだけで値が空文字列のオブジェクト (アイドル時の keep-alive) か判定する。"""
    if not isinstance(value, dict) or len(value) != 1:
        return False
    return next(iter(value.values())) == ""


async def iter_fragments(
    lines: AsyncIterable[str],
    skip_keepalive: bool = True,
) -> AsyncIterator[Fragment]:
    """行の非同期シーケンスを Fragment の非同期シーケンスに変換する。

    1 件のパース失敗は error を持つ Fragment として返し、後続の行の処理は続ける。
    失敗をどう扱うかは呼び出し側が決める。
    """
    async for line in lines:
        text = extract_payload(line)
        if text is None:
            continue
        try:
            value = parse_fragment(text)
        except EventStoreError as e:
            yield Fragment(error=e)
            continue
        if skip_keepalive and is_keepalive(value):
            continue
        yield Fragment(value=value)
