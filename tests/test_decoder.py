"""行区切り JSON デコーダーのユニットテスト"""

import json
from collections.abc import AsyncIterator

import pytest
from k1s0_event_store_client.decoder import (
    Fragment,
    extract_payload,
    is_keepalive,
    iter_fragments,
    parse_fragment,
)
from k1s0_event_store_client.exceptions import EventStoreError, EventStoreErrorCodes


async def lines_of(*lines: str) -> AsyncIterator[str]:
    for line in lines:
        yield line


async def collect(lines: AsyncIterator[str], skip_keepalive: bool = True) -> list[Fragment]:
    return [fragment async for fragment in iter_fragments(lines, skip_keepalive=skip_keepalive)]


def event_line(n: int) -> str:
    return json.dumps({"id": str(n), "subject": "/test", "type": "test.event"})


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ('{"a": 1}', '{"a": 1}'),
        ('  {"a": 1}  ', '{"a": 1}'),
        ('data: {"a": 1}', '{"a": 1}'),
        ('data:{"a": 1}', '{"a": 1}'),
        ("", None),
        ("   ", None),
        ("data: ", None),
        ("event: message", None),
        ("id: 42", None),
        ("retry: 1000", None),
        (": keep-alive", None),
    ],
)
def test_extract_payload(line: str, expected: str | None) -> None:
    assert extract_payload(line) == expected


def test_parse_fragment_invalid_json() -> None:
    """不正な JSON は DECODE_ERROR になること。"""
    with pytest.raises(EventStoreError) as exc_info:
        parse_fragment("{not json")
    assert exc_info.value.code == EventStoreErrorCodes.DECODE_ERROR
    assert isinstance(exc_info.value.__cause__, json.JSONDecodeError)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ({"payload": ""}, True),
        ({"heartbeat": ""}, True),
        ({"payload": "x"}, False),
        ({"payload": "", "other": ""}, False),
        ({}, False),
        ("", False),
        ([""], False),
    ],
)
def test_is_keepalive(value: object, expected: bool) -> None:
    assert is_keepalive(value) is expected


async def test_ndjson_lines() -> None:
    """N 行の NDJSON から N 件の Fragment が順序どおり得られること。"""
    fragments = await collect(lines_of(*(event_line(n) for n in range(5))))
    assert [f.value["id"] for f in fragments] == ["0", "1", "2", "3", "4"]
    assert all(f.error is None for f in fragments)


async def test_sse_lines() -> None:
    """SSE の data: 行から NDJSON と同じ結果が得られること。"""
    sse = []
    for n in range(5):
        sse += ["event: message", f"data: {event_line(n)}", ""]
    ndjson = await collect(lines_of(*(event_line(n) for n in range(5))))
    fragments = await collect(lines_of(": connected", *sse))
    assert [f.value for f in fragments] == [f.value for f in ndjson]


async def test_skips_blank_lines() -> None:
    fragments = await collect(lines_of("", event_line(1), "   ", "", event_line(2), ""))
    assert len(fragments) == 2


async def test_keepalive_dropped() -> None:
    """{"payload": ""} は黙って捨てられること。"""
    fragments = await collect(lines_of('{"payload": ""}', event_line(1), 'data: {"payload": ""}'))
    assert len(fragments) == 1
    assert fragments[0].value["id"] == "1"


async def test_keepalive_kept_when_disabled() -> None:
    fragments = await collect(lines_of('{"payload": ""}'), skip_keepalive=False)
    assert fragments[0].value == {"payload": ""}


async def test_decode_error_does_not_stop_sequence() -> None:
    """1 行のパース失敗は error として返り、後続の行は引き続き処理されること。"""
    fragments = await collect(lines_of(event_line(1), "{broken", event_line(2)))
    assert len(fragments) == 3
    assert fragments[0].value["id"] == "1"
    assert fragments[1].error is not None
    assert fragments[1].error.code == EventStoreErrorCodes.DECODE_ERROR
    assert fragments[2].value["id"] == "2"


async def test_arbitrary_json_values() -> None:
    fragments = await collect(lines_of("1", '"text"', "[1, 2]", "null"), skip_keepalive=False)
    assert [f.value for f in fragments] == [1, "text", [1, 2], None]
